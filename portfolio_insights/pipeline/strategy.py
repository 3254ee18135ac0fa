"""Strategy advice pipeline.

Topology::

    portfolio_analyzer -> {risk_assessor, market_analyst} -> advice_generator
"""

from typing import Any, Mapping

from portfolio_insights.config import prompts
from portfolio_insights.engine import PipelineGraph
from portfolio_insights.models import StrategyAdvice

from .base import AnalysisPipeline
from .fallbacks import fallback_strategy_advice
from .nodes import (
    format_market_context,
    format_symbols,
    portfolio_analyzer_node,
    positions_of,
    risk_assessor_node,
    text_field,
)
from .state import StrategyAdviceState


def market_analyst_variables(state: Mapping[str, Any]) -> dict[str, str]:
    return {
        "portfolio_analysis": text_field(state, "portfolio_analysis"),
        "symbols_block": format_symbols(positions_of(state)),
        "market_context": format_market_context(state.get("market_context")),
    }


def advice_generator_variables(state: Mapping[str, Any]) -> dict[str, str]:
    return {
        "portfolio_analysis": text_field(state, "portfolio_analysis"),
        "risk_assessment": text_field(state, "risk_assessment"),
        "market_outlook": text_field(state, "market_outlook"),
    }


class StrategyAdvicePipeline(AnalysisPipeline[StrategyAdvice]):
    """Produces portfolio strategy recommendations."""

    name = "strategy"
    terminal_node = "advice_generator"
    raw_output_key = "advice_raw"
    collection_key = "advice"
    item_model = StrategyAdvice
    state_schema = StrategyAdviceState

    def build_graph(self) -> PipelineGraph:
        graph = PipelineGraph(self.name)
        graph.register(portfolio_analyzer_node(self.llm, self.settings, self.name))
        graph.register(risk_assessor_node(self.llm, self.settings, self.name))
        graph.register(
            self.llm_node(
                "market_analyst",
                output="market_outlook",
                template=prompts.MARKET_ANALYST_PROMPT,
                variables=market_analyst_variables,
                depends_on=("portfolio_analyzer",),
            )
        )
        graph.register(
            self.llm_node(
                "advice_generator",
                output="advice_raw",
                template=prompts.ADVICE_GENERATOR_PROMPT,
                variables=advice_generator_variables,
                depends_on=("risk_assessor", "market_analyst"),
            )
        )
        return graph

    def fallback(self, state: Mapping[str, Any]) -> list[StrategyAdvice]:
        return fallback_strategy_advice()
