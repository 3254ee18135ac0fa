"""Insight pipeline.

Topology::

    portfolio_analyzer -> {risk_assessor, opportunity_finder} -> insight_generator
"""

from typing import Any, Mapping

from portfolio_insights.config import prompts
from portfolio_insights.engine import PipelineGraph
from portfolio_insights.models import Insight, InsightType

from .base import AnalysisPipeline
from .fallbacks import fallback_insights
from .nodes import (
    format_portfolio,
    format_symbols,
    portfolio_analyzer_node,
    portfolio_of,
    positions_of,
    risk_assessor_node,
    text_field,
)
from .state import InsightState

DEFAULT_CONFIDENCE = 75.0


def opportunity_finder_variables(state: Mapping[str, Any]) -> dict[str, str]:
    return {
        "portfolio_block": format_portfolio(portfolio_of(state)),
        "symbols_block": format_symbols(positions_of(state)),
    }


def insight_generator_variables(state: Mapping[str, Any]) -> dict[str, str]:
    return {
        "portfolio_analysis": text_field(state, "portfolio_analysis"),
        "risk_assessment": text_field(state, "risk_assessment"),
        "opportunities": text_field(state, "opportunities"),
    }


class InsightPipeline(AnalysisPipeline[Insight]):
    """Turns a portfolio snapshot into a list of investment insights."""

    name = "insights"
    terminal_node = "insight_generator"
    raw_output_key = "insights_raw"
    collection_key = "insights"
    item_model = Insight
    state_schema = InsightState

    def build_graph(self) -> PipelineGraph:
        graph = PipelineGraph(self.name)
        graph.register(portfolio_analyzer_node(self.llm, self.settings, self.name))
        graph.register(risk_assessor_node(self.llm, self.settings, self.name))
        graph.register(
            self.llm_node(
                "opportunity_finder",
                output="opportunities",
                template=prompts.OPPORTUNITY_FINDER_PROMPT,
                variables=opportunity_finder_variables,
                depends_on=("portfolio_analyzer",),
            )
        )
        graph.register(
            self.llm_node(
                "insight_generator",
                output="insights_raw",
                template=prompts.INSIGHT_GENERATOR_PROMPT,
                variables=insight_generator_variables,
                depends_on=("risk_assessor", "opportunity_finder"),
            )
        )
        return graph

    def prepare_item(self, item: dict[str, Any], state: Mapping[str, Any]) -> dict[str, Any]:
        item.setdefault("confidence", DEFAULT_CONFIDENCE)
        kind = str(item.get("type", "")).strip().lower()
        if kind not in {t.value for t in InsightType}:
            item["type"] = InsightType.SUGGESTION
        if isinstance(item.get("relatedAssets"), str):
            item["relatedAssets"] = [item["relatedAssets"]]
        return item

    def fallback(self, state: Mapping[str, Any]) -> list[Insight]:
        return fallback_insights()
