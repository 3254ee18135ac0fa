"""Diversification pipeline.

Topology::

    portfolio_analyzer -> {correlation_analyzer, sector_analyzer, liquidity_analyzer}
                       -> recommendation_generator
"""

from typing import Any, Mapping

from portfolio_insights.config import prompts
from portfolio_insights.engine import PipelineGraph
from portfolio_insights.models import DiversificationRecommendation, Position

from .base import AnalysisPipeline
from .fallbacks import fallback_recommendations
from .nodes import format_symbols, portfolio_analyzer_node, positions_of, text_field
from .risk import DEFAULT_CATEGORY
from .state import DiversificationState


def format_sectors(positions: list[Position]) -> str:
    return "\n".join(
        f"{pos.symbol}: {pos.sector or DEFAULT_CATEGORY} ({pos.weight:.1f}%)" for pos in positions
    )


def format_liquidity(positions: list[Position]) -> str:
    return "\n".join(
        f"{pos.symbol}: liquidity score {pos.liquidity_score:.0f}/100, "
        f"market value ${pos.market_value or 0:,.2f}"
        for pos in positions
    )


def correlation_analyzer_variables(state: Mapping[str, Any]) -> dict[str, str]:
    return {
        "portfolio_analysis": text_field(state, "portfolio_analysis"),
        "symbols_block": format_symbols(positions_of(state)),
    }


def sector_analyzer_variables(state: Mapping[str, Any]) -> dict[str, str]:
    return {
        "portfolio_analysis": text_field(state, "portfolio_analysis"),
        "sectors_block": format_sectors(positions_of(state)),
    }


def liquidity_analyzer_variables(state: Mapping[str, Any]) -> dict[str, str]:
    return {
        "portfolio_analysis": text_field(state, "portfolio_analysis"),
        "liquidity_block": format_liquidity(positions_of(state)),
    }


def recommendation_generator_variables(state: Mapping[str, Any]) -> dict[str, str]:
    return {
        "portfolio_analysis": text_field(state, "portfolio_analysis"),
        "correlation_analysis": text_field(state, "correlation_analysis"),
        "sector_analysis": text_field(state, "sector_analysis"),
        "liquidity_analysis": text_field(state, "liquidity_analysis"),
    }


class DiversificationPipeline(AnalysisPipeline[DiversificationRecommendation]):
    """Suggests assets that would diversify the portfolio."""

    name = "diversification"
    terminal_node = "recommendation_generator"
    raw_output_key = "recommendations_raw"
    collection_key = "recommendations"
    item_model = DiversificationRecommendation
    state_schema = DiversificationState

    def build_graph(self) -> PipelineGraph:
        graph = PipelineGraph(self.name)
        graph.register(portfolio_analyzer_node(self.llm, self.settings, self.name))

        for node_id, output, template, variables in (
            ("correlation_analyzer", "correlation_analysis",
             prompts.CORRELATION_ANALYZER_PROMPT, correlation_analyzer_variables),
            ("sector_analyzer", "sector_analysis",
             prompts.SECTOR_ANALYZER_PROMPT, sector_analyzer_variables),
            ("liquidity_analyzer", "liquidity_analysis",
             prompts.LIQUIDITY_ANALYZER_PROMPT, liquidity_analyzer_variables),
        ):
            graph.register(
                self.llm_node(
                    node_id,
                    output=output,
                    template=template,
                    variables=variables,
                    depends_on=("portfolio_analyzer",),
                )
            )

        graph.register(
            self.llm_node(
                "recommendation_generator",
                output="recommendations_raw",
                template=prompts.RECOMMENDATION_GENERATOR_PROMPT,
                variables=recommendation_generator_variables,
                depends_on=("correlation_analyzer", "sector_analyzer", "liquidity_analyzer"),
            )
        )
        return graph

    def prepare_item(self, item: dict[str, Any], state: Mapping[str, Any]) -> dict[str, Any]:
        # Models sometimes answer with "symbol" instead of "assetSymbol"
        if "assetSymbol" not in item and "asset_symbol" not in item and "symbol" in item:
            item["assetSymbol"] = item.pop("symbol")
        return item

    def fallback(self, state: Mapping[str, Any]) -> list[DiversificationRecommendation]:
        return fallback_recommendations()
