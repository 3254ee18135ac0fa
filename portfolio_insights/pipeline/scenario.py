"""Trade scenario impact pipeline.

Topology::

    risk_calculator -> scenario_simulator -> impact_analyzer

The first two nodes are deterministic computations; only the impact
analyzer talks to the model.
"""

from typing import Any, Mapping

import structlog

from portfolio_insights.config import prompts
from portfolio_insights.engine import Node, PipelineGraph
from portfolio_insights.models import (
    Portfolio,
    RiskMetric,
    RiskMetrics,
    ScenarioImpactRow,
    TradeScenario,
)

from .base import AnalysisPipeline
from .fallbacks import fallback_scenario_impact
from .nodes import format_positions, portfolio_of, positions_of
from .risk import calculate_risk_metrics, relative_change, simulate_trade
from .state import ScenarioState

logger = structlog.get_logger(__name__)

METRIC_KEYS = {metric.value for metric in RiskMetric}


def risk_calculator(state: Mapping[str, Any]) -> dict[str, Any]:
    """Risk metrics of the current holdings."""
    metrics = calculate_risk_metrics(
        positions_of(state),
        portfolio_of(state),
        state.get("price_history"),
    )
    logger.debug("risk_metrics_calculated", **metrics.model_dump())
    return {"current_risk_metrics": metrics}


def scenario_simulator(state: Mapping[str, Any]) -> dict[str, Any]:
    """Apply the trade and recompute risk metrics for the result."""
    scenario: TradeScenario | None = state.get("scenario")
    portfolio: Portfolio | None = portfolio_of(state)
    if scenario is None or portfolio is None:
        raise ValueError("scenario and portfolio are required to simulate a trade")

    new_positions, new_portfolio = simulate_trade(positions_of(state), portfolio, scenario)
    return {
        "new_positions": new_positions,
        "new_portfolio": new_portfolio,
        "new_risk_metrics": calculate_risk_metrics(
            new_positions, new_portfolio, state.get("price_history")
        ),
    }


def format_portfolio_summary(state: Mapping[str, Any]) -> str:
    portfolio = portfolio_of(state)
    positions = positions_of(state)
    lines = ["CURRENT PORTFOLIO:"]
    if portfolio is not None:
        lines.append(f"Total value: ${portfolio.total_value:,.2f}")
        lines.append(f"Cash: ${portfolio.cash_value:,.2f}")
    lines.append(f"Holdings: {len(positions)}")
    if positions:
        lines.append(format_positions(positions, portfolio))
    return "\n".join(lines)


def format_scenario(state: Mapping[str, Any]) -> str:
    scenario: TradeScenario | None = state.get("scenario")
    if scenario is None:
        return "TRADE SCENARIO:\nNot provided"
    return (
        "TRADE SCENARIO:\n"
        f"Action: {scenario.action.value}\n"
        f"Asset: {scenario.asset}\n"
        f"Quantity: {scenario.quantity:g}\n"
        f"Price: ${scenario.price:,.2f}\n"
        f"Notional: ${scenario.notional:,.2f}"
    )


def format_risk_changes(state: Mapping[str, Any]) -> str:
    current = state.get("current_risk_metrics")
    updated = state.get("new_risk_metrics")
    if not isinstance(current, RiskMetrics) or not isinstance(updated, RiskMetrics):
        return "Risk metrics unavailable."

    lines = []
    for metric in RiskMetric:
        before = getattr(current, metric.value)
        after = getattr(updated, metric.value)
        lines.append(
            f"- {metric.value}: {before:.1f} -> {after:.1f} "
            f"({relative_change(before, after):+.2f}%)"
        )
    return "\n".join(lines)


def impact_analyzer_variables(state: Mapping[str, Any]) -> dict[str, str]:
    return {
        "portfolio_summary": format_portfolio_summary(state),
        "scenario_description": format_scenario(state),
        "risk_changes": format_risk_changes(state),
    }


class ScenarioImpactPipeline(AnalysisPipeline[ScenarioImpactRow]):
    """Explains how a hypothetical trade changes the portfolio's risk."""

    name = "scenario"
    terminal_node = "impact_analyzer"
    raw_output_key = "analysis_raw"
    collection_key = "impacts"
    item_model = ScenarioImpactRow
    state_schema = ScenarioState

    def build_graph(self) -> PipelineGraph:
        graph = PipelineGraph(self.name)
        graph.register(
            Node(
                id="risk_calculator",
                run=risk_calculator,
                outputs={"current_risk_metrics"},
            )
        )
        graph.register(
            Node(
                id="scenario_simulator",
                run=scenario_simulator,
                depends_on={"risk_calculator"},
                outputs={"new_positions", "new_portfolio", "new_risk_metrics"},
            )
        )
        graph.register(
            self.llm_node(
                "impact_analyzer",
                output="analysis_raw",
                template=prompts.IMPACT_ANALYZER_PROMPT,
                variables=impact_analyzer_variables,
                depends_on=("scenario_simulator",),
            )
        )
        return graph

    def prepare_item(self, item: dict[str, Any], state: Mapping[str, Any]) -> dict[str, Any]:
        key = item.get("metricKey", item.get("metric_key"))
        key = key.strip().lower() if isinstance(key, str) else None
        item.pop("metric_key", None)
        item["metricKey"] = key if key in METRIC_KEYS else None
        return item

    def postprocess(
        self, items: list[ScenarioImpactRow], state: Mapping[str, Any]
    ) -> list[ScenarioImpactRow]:
        """Fill metric values from the computed risk metrics."""
        current = state.get("current_risk_metrics")
        updated = state.get("new_risk_metrics")
        if not isinstance(current, RiskMetrics) or not isinstance(updated, RiskMetrics):
            return items

        for row in items:
            if row.metric_key is None:
                continue
            before = getattr(current, row.metric_key)
            after = getattr(updated, row.metric_key)
            if row.current_value is None:
                row.current_value = round(before, 2)
            if row.new_value is None:
                row.new_value = round(after, 2)
            if row.change is None:
                row.change = round(relative_change(before, after), 2)
        return items

    def fallback(self, state: Mapping[str, Any]) -> list[ScenarioImpactRow]:
        return fallback_scenario_impact(state)
