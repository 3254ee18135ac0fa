"""Per-pipeline state schemas.

Each node reads from the snapshot and owns the fields it writes. Error
markers of failed nodes live under ``<node_id>__error`` keys.
"""

from typing import Any, TypedDict

from portfolio_insights.models import Portfolio, Position, RiskMetrics, TradeScenario


class SnapshotState(TypedDict, total=False):
    """Inputs shared by every pipeline."""

    positions: list[Position]
    portfolio: Portfolio
    market_context: Any


class InsightState(SnapshotState, total=False):
    # Intermediate narratives
    portfolio_analysis: str
    risk_assessment: str
    opportunities: str

    # Raw terminal output
    insights_raw: str


class DiversificationState(SnapshotState, total=False):
    portfolio_analysis: str
    correlation_analysis: str
    sector_analysis: str
    liquidity_analysis: str

    recommendations_raw: str


class StrategyAdviceState(SnapshotState, total=False):
    portfolio_analysis: str
    risk_assessment: str
    market_outlook: str

    advice_raw: str


class ScenarioState(SnapshotState, total=False):
    scenario: TradeScenario
    price_history: dict[str, list[float]]

    # risk_calculator
    current_risk_metrics: RiskMetrics

    # scenario_simulator
    new_positions: list[Position]
    new_portfolio: Portfolio
    new_risk_metrics: RiskMetrics

    # impact_analyzer
    analysis_raw: str
