"""Pydantic data models for the pipelines."""

from .enums import InsightType, RiskMetric, RiskMode, TradeAction
from .outputs import DiversificationRecommendation, Insight, ScenarioImpactRow, StrategyAdvice
from .portfolio import (
    DEFAULT_LIQUIDITY_SCORE,
    Portfolio,
    Position,
    RiskMetrics,
    SnapshotModel,
    TradeScenario,
)

__all__ = [
    # Enums
    "RiskMode",
    "TradeAction",
    "InsightType",
    "RiskMetric",
    # Inputs
    "SnapshotModel",
    "Position",
    "Portfolio",
    "TradeScenario",
    "RiskMetrics",
    "DEFAULT_LIQUIDITY_SCORE",
    # Outputs
    "Insight",
    "DiversificationRecommendation",
    "StrategyAdvice",
    "ScenarioImpactRow",
]
