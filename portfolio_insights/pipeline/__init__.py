"""Analysis pipelines built on the execution engine."""

from .base import AnalysisPipeline, PipelineResult, coerce_portfolio, coerce_positions
from .diversification import DiversificationPipeline
from .fallbacks import (
    fallback_insights,
    fallback_recommendations,
    fallback_scenario_impact,
    fallback_strategy_advice,
)
from .insights import InsightPipeline
from .nodes import llm_node
from .risk import calculate_risk_metrics, simulate_trade
from .scenario import ScenarioImpactPipeline
from .service import PortfolioInsightsService
from .state import (
    DiversificationState,
    InsightState,
    ScenarioState,
    SnapshotState,
    StrategyAdviceState,
)
from .strategy import StrategyAdvicePipeline

__all__ = [
    # Base
    "AnalysisPipeline",
    "PipelineResult",
    "coerce_positions",
    "coerce_portfolio",
    "llm_node",
    # Pipelines
    "InsightPipeline",
    "DiversificationPipeline",
    "StrategyAdvicePipeline",
    "ScenarioImpactPipeline",
    "PortfolioInsightsService",
    # State schemas
    "SnapshotState",
    "InsightState",
    "DiversificationState",
    "StrategyAdviceState",
    "ScenarioState",
    # Risk
    "calculate_risk_metrics",
    "simulate_trade",
    # Fallbacks
    "fallback_insights",
    "fallback_recommendations",
    "fallback_strategy_advice",
    "fallback_scenario_impact",
]
