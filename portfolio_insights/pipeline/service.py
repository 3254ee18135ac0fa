"""Service facade over the four analysis pipelines."""

from typing import Any, Iterable, Mapping

import structlog

from portfolio_insights.config.settings import (
    EngineSettings,
    ModelSettings,
    get_engine_settings,
    get_model_settings,
)
from portfolio_insights.engine import ExecutionEngine
from portfolio_insights.llm import CompletionModel, create_llm_client
from portfolio_insights.models import (
    DiversificationRecommendation,
    Insight,
    Portfolio,
    Position,
    ScenarioImpactRow,
    StrategyAdvice,
    TradeScenario,
)

from .base import PipelineResult, coerce_portfolio, coerce_positions
from .diversification import DiversificationPipeline
from .insights import InsightPipeline
from .scenario import ScenarioImpactPipeline
from .strategy import StrategyAdvicePipeline

logger = structlog.get_logger(__name__)

PIPELINE_SOURCE = "agent-pipeline"

PositionsInput = Iterable[Position | Mapping[str, Any]]
PortfolioInput = Portfolio | Mapping[str, Any]


class PortfolioInsightsService:
    """Builds every pipeline once around a shared model client and settings.

    Example:
        service = PortfolioInsightsService()
        result = await service.generate_insights(positions, portfolio)
        if result.degraded:
            ...
    """

    def __init__(
        self,
        llm: CompletionModel | None = None,
        settings: ModelSettings | None = None,
        engine_settings: EngineSettings | None = None,
    ):
        self.settings = settings or get_model_settings()
        self.engine_settings = engine_settings or get_engine_settings()
        self.llm = llm if llm is not None else create_llm_client(self.settings)

        engine = ExecutionEngine()
        self.insights = InsightPipeline(self.llm, self.settings, engine)
        self.diversification = DiversificationPipeline(self.llm, self.settings, engine)
        self.strategy = StrategyAdvicePipeline(self.llm, self.settings, engine)
        self.scenario = ScenarioImpactPipeline(self.llm, self.settings, engine)

        logger.info(
            "insights_service_ready",
            model=self.settings.model_name,
            run_timeout=self.engine_settings.run_timeout_seconds,
        )

    @property
    def timeout(self) -> float | None:
        return self.engine_settings.run_timeout_seconds

    def _snapshot(
        self,
        positions: PositionsInput,
        portfolio: PortfolioInput,
        market_context: Any = None,
    ) -> dict[str, Any]:
        return {
            "positions": coerce_positions(positions),
            "portfolio": coerce_portfolio(portfolio),
            "market_context": market_context,
        }

    async def generate_insights(
        self,
        positions: PositionsInput,
        portfolio: PortfolioInput,
        market_context: Any = None,
    ) -> PipelineResult[Insight]:
        """Generate investment insights for the portfolio."""
        result = await self.insights.arun(
            self._snapshot(positions, portfolio, market_context), timeout=self.timeout
        )
        if not result.degraded:
            for insight in result.data:
                insight.source = PIPELINE_SOURCE
        return result

    async def generate_diversification_recommendations(
        self,
        positions: PositionsInput,
        portfolio: PortfolioInput,
    ) -> PipelineResult[DiversificationRecommendation]:
        """Suggest assets that would diversify the portfolio."""
        return await self.diversification.arun(
            self._snapshot(positions, portfolio), timeout=self.timeout
        )

    async def generate_strategy_advice(
        self,
        positions: PositionsInput,
        portfolio: PortfolioInput,
        market_context: Any = None,
    ) -> PipelineResult[StrategyAdvice]:
        """Produce strategy recommendations for the portfolio."""
        return await self.strategy.arun(
            self._snapshot(positions, portfolio, market_context), timeout=self.timeout
        )

    async def analyze_scenario(
        self,
        positions: PositionsInput,
        portfolio: PortfolioInput,
        scenario: TradeScenario | Mapping[str, Any],
        price_history: Mapping[str, list[float]] | None = None,
    ) -> PipelineResult[ScenarioImpactRow]:
        """Analyze how a hypothetical trade changes the portfolio's risk.

        Args:
            positions: Current holdings.
            portfolio: Portfolio totals and risk mode.
            scenario: The trade to simulate.
            price_history: Optional closing prices per symbol, used for the
                correlation score.

        Returns:
            PipelineResult with one row per analysed dimension.
        """
        state = self._snapshot(positions, portfolio)
        state["scenario"] = (
            scenario if isinstance(scenario, TradeScenario) else TradeScenario.model_validate(scenario)
        )
        state["price_history"] = dict(price_history or {})
        return await self.scenario.arun(state, timeout=self.timeout)

    # List-returning helpers for callers that do not care about degradation

    async def insights_list(self, *args: Any, **kwargs: Any) -> list[Insight]:
        return (await self.generate_insights(*args, **kwargs)).data

    async def recommendations_list(self, *args: Any, **kwargs: Any) -> list[DiversificationRecommendation]:
        return (await self.generate_diversification_recommendations(*args, **kwargs)).data

    async def advice_list(self, *args: Any, **kwargs: Any) -> list[StrategyAdvice]:
        return (await self.generate_strategy_advice(*args, **kwargs)).data

    async def scenario_list(self, *args: Any, **kwargs: Any) -> list[ScenarioImpactRow]:
        return (await self.analyze_scenario(*args, **kwargs)).data
