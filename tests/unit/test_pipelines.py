"""Unit tests for the analysis pipelines and the service facade."""

import asyncio
import json

import pytest

from portfolio_insights.models import RiskMetrics, TradeScenario
from portfolio_insights.pipeline import (
    DiversificationPipeline,
    InsightPipeline,
    PortfolioInsightsService,
    ScenarioImpactPipeline,
    StrategyAdvicePipeline,
    fallback_insights,
    fallback_recommendations,
    fallback_scenario_impact,
    fallback_strategy_advice,
)


def _dump(items):
    return [item.model_dump(exclude={"timestamp"}) for item in items]


@pytest.fixture
def snapshot(sample_positions, sample_portfolio):
    return {"positions": sample_positions, "portfolio": sample_portfolio}


class TestTopologies:
    """Compiled layer shapes of the four pipelines."""

    @pytest.mark.parametrize(
        "pipeline_cls, layers",
        [
            (
                InsightPipeline,
                (
                    ("portfolio_analyzer",),
                    ("risk_assessor", "opportunity_finder"),
                    ("insight_generator",),
                ),
            ),
            (
                DiversificationPipeline,
                (
                    ("portfolio_analyzer",),
                    ("correlation_analyzer", "sector_analyzer", "liquidity_analyzer"),
                    ("recommendation_generator",),
                ),
            ),
            (
                StrategyAdvicePipeline,
                (
                    ("portfolio_analyzer",),
                    ("risk_assessor", "market_analyst"),
                    ("advice_generator",),
                ),
            ),
            (
                ScenarioImpactPipeline,
                (("risk_calculator",), ("scenario_simulator",), ("impact_analyzer",)),
            ),
        ],
    )
    def test_layers(self, pipeline_cls, layers, stub_model_factory, fast_settings):
        pipeline = pipeline_cls(stub_model_factory(), fast_settings)

        assert pipeline.graph.layers == layers
        assert pipeline.graph.terminal_nodes == (pipeline.terminal_node,)


class TestInsightPipeline:
    """Tests for InsightPipeline."""

    def test_generates_insights(self, snapshot, canned_insights, stub_model_factory, fast_settings):
        model = stub_model_factory({"insight_generator": canned_insights})
        pipeline = InsightPipeline(model, fast_settings)

        result = pipeline.run(snapshot)

        assert not result.degraded
        assert result.failure_reasons == []
        assert len(result.data) == 3
        for insight in result.data:
            assert insight.id and insight.title and insight.description
            assert 0 <= insight.confidence <= 100
            assert insight.type.value in {"risk", "opportunity", "suggestion"}
        assert result.data[0].related_assets == ["AAPL"]

    def test_every_node_called_once(self, snapshot, canned_insights, stub_model_factory, fast_settings):
        model = stub_model_factory({"insight_generator": canned_insights})
        InsightPipeline(model, fast_settings).run(snapshot)

        assert model.calls[0] == "portfolio_analyzer"
        assert sorted(model.calls[1:3]) == ["opportunity_finder", "risk_assessor"]
        assert model.calls[3] == "insight_generator"

    def test_upstream_narratives_reach_terminal_prompt(
        self, snapshot, canned_insights, stub_model_factory, fast_settings
    ):
        model = stub_model_factory({"insight_generator": canned_insights})
        InsightPipeline(model, fast_settings).run(snapshot)

        prompt = model.prompts["insight_generator"]
        assert "portfolio_analyzer narrative" in prompt
        assert "risk_assessor narrative" in prompt
        assert "opportunity_finder narrative" in prompt
        assert "AAPL" in model.prompts["portfolio_analyzer"]

    def test_prose_returns_static_fallback(self, snapshot, stub_model_factory, fast_settings):
        model = stub_model_factory(
            {"insight_generator": "The portfolio looks healthy and needs no changes."}
        )

        result = InsightPipeline(model, fast_settings).run(snapshot)

        assert result.degraded
        assert _dump(result.data) == _dump(fallback_insights())
        assert any("insight_generator" in reason for reason in result.failure_reasons)

    def test_sibling_failure_does_not_degrade(
        self, snapshot, canned_insights, stub_model_factory, fast_settings
    ):
        model = stub_model_factory(
            {
                "risk_assessor": ConnectionError("provider down"),
                "insight_generator": canned_insights,
            }
        )

        result = InsightPipeline(model, fast_settings).run(snapshot)

        assert not result.degraded
        assert len(result.data) == 3
        assert len(result.failure_reasons) == 1
        assert result.failure_reasons[0].startswith("risk_assessor:")
        assert "opportunity_finder narrative" in model.prompts["insight_generator"]

    def test_terminal_failure_falls_back(self, snapshot, stub_model_factory, fast_settings):
        model = stub_model_factory({"insight_generator": ConnectionError("provider down")})

        result = InsightPipeline(model, fast_settings).run(snapshot)

        assert result.degraded
        assert result.data[0].id == "fallback-insight-1"
        assert "insight_generator__error" in result.final_state

    def test_deadline_falls_back(self, snapshot, stub_model_factory, fast_settings):
        model = stub_model_factory(delays={"portfolio_analyzer": 5})

        result = InsightPipeline(model, fast_settings).run(snapshot, timeout=0.1)

        assert result.degraded
        assert _dump(result.data) == _dump(fallback_insights())
        assert "insight_generator" not in model.calls

    def test_invalid_items_dropped(self, snapshot, stub_model_factory, fast_settings):
        payload = {
            "insights": [
                {"title": "Valid", "description": "Kept", "confidence": 80, "type": "risk"},
                {"title": "", "description": "Missing title", "confidence": 80, "type": "risk"},
                "not an object",
            ]
        }
        model = stub_model_factory({"insight_generator": json.dumps(payload)})

        result = InsightPipeline(model, fast_settings).run(snapshot)

        assert not result.degraded
        assert [insight.title for insight in result.data] == ["Valid"]

    def test_unknown_type_becomes_suggestion(self, snapshot, stub_model_factory, fast_settings):
        payload = [{"title": "Odd", "description": "Unusual type", "type": "warning"}]
        model = stub_model_factory({"insight_generator": json.dumps(payload)})

        result = InsightPipeline(model, fast_settings).run(snapshot)

        assert result.data[0].type.value == "suggestion"
        assert result.data[0].confidence == 75

    def test_single_insight_object_becomes_one_item(
        self, snapshot, stub_model_factory, fast_settings
    ):
        payload = {
            "title": "t",
            "description": "d",
            "confidence": 80,
            "type": "risk",
            "relatedAssets": ["AAPL"],
        }
        model = stub_model_factory({"insight_generator": json.dumps(payload)})

        result = InsightPipeline(model, fast_settings).run(snapshot)

        assert not result.degraded
        assert [insight.title for insight in result.data] == ["t"]
        assert result.data[0].related_assets == ["AAPL"]

    def test_unnamed_list_of_objects_is_collection(
        self, snapshot, stub_model_factory, fast_settings
    ):
        payload = {
            "results": [
                {"title": "a", "description": "d", "type": "risk"},
                {"title": "b", "description": "d", "type": "opportunity"},
            ]
        }
        model = stub_model_factory({"insight_generator": json.dumps(payload)})

        result = InsightPipeline(model, fast_settings).run(snapshot)

        assert [insight.title for insight in result.data] == ["a", "b"]

    def test_empty_collection_falls_back(self, snapshot, stub_model_factory, fast_settings):
        model = stub_model_factory({"insight_generator": '{"insights": []}'})

        result = InsightPipeline(model, fast_settings).run(snapshot)

        assert result.degraded

    def test_engine_failure_falls_back(self, snapshot, stub_model_factory, fast_settings):
        class BrokenEngine:
            async def run(self, graph, initial_state, timeout=None):
                raise RuntimeError("engine exploded")

        pipeline = InsightPipeline(stub_model_factory(), fast_settings, engine=BrokenEngine())

        result = pipeline.run(snapshot)

        assert result.degraded
        assert result.failure_reasons == ["RuntimeError: engine exploded"]

    def test_fallback_returns_fresh_instances(self):
        first = fallback_insights()
        first[0].title = "changed"
        assert fallback_insights()[0].title == "Portfolio analysis"


class TestDiversificationPipeline:
    def test_generates_recommendations(self, snapshot, stub_model_factory, fast_settings):
        payload = {
            "recommendations": [
                {
                    "assetSymbol": "VTI",
                    "assetName": "Vanguard Total Stock Market ETF",
                    "amount": 5000,
                    "correlation": 0.2,
                    "liquidityScore": 98,
                    "reason": "Broad market exposure",
                },
                {"symbol": "GLD", "amount": 2000, "correlation": 0.05, "liquidityScore": 90},
                {"assetSymbol": "BAD", "amount": 1000, "correlation": 3, "liquidityScore": 90},
            ]
        }
        model = stub_model_factory({"recommendation_generator": "```json\n" + json.dumps(payload) + "\n```"})

        result = DiversificationPipeline(model, fast_settings).run(snapshot)

        assert not result.degraded
        assert [rec.asset_symbol for rec in result.data] == ["VTI", "GLD"]
        assert result.data[1].asset_id == "GLD"

    def test_sector_prompt_lists_sectors(self, snapshot, stub_model_factory, fast_settings):
        model = stub_model_factory()
        DiversificationPipeline(model, fast_settings).run(snapshot)

        assert "technology" in model.prompts["sector_analyzer"]
        assert "liquidity score 95/100" in model.prompts["liquidity_analyzer"]

    def test_fallback(self, snapshot, stub_model_factory, fast_settings):
        result = DiversificationPipeline(stub_model_factory(), fast_settings).run(snapshot)

        assert result.degraded
        assert [rec.asset_symbol for rec in result.data] == ["VTI", "BND", "VEA"]
        assert _dump(result.data) == _dump(fallback_recommendations())


class TestStrategyAdvicePipeline:
    def test_generates_advice(self, snapshot, stub_model_factory, fast_settings):
        payload = {
            "advice": [
                {"title": "Trim AAPL", "description": "Reduce the largest position.", "recommended": True},
                {"title": "Add bonds", "description": "Lower volatility.", "recommended": False},
            ]
        }
        model = stub_model_factory({"advice_generator": "Sure!\n" + json.dumps(payload)})

        result = StrategyAdvicePipeline(model, fast_settings).run(
            {**snapshot, "market_context": {"rates": "falling"}}
        )

        assert not result.degraded
        assert [advice.recommended for advice in result.data] == [True, False]
        assert '"rates": "falling"' in model.prompts["market_analyst"]
        assert "market_analyst narrative" in model.prompts["advice_generator"]

    def test_fallback(self, snapshot, stub_model_factory, fast_settings):
        model = stub_model_factory({"advice_generator": "no advice today"})

        result = StrategyAdvicePipeline(model, fast_settings).run(snapshot)

        assert result.degraded
        assert _dump(result.data) == _dump(fallback_strategy_advice())
        assert [advice.id for advice in result.data] == [
            "fallback-advice-1",
            "fallback-advice-2",
            "fallback-advice-3",
        ]


class TestScenarioImpactPipeline:
    """Tests for ScenarioImpactPipeline."""

    @pytest.fixture
    def buy_state(self, snapshot):
        scenario = TradeScenario(asset="AAPL", action="buy", quantity=10, price=210)
        return {**snapshot, "scenario": scenario, "price_history": {}}

    def test_buy_updates_market_value_and_weights(self, buy_state, stub_model_factory, fast_settings):
        rows = [
            {"metric": "Concentration", "metricKey": "concentration", "insight": "Higher", "recommendation": "Trim"},
            {"metric": "Overall impact", "metricKey": None, "insight": "Modest"},
        ]
        model = stub_model_factory({"impact_analyzer": json.dumps(rows)})

        result = ScenarioImpactPipeline(model, fast_settings).run(buy_state)

        assert not result.degraded
        state = result.final_state
        aapl = next(pos for pos in state["new_positions"] if pos.symbol == "AAPL")
        assert aapl.market_value == pytest.approx(20000 + 10 * 210)
        assert sum(pos.weight for pos in state["new_positions"]) <= 100 + 1e-6

        concentration = result.data[0]
        current = state["current_risk_metrics"].concentration
        new = state["new_risk_metrics"].concentration
        assert concentration.current_value == pytest.approx(round(current, 2))
        assert concentration.new_value == pytest.approx(round(new, 2))
        assert result.data[1].current_value is None

    def test_prompt_describes_trade_and_risk_changes(self, buy_state, stub_model_factory, fast_settings):
        model = stub_model_factory({"impact_analyzer": '[{"metric": "m"}]'})
        ScenarioImpactPipeline(model, fast_settings).run(buy_state)

        prompt = model.prompts["impact_analyzer"]
        assert "Action: buy" in prompt
        assert "Asset: AAPL" in prompt
        assert "- concentration:" in prompt
        assert model.calls == ["impact_analyzer"]

    def test_unknown_metric_key_is_cleared(self, buy_state, stub_model_factory, fast_settings):
        model = stub_model_factory({"impact_analyzer": '[{"metric": "Volatility", "metricKey": "vol"}]'})

        result = ScenarioImpactPipeline(model, fast_settings).run(buy_state)

        assert result.data[0].metric_key is None

    def test_fallback_computed_from_metrics(self, buy_state, stub_model_factory, fast_settings):
        model = stub_model_factory({"impact_analyzer": ConnectionError("provider down")})

        result = ScenarioImpactPipeline(model, fast_settings).run(buy_state)

        assert result.degraded
        assert [row.metric_key for row in result.data] == [
            "concentration",
            "allocation",
            "correlation",
            "liquidity",
        ]
        assert all(row.metric.endswith("(fallback)") for row in result.data)
        assert result.data[0].current_value == pytest.approx(
            round(result.final_state["current_risk_metrics"].concentration, 2)
        )

    def test_missing_scenario_uses_static_fallback(self, snapshot, stub_model_factory, fast_settings):
        model = stub_model_factory({"impact_analyzer": "[]"})

        result = ScenarioImpactPipeline(model, fast_settings).run(snapshot)

        assert result.degraded
        assert "scenario_simulator__error" in result.final_state
        assert "Risk metrics unavailable." in model.prompts["impact_analyzer"]
        assert _dump(result.data) == _dump(fallback_scenario_impact())
        assert len(result.data) == 5

    def test_static_fallback_without_metrics(self):
        rows = fallback_scenario_impact({"current_risk_metrics": RiskMetrics()})
        assert rows[0].metric == "Total portfolio value"
        assert rows[0].change == pytest.approx(1.67)


class TestPortfolioInsightsService:
    """Tests for the service facade."""

    @pytest.fixture
    def positions_payload(self):
        return [
            {"symbol": "AAPL", "quantity": 100, "currentPrice": 200, "sector": "technology"},
            {"symbol": "JNJ", "quantity": 250, "currentPrice": 160, "sector": "healthcare"},
        ]

    @pytest.fixture
    def portfolio_payload(self):
        return {"totalValue": 70000, "cashValue": 10000, "riskMode": "retail"}

    def _service(self, model, fast_settings, engine_settings):
        return PortfolioInsightsService(llm=model, settings=fast_settings, engine_settings=engine_settings)

    def test_insights_are_stamped(
        self,
        positions_payload,
        portfolio_payload,
        canned_insights,
        stub_model_factory,
        fast_settings,
        engine_settings,
    ):
        model = stub_model_factory({"insight_generator": canned_insights})
        service = self._service(model, fast_settings, engine_settings)

        result = asyncio.run(service.generate_insights(positions_payload, portfolio_payload))

        assert not result.degraded
        assert {insight.source for insight in result.data} == {"agent-pipeline"}

    def test_degraded_insights_keep_fallback_source(
        self, positions_payload, portfolio_payload, stub_model_factory, fast_settings, engine_settings
    ):
        service = self._service(stub_model_factory(), fast_settings, engine_settings)

        result = asyncio.run(service.generate_insights(positions_payload, portfolio_payload))

        assert result.degraded
        assert result.data[0].source == "fallback"

    def test_pipelines_share_settings(self, stub_model_factory, fast_settings, engine_settings):
        service = self._service(stub_model_factory(), fast_settings, engine_settings)

        for pipeline in (service.insights, service.diversification, service.strategy, service.scenario):
            assert pipeline.settings is fast_settings
            assert pipeline.llm is service.llm

    def test_analyze_scenario_from_dicts(
        self, positions_payload, portfolio_payload, stub_model_factory, fast_settings, engine_settings
    ):
        model = stub_model_factory({"impact_analyzer": '[{"metric": "Liquidity", "metricKey": "liquidity"}]'})
        service = self._service(model, fast_settings, engine_settings)

        result = asyncio.run(
            service.analyze_scenario(
                positions_payload,
                portfolio_payload,
                {"asset": "JNJ", "action": "sell", "quantity": 250, "price": 160},
            )
        )

        assert not result.degraded
        assert [pos.symbol for pos in result.final_state["new_positions"]] == ["AAPL"]
        assert result.final_state["new_portfolio"].cash_value == pytest.approx(50000)
        assert result.data[0].change is not None

    def test_list_helpers(self, positions_payload, portfolio_payload, stub_model_factory, fast_settings, engine_settings):
        service = self._service(stub_model_factory(), fast_settings, engine_settings)

        advice = asyncio.run(service.advice_list(positions_payload, portfolio_payload))

        assert [item.id for item in advice] == [item.id for item in fallback_strategy_advice()]
