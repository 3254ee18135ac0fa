"""Pytest configuration and fixtures."""

import asyncio
import json

import pytest

from portfolio_insights.config.settings import EngineSettings, ModelSettings
from portfolio_insights.models import Portfolio, Position


class StubModel:
    """Model collaborator that answers by LangChain run name.

    Responses may be strings, exceptions (raised) or callables taking the
    prompt. Nodes without a configured response get a short narrative.
    """

    def __init__(self, responses: dict | None = None, delays: dict | None = None):
        self.responses = responses or {}
        self.delays = delays or {}
        self.calls: list[str] = []
        self.prompts: dict[str, str] = {}

    async def ainvoke(self, input, config=None, **kwargs):
        name = (config or {}).get("run_name")
        self.calls.append(name)
        self.prompts[name] = input

        if name in self.delays:
            await asyncio.sleep(self.delays[name])

        response = self.responses.get(name, f"{name} narrative")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(input)
        return response


@pytest.fixture
def stub_model_factory():
    """Build a StubModel with the given responses and delays."""
    return StubModel


@pytest.fixture
def fast_settings() -> ModelSettings:
    """Model settings with a single attempt and no retry waits."""
    return ModelSettings(
        _env_file=None,
        max_retries=1,
        retry_min_wait=0,
        retry_max_wait=0,
        request_timeout=5,
        prompt_record_dir=None,
    )


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings(_env_file=None, run_timeout_seconds=5.0)


@pytest.fixture
def sample_positions() -> list[Position]:
    """Two holdings worth 60k in total."""
    return [
        Position(
            id="pos-aapl",
            symbol="AAPL",
            name="Apple Inc.",
            quantity=100,
            average_cost=150.0,
            current_price=200.0,
            sector="technology",
            liquidity_score=95,
        ),
        Position(
            id="pos-jnj",
            symbol="JNJ",
            name="Johnson & Johnson",
            quantity=250,
            average_cost=150.0,
            current_price=160.0,
            sector="healthcare",
            liquidity_score=90,
        ),
    ]


@pytest.fixture
def sample_portfolio() -> Portfolio:
    """Portfolio holding the sample positions plus 10k cash."""
    return Portfolio(id="test-portfolio", total_value=70000.0, cash_value=10000.0)


@pytest.fixture
def canned_insights() -> str:
    """Terminal response of the insight pipeline, wrapped in prose."""
    payload = {
        "insights": [
            {
                "title": "Technology concentration",
                "description": "AAPL makes up a large share of the portfolio.",
                "confidence": 85,
                "type": "risk",
                "relatedAssets": ["AAPL"],
            },
            {
                "title": "Add defensive exposure",
                "description": "Healthcare holdings balance growth risk.",
                "confidence": 78,
                "type": "opportunity",
                "relatedAssets": ["JNJ"],
            },
            {
                "title": "Rebalance quarterly",
                "description": "Regular rebalancing keeps weights on target.",
                "confidence": 72,
                "type": "suggestion",
                "relatedAssets": [],
            },
        ]
    }
    return "Here are the insights:\n" + json.dumps(payload, indent=2) + "\nLet me know."
