"""Input models: positions, portfolio snapshot and trade scenarios."""

import uuid

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .enums import RiskMode, TradeAction

DEFAULT_LIQUIDITY_SCORE = 80.0


class SnapshotModel(BaseModel):
    """Base for snapshot DTOs. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Position(SnapshotModel):
    """A single holding in the portfolio."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    symbol: str = Field(..., min_length=1, description="Ticker symbol")
    name: str = Field("", description="Display name, defaults to the symbol")
    quantity: float = Field(..., ge=0)
    average_cost: float = Field(0.0, ge=0)
    current_price: float = Field(0.0, ge=0)
    market_value: float | None = Field(
        None, ge=0, description="Defaults to quantity * current_price"
    )
    # The generated camelCase alias would be "unrealizedPnl"
    unrealized_pnl: float = Field(
        0.0,
        alias="unrealizedPnL",
        validation_alias=AliasChoices("unrealizedPnL", "unrealizedPnl", "unrealized_pnl"),
    )
    unrealized_pnl_percentage: float = Field(
        0.0,
        alias="unrealizedPnLPercentage",
        validation_alias=AliasChoices(
            "unrealizedPnLPercentage", "unrealizedPnlPercentage", "unrealized_pnl_percentage"
        ),
    )
    weight: float = Field(0.0, description="Share of total portfolio value, in percent")
    sector: str | None = None
    liquidity_score: float = Field(DEFAULT_LIQUIDITY_SCORE, ge=0, le=100)
    investment_memo: str | None = None

    @model_validator(mode="after")
    def _fill_defaults(self) -> "Position":
        if not self.name:
            self.name = self.symbol
        if self.market_value is None:
            self.market_value = self.quantity * self.current_price
        return self


class Portfolio(SnapshotModel):
    """Aggregate account values."""

    id: str = "default"
    total_value: float = Field(..., ge=0, description="Market value of holdings plus cash")
    cash_value: float = Field(0.0, ge=0)
    risk_mode: RiskMode = RiskMode.RETAIL


class TradeScenario(SnapshotModel):
    """A hypothetical buy or sell order."""

    asset: str = Field(..., min_length=1)
    action: TradeAction
    quantity: float = Field(..., gt=0)
    price: float = Field(..., gt=0)

    @property
    def notional(self) -> float:
        return self.quantity * self.price


class RiskMetrics(SnapshotModel):
    """Risk scores on a 0-100 scale."""

    concentration: float = 0.0
    allocation: float = 0.0
    correlation: float = 0.0
    liquidity: float = 0.0
