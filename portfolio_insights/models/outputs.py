"""Output entities produced by the pipelines."""

import uuid
from datetime import datetime

from pydantic import Field, field_validator, model_validator

from .enums import InsightType
from .portfolio import SnapshotModel


def _new_id() -> str:
    return str(uuid.uuid4())


class Insight(SnapshotModel):
    """An AI investment insight."""

    id: str = Field(default_factory=_new_id)
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0, le=100, description="Confidence percentage")
    type: InsightType
    related_assets: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)
    source: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class DiversificationRecommendation(SnapshotModel):
    """A suggested asset to diversify the portfolio."""

    id: str = Field(default_factory=_new_id)
    asset_id: str = ""
    asset_symbol: str = Field(..., min_length=1)
    asset_name: str = ""
    amount: float = Field(..., ge=0, description="Suggested amount in USD")
    correlation: float = Field(..., ge=-1, le=1)
    liquidity_score: float = Field(..., ge=0, le=100)
    reason: str = ""

    @model_validator(mode="after")
    def _fill_defaults(self) -> "DiversificationRecommendation":
        if not self.asset_id:
            self.asset_id = self.asset_symbol
        if not self.asset_name:
            self.asset_name = self.asset_symbol
        return self


class StrategyAdvice(SnapshotModel):
    """A portfolio strategy recommendation."""

    id: str = Field(default_factory=_new_id)
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    recommended: bool = False


class ScenarioImpactRow(SnapshotModel):
    """Impact of a hypothetical trade on one analysis dimension."""

    id: str = Field(default_factory=_new_id)
    metric: str = Field(..., min_length=1)
    metric_key: str | None = None
    current_value: float | None = None
    new_value: float | None = None
    change: float | None = Field(None, description="Relative change in percent")
    insight: str | None = None
    recommendation: str | None = None
