"""Enumeration types for the pipeline models."""

from enum import Enum


class RiskMode(str, Enum):
    """Investor profile driving concentration thresholds."""

    RETAIL = "retail"
    ADVANCED = "advanced"


class TradeAction(str, Enum):
    """Side of a hypothetical trade."""

    BUY = "buy"
    SELL = "sell"


class InsightType(str, Enum):
    """Classification of a generated insight."""

    RISK = "risk"
    OPPORTUNITY = "opportunity"
    SUGGESTION = "suggestion"


class RiskMetric(str, Enum):
    """Risk scores computed by the risk calculator."""

    CONCENTRATION = "concentration"
    ALLOCATION = "allocation"
    CORRELATION = "correlation"
    LIQUIDITY = "liquidity"
