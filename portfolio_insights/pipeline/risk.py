"""Deterministic portfolio risk scores and trade simulation.

All scores are on a 0-100 scale where higher means riskier.
"""

import math
from typing import Mapping, Sequence

import structlog

from portfolio_insights.models import (
    DEFAULT_LIQUIDITY_SCORE,
    Portfolio,
    Position,
    RiskMetrics,
    RiskMode,
    TradeAction,
    TradeScenario,
)

logger = structlog.get_logger(__name__)

# Single-asset weight (percent of total value) above which concentration
# risk grows quadratically.
CONCENTRATION_THRESHOLDS = {RiskMode.RETAIL: 10.0, RiskMode.ADVANCED: 5.0}
DEFAULT_CATEGORY = "stock"
CASH_CATEGORY = "cash"


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return min(high, max(low, value))


def _market_value(position: Position) -> float:
    if position.market_value is not None:
        return position.market_value
    return position.quantity * position.current_price


def concentration_threshold(risk_mode: RiskMode) -> float:
    return CONCENTRATION_THRESHOLDS[RiskMode(risk_mode)]


def concentration_risk(positions: Sequence[Position], portfolio: Portfolio | None) -> float:
    """Score the largest single-asset weight against the risk-mode threshold.

    Below the threshold the score grows linearly up to 50; above it, it grows
    with the square of the excess ratio.

    Args:
        positions: Current holdings.
        portfolio: Portfolio totals. Without a positive total value a neutral
            score of 50 is returned.

    Returns:
        Concentration risk score.
    """
    if not positions:
        return 0.0
    if portfolio is None or portfolio.total_value <= 0:
        return 50.0

    max_weight = max(_market_value(pos) / portfolio.total_value * 100 for pos in positions)
    threshold = concentration_threshold(portfolio.risk_mode)

    if max_weight <= threshold:
        score = max_weight / threshold * 50
    else:
        excess_ratio = (max_weight - threshold) / threshold
        score = 50 + excess_ratio * excess_ratio * 50

    return _clamp(score)


def category_weights(positions: Sequence[Position], portfolio: Portfolio) -> dict[str, float]:
    """Percent of total value held per sector, plus cash."""
    if portfolio.total_value <= 0:
        return {}

    values: dict[str, float] = {}
    for pos in positions:
        category = pos.sector or DEFAULT_CATEGORY
        values[category] = values.get(category, 0.0) + _market_value(pos)

    weights = {
        category: value / portfolio.total_value * 100 for category, value in values.items()
    }
    if portfolio.cash_value > 0:
        weights[CASH_CATEGORY] = portfolio.cash_value / portfolio.total_value * 100
    return weights


def allocation_risk(positions: Sequence[Position], portfolio: Portfolio | None) -> float:
    """Normalised Herfindahl-Hirschman index over sector and cash weights."""
    if not positions:
        return 0.0
    if portfolio is None or portfolio.total_value <= 0:
        return 50.0

    weights = category_weights(positions, portfolio)
    n = len(weights)
    if n == 0:
        return 0.0
    if n == 1:
        return 100.0

    hhi = sum((weight / 100) ** 2 for weight in weights.values())
    min_hhi = 1 / n
    return _clamp((hhi - min_hhi) / (1 - min_hhi) * 100)


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation of two equally long series. 0 when undefined."""
    if len(x) != len(y) or not x:
        return 0.0

    n = len(x)
    mean_x = sum(x) / n
    mean_y = sum(y) / n

    cov_xy = var_x = var_y = 0.0
    for xi, yi in zip(x, y):
        dx = xi - mean_x
        dy = yi - mean_y
        cov_xy += dx * dy
        var_x += dx * dx
        var_y += dy * dy

    denominator = math.sqrt(var_x * var_y)
    if denominator == 0:
        return 0.0
    return cov_xy / denominator


def correlation_risk(
    positions: Sequence[Position],
    price_history: Mapping[str, Sequence[float]] | None,
) -> float:
    """Mean absolute pairwise correlation of holdings' price series, times 100.

    Only holdings with at least two historical prices take part. Series are
    aligned on their most recent common length.
    """
    if len(positions) <= 1 or not price_history:
        return 0.0

    series = [
        list(price_history[pos.symbol])
        for pos in positions
        if len(price_history.get(pos.symbol) or []) >= 2
    ]
    if len(series) < 2:
        return 0.0

    total = 0.0
    count = 0
    for i in range(len(series)):
        for j in range(i + 1, len(series)):
            length = min(len(series[i]), len(series[j]))
            total += abs(pearson_correlation(series[i][-length:], series[j][-length:]))
            count += 1

    return _clamp(total / count * 100) if count else 0.0


def liquidity_risk(positions: Sequence[Position]) -> float:
    """100 minus the value-weighted liquidity score of the holdings."""
    total = sum(_market_value(pos) for pos in positions)
    if total <= 0:
        return 0.0
    weighted = sum(_market_value(pos) * pos.liquidity_score for pos in positions) / total
    return _clamp(100 - weighted)


def calculate_risk_metrics(
    positions: Sequence[Position],
    portfolio: Portfolio | None,
    price_history: Mapping[str, Sequence[float]] | None = None,
) -> RiskMetrics:
    """Compute every risk score for a set of holdings."""
    return RiskMetrics(
        concentration=concentration_risk(positions, portfolio),
        allocation=allocation_risk(positions, portfolio),
        correlation=correlation_risk(positions, price_history),
        liquidity=liquidity_risk(positions),
    )


def relative_change(current: float, updated: float) -> float:
    """Percent change from ``current`` to ``updated``; 0 when current is 0."""
    if current == 0:
        return 0.0
    return (updated - current) / abs(current) * 100


def simulate_trade(
    positions: Sequence[Position],
    portfolio: Portfolio,
    scenario: TradeScenario,
) -> tuple[list[Position], Portfolio]:
    """Apply a hypothetical trade and return the resulting holdings.

    A buy adds ``quantity * price`` of market value to the asset (opening a
    new position if needed) and is funded with new money. A sell reduces the
    position proportionally, removes it once nothing is left and credits the
    proceeds to cash. Weights are recomputed against holdings plus cash.

    Args:
        positions: Current holdings. Not modified.
        portfolio: Current portfolio totals.
        scenario: The trade to simulate.

    Returns:
        Tuple of (new positions, new portfolio).
    """
    new_positions = [pos.model_copy() for pos in positions]
    index = next(
        (i for i, pos in enumerate(new_positions) if pos.symbol == scenario.asset),
        None,
    )
    cash = portfolio.cash_value

    if scenario.action == TradeAction.BUY:
        if index is not None:
            existing = new_positions[index]
            new_quantity = existing.quantity + scenario.quantity
            total_cost = existing.average_cost * existing.quantity + scenario.notional
            new_average_cost = total_cost / new_quantity
            new_positions[index] = existing.model_copy(
                update={
                    "quantity": new_quantity,
                    "average_cost": new_average_cost,
                    "market_value": _market_value(existing) + scenario.notional,
                    "unrealized_pnl": (scenario.price - new_average_cost) * new_quantity,
                }
            )
        else:
            new_positions.append(
                Position(
                    symbol=scenario.asset,
                    name=scenario.asset,
                    quantity=scenario.quantity,
                    average_cost=scenario.price,
                    current_price=scenario.price,
                    market_value=scenario.notional,
                    liquidity_score=DEFAULT_LIQUIDITY_SCORE,
                )
            )

    elif scenario.action == TradeAction.SELL:
        if index is None:
            logger.warning("simulate_trade_sell_not_held", asset=scenario.asset)
        else:
            existing = new_positions[index]
            sold = min(scenario.quantity, existing.quantity)
            new_quantity = existing.quantity - scenario.quantity
            cash += sold * scenario.price

            if new_quantity <= 0:
                del new_positions[index]
            else:
                new_positions[index] = existing.model_copy(
                    update={
                        "quantity": new_quantity,
                        "market_value": _market_value(existing) * new_quantity / existing.quantity,
                    }
                )

    total_value = sum(_market_value(pos) for pos in new_positions) + cash
    new_positions = [
        pos.model_copy(
            update={"weight": _market_value(pos) / total_value * 100 if total_value > 0 else 0.0}
        )
        for pos in new_positions
    ]
    new_portfolio = portfolio.model_copy(update={"total_value": total_value, "cash_value": cash})

    return new_positions, new_portfolio
