"""Default results returned when a pipeline cannot produce its own.

Every builder returns fresh model instances with deterministic ids, so a
degraded result is stable across calls and never shares mutable state.
"""

from typing import Any, Mapping

from portfolio_insights.models import (
    DiversificationRecommendation,
    Insight,
    InsightType,
    RiskMetric,
    RiskMetrics,
    ScenarioImpactRow,
    StrategyAdvice,
)

from .risk import relative_change

FALLBACK_SOURCE = "fallback"


def fallback_insights() -> list[Insight]:
    return [
        Insight(
            id="fallback-insight-1",
            title="Portfolio analysis",
            description=(
                "Detailed analysis is temporarily unavailable. Review your holdings "
                "for concentration and keep the allocation aligned with your goals."
            ),
            confidence=100,
            type=InsightType.SUGGESTION,
            related_assets=[],
            source=FALLBACK_SOURCE,
        )
    ]


def fallback_recommendations() -> list[DiversificationRecommendation]:
    rows = [
        ("VTI", "Vanguard Total Stock Market ETF", 5000, 0.1, 98,
         "Broad US equity exposure with low single-name risk"),
        ("BND", "Vanguard Total Bond Market ETF", 3000, 0.05, 95,
         "Bond exposure with low correlation to equities"),
        ("VEA", "Vanguard FTSE Developed Markets ETF", 2000, 0.3, 92,
         "Developed international markets for geographic diversification"),
    ]
    return [
        DiversificationRecommendation(
            id=f"fallback-recommendation-{i}",
            asset_id=symbol,
            asset_symbol=symbol,
            asset_name=name,
            amount=amount,
            correlation=correlation,
            liquidity_score=liquidity,
            reason=reason,
        )
        for i, (symbol, name, amount, correlation, liquidity, reason) in enumerate(rows, start=1)
    ]


def fallback_strategy_advice() -> list[StrategyAdvice]:
    rows = [
        ("Rebalance the portfolio regularly",
         "Review allocations every quarter and bring them back to target weights.",
         True),
        ("Watch highly concentrated positions",
         "Trim any single holding that grows well beyond your concentration limit.",
         True),
        ("Keep an adequate cash reserve",
         "Hold enough cash to cover near-term needs and take advantage of opportunities.",
         False),
    ]
    return [
        StrategyAdvice(
            id=f"fallback-advice-{i}",
            title=title,
            description=description,
            recommended=recommended,
        )
        for i, (title, description, recommended) in enumerate(rows, start=1)
    ]


_STATIC_SCENARIO_ROWS = [
    ("Total portfolio value", None, 150000.0, 152500.0, 1.67,
     "Portfolio value grows with the new position.",
     "Confirm the trade fits your cash plan."),
    ("Concentration risk score", RiskMetric.CONCENTRATION, 45.0, 42.0, -6.67,
     "Concentration decreases slightly.",
     "Keep single positions within your limit."),
    ("Correlation risk score", RiskMetric.CORRELATION, 60.0, 58.0, -3.33,
     "Holdings become slightly less correlated.",
     "Favour assets that move independently."),
    ("Liquidity risk score", RiskMetric.LIQUIDITY, 80.0, 82.0, 2.5,
     "Liquidity profile is broadly unchanged.",
     "Keep part of the portfolio in liquid assets."),
    ("Allocation risk score", RiskMetric.ALLOCATION, 55.0, 53.0, -3.64,
     "Allocation across categories improves slightly.",
     "Continue spreading value across sectors."),
]

_METRIC_LABELS = {
    RiskMetric.CONCENTRATION: "Concentration risk score",
    RiskMetric.ALLOCATION: "Allocation risk score",
    RiskMetric.CORRELATION: "Correlation risk score",
    RiskMetric.LIQUIDITY: "Liquidity risk score",
}


def _static_scenario_rows() -> list[ScenarioImpactRow]:
    return [
        ScenarioImpactRow(
            id=f"fallback-impact-{i}",
            metric=metric,
            metric_key=key.value if key else None,
            current_value=current,
            new_value=new,
            change=change,
            insight=insight,
            recommendation=recommendation,
        )
        for i, (metric, key, current, new, change, insight, recommendation) in enumerate(
            _STATIC_SCENARIO_ROWS, start=1
        )
    ]


def fallback_scenario_impact(state: Mapping[str, Any] | None = None) -> list[ScenarioImpactRow]:
    """Impact rows from the computed risk metrics, or static rows without them."""
    state = state or {}
    current = state.get("current_risk_metrics")
    updated = state.get("new_risk_metrics")
    if not isinstance(current, RiskMetrics) or not isinstance(updated, RiskMetrics):
        return _static_scenario_rows()

    rows = []
    for i, (metric, label) in enumerate(_METRIC_LABELS.items(), start=1):
        before = getattr(current, metric.value)
        after = getattr(updated, metric.value)
        direction = "decreases" if after < before else "increases" if after > before else "is unchanged"
        rows.append(
            ScenarioImpactRow(
                id=f"fallback-impact-{i}",
                metric=f"{label} (fallback)",
                metric_key=metric.value,
                current_value=round(before, 2),
                new_value=round(after, 2),
                change=round(relative_change(before, after), 2),
                insight=f"{label} {direction} after the trade.",
                recommendation="Review the trade against your risk limits.",
            )
        )
    return rows
