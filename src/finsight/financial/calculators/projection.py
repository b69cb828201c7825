"""Short forward projection from the tail of a trend series."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from finsight.core.money import ZERO, round_money, sum_money

from ..models import AnalysisType, Projection, TrendPoint

DEFAULT_WINDOW = 3
INSUFFICIENT_DATA = "Insufficient data for projection"

_PERIOD_NAMES = {
    AnalysisType.MONTHLY: "month",
    AnalysisType.WEEKLY: "week",
    AnalysisType.DAILY: "day",
    AnalysisType.SEASONAL: "season",
}


def project(
    trend_points: Sequence[TrendPoint],
    analysis_type: AnalysisType | str | None = None,
    window: int = DEFAULT_WINDOW,
) -> Projection:
    """Project the next period from the last *window* points.

    ``next_period = avg + avg_delta`` floored at zero; confidence falls as the
    period-over-period deltas disperse relative to the average amount.
    Fewer than two points yields a zero-confidence "insufficient data" result.
    """
    if len(trend_points) < 2:
        return Projection(next_period=ZERO, confidence=0, factors=[INSUFFICIENT_DATA])

    recent = list(trend_points)[-max(window, 2) :]
    amounts = [p.amount for p in recent]
    average = sum_money(amounts) / len(amounts)

    deltas = [current - previous for previous, current in zip(amounts, amounts[1:])]
    avg_delta = sum_money(deltas) / len(deltas)
    next_period = round_money(max(ZERO, average + avg_delta))

    variance = sum_money((d - avg_delta) ** 2 for d in deltas) / len(deltas)
    stddev = variance.sqrt()
    if average > 0:
        raw_confidence = Decimal(100) - stddev / average * 100
        confidence = int(min(Decimal(100), max(ZERO, raw_confidence)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    else:
        confidence = 0

    if avg_delta > 0:
        factors = ["Upward spending trend"]
    elif avg_delta < 0:
        factors = ["Downward spending trend"]
    else:
        factors = ["Stable spending pattern"]

    period = _PERIOD_NAMES.get(AnalysisType(analysis_type)) if analysis_type else None
    if period:
        factors.append(f"Based on the last {len(recent)} {period}s")

    return Projection(next_period=next_period, confidence=confidence, factors=factors)
