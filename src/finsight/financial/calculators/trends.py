"""
Spending trend analysis.

Groups completed expense transactions into time buckets (month, week, day),
categories or seasons, and flags statistically unusual spending days.

Rules:
- Income and pending transactions never enter a spending trend.
- ``percent_change`` compares a bucket with the one immediately before it and
  is left unset when the previous bucket is zero.
- Weeks start on Sunday.
- A day is anomalous when its total is strictly greater than
  ``mean + k * stddev`` (population standard deviation over days that had
  spending, k = 2 by default).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from loguru import logger

from finsight.core.money import ZERO, percent_change, round_money, sum_money

from ..insights import trend_insights
from ..models import AnalysisType, DateRange, Projection, TrendPoint, Transaction

SEASONS: dict[str, tuple[int, ...]] = {
    "Spring": (3, 4, 5),
    "Summer": (6, 7, 8),
    "Fall": (9, 10, 11),
    "Winter": (12, 1, 2),
}

_MONTH_TO_SEASON = {month: season for season, months in SEASONS.items() for month in months}

DEFAULT_ANOMALY_MULTIPLIER = Decimal("2")
OTHER_CATEGORY = "Other"


def spending_transactions(
    transactions: Iterable[Transaction],
    date_range: DateRange | None = None,
    categories: Sequence[str] | None = None,
) -> list[Transaction]:
    """Completed expenses, optionally limited to a date range and category list."""
    wanted = {c.lower() for c in categories} if categories else None
    result = []
    for tx in transactions:
        if not tx.is_completed or not tx.is_expense:
            continue
        if date_range is not None and tx.date not in date_range:
            continue
        if wanted is not None and tx.category.lower() not in wanted:
            continue
        result.append(tx)
    return result


def _with_percent_changes(points: list[TrendPoint]) -> list[TrendPoint]:
    for previous, current in zip(points, points[1:]):
        current.percent_change = percent_change(current.amount, previous.amount)
    return points


def _sum_by(transactions: Iterable[Transaction], key) -> dict[Any, tuple[Decimal, int]]:
    totals: dict[Any, tuple[Decimal, int]] = {}
    for tx in transactions:
        k = key(tx)
        amount, count = totals.get(k, (ZERO, 0))
        totals[k] = (amount + tx.amount, count + 1)
    return totals


def start_of_week(day: date) -> date:
    """The Sunday on or before *day*."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


# ── Time buckets ─────────────────────────────────────────────────────


def monthly_trends(transactions: Iterable[Transaction], date_range: DateRange) -> list[TrendPoint]:
    totals = _sum_by(transactions, lambda tx: (tx.date.year, tx.date.month))
    points = []
    year, month = date_range.start.year, date_range.start.month
    while (year, month) <= (date_range.end.year, date_range.end.month):
        amount, count = totals.get((year, month), (ZERO, 0))
        points.append(TrendPoint(period=date(year, month, 1).strftime("%b %Y"), amount=amount, transaction_count=count))
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return _with_percent_changes(points)


def weekly_trends(transactions: Iterable[Transaction], date_range: DateRange) -> list[TrendPoint]:
    totals = _sum_by(transactions, lambda tx: start_of_week(tx.date))
    points = []
    week_start = start_of_week(date_range.start)
    while week_start <= date_range.end:
        week_end = week_start + timedelta(days=6)
        amount, count = totals.get(week_start, (ZERO, 0))
        points.append(
            TrendPoint(
                period=f"{week_start:%b %d} - {week_end:%b %d}",
                amount=amount,
                transaction_count=count,
            )
        )
        week_start += timedelta(days=7)
    return _with_percent_changes(points)


def daily_trends(transactions: Iterable[Transaction], date_range: DateRange) -> list[TrendPoint]:
    totals = _sum_by(transactions, lambda tx: tx.date)
    points = []
    day = date_range.start
    while day <= date_range.end:
        amount, count = totals.get(day, (ZERO, 0))
        points.append(TrendPoint(period=f"{day:%b %d, %Y}", amount=amount, transaction_count=count))
        day += timedelta(days=1)
    return _with_percent_changes(points)


# ── Groupings ────────────────────────────────────────────────────────


def category_trends(transactions: Iterable[Transaction], date_range: DateRange) -> list[TrendPoint]:
    """Per-category totals, largest first.

    The sort is stable: equal amounts keep first-seen order, which decides the
    "top spending" categories reported downstream.
    """
    totals = _sum_by(transactions, lambda tx: tx.category or OTHER_CATEGORY)
    label = f"{date_range.start:%b %Y} - {date_range.end:%b %Y}"
    points = [
        TrendPoint(period=label, amount=amount, transaction_count=count, category=category)
        for category, (amount, count) in totals.items()
    ]
    return sorted(points, key=lambda p: p.amount, reverse=True)


def seasonal_trends(transactions: Iterable[Transaction]) -> list[TrendPoint]:
    """Totals for each of the four seasons, always in Spring, Summer, Fall, Winter order."""
    totals = _sum_by(transactions, lambda tx: _MONTH_TO_SEASON[tx.date.month])
    points = []
    for season in SEASONS:
        amount, count = totals.get(season, (ZERO, 0))
        points.append(TrendPoint(period=season, amount=amount, transaction_count=count))
    return points


def detect_anomalies(
    transactions: Iterable[Transaction],
    multiplier: Decimal = DEFAULT_ANOMALY_MULTIPLIER,
) -> list[TrendPoint]:
    """Days whose total spending is strictly above ``mean + multiplier * stddev``.

    Fewer than two distinct spending days yields no anomalies.
    """
    totals = _sum_by(transactions, lambda tx: tx.date)
    if len(totals) < 2:
        return []

    amounts = [amount for amount, _ in totals.values()]
    n = Decimal(len(amounts))
    mean = sum_money(amounts) / n
    variance = sum_money((a - mean) ** 2 for a in amounts) / n
    stddev = variance.sqrt()
    threshold = mean + Decimal(multiplier) * stddev
    logger.debug(f"Anomaly threshold {threshold} (mean={mean}, stddev={stddev}, days={len(amounts)})")

    anomalies = [
        TrendPoint(period=f"{day:%b %d, %Y}", amount=amount, transaction_count=count, anomaly=True)
        for day, (amount, count) in sorted(totals.items())
        if amount > threshold
    ]
    return sorted(anomalies, key=lambda p: p.amount, reverse=True)


def analyze_trends(
    transactions: Iterable[Transaction],
    analysis_type: AnalysisType | str,
    date_range: DateRange,
    *,
    categories: Sequence[str] | None = None,
    anomaly_multiplier: Decimal = DEFAULT_ANOMALY_MULTIPLIER,
) -> list[TrendPoint]:
    """Build the trend series for *analysis_type* over completed expenses in *date_range*."""
    analysis_type = AnalysisType(analysis_type)
    spending = spending_transactions(transactions, date_range, categories)

    if analysis_type == AnalysisType.MONTHLY:
        return monthly_trends(spending, date_range)
    if analysis_type == AnalysisType.WEEKLY:
        return weekly_trends(spending, date_range)
    if analysis_type == AnalysisType.DAILY:
        return daily_trends(spending, date_range)
    if analysis_type == AnalysisType.SEASONAL:
        return seasonal_trends(spending)
    if analysis_type == AnalysisType.ANOMALY:
        return detect_anomalies(spending, anomaly_multiplier)
    return category_trends(spending, date_range)


@dataclass
class TrendReport:
    """A trend series with its headline figures and rule-based insights."""

    analysis_type: AnalysisType
    date_range: DateRange
    total_spent: Decimal
    average_per_period: Decimal
    trends: list[TrendPoint] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    projection: Projection | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "analysis_type": self.analysis_type.value,
            "start": self.date_range.start.isoformat(),
            "end": self.date_range.end.isoformat(),
            "total_spent": float(round_money(self.total_spent)),
            "average_per_period": float(round_money(self.average_per_period)),
            "trends": [p.to_dict() for p in self.trends],
            "insights": list(self.insights),
            "projection": self.projection.to_dict() if self.projection else None,
        }


def build_trend_report(
    transactions: Iterable[Transaction],
    analysis_type: AnalysisType | str,
    date_range: DateRange,
    *,
    categories: Sequence[str] | None = None,
    anomaly_multiplier: Decimal = DEFAULT_ANOMALY_MULTIPLIER,
    significant_change_pct: float = 10.0,
) -> TrendReport:
    """Run :func:`analyze_trends` and attach totals and rule-based insights."""
    analysis_type = AnalysisType(analysis_type)
    transactions = list(transactions)
    trends = analyze_trends(
        transactions,
        analysis_type,
        date_range,
        categories=categories,
        anomaly_multiplier=anomaly_multiplier,
    )
    spending = spending_transactions(transactions, date_range, categories)
    total_spent = round_money(sum_money(tx.amount for tx in spending))
    average = round_money(sum_money(p.amount for p in trends) / len(trends)) if trends else ZERO

    return TrendReport(
        analysis_type=analysis_type,
        date_range=date_range,
        total_spent=total_spent,
        average_per_period=average,
        trends=trends,
        insights=trend_insights(trends, analysis_type, significant_change_pct=significant_change_pct),
    )
