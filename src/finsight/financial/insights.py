"""
Rule-based insights and the narrative-generator fallback.

The narrative generator is an external collaborator that turns metrics and
trends into prose.  These deterministic rules produce short sentences from the
same data and are used whenever that collaborator is missing, fails, or
returns something that is not a non-empty list of strings.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from loguru import logger

from finsight.core.exceptions import NarrativeError
from finsight.core.money import ZERO, sum_money

from .models import AnalysisType, MetricsSummary, TrendPoint
from .sources import NarrativeGenerator

NO_DATA_INSIGHT = "No spending data available for the selected period."
NO_ANOMALIES_INSIGHT = "No unusual spending patterns detected in your transaction history."

NARRATIVE_SOURCE = "narrative"
RULES_SOURCE = "rules"

_PERIOD_NOUNS = {
    AnalysisType.MONTHLY: "month",
    AnalysisType.WEEKLY: "week",
    AnalysisType.DAILY: "day",
}


def _money(amount: Decimal) -> str:
    return f"${amount:,.2f}"


def _share(part: Decimal, whole: Decimal) -> str:
    return f"{part / whole * 100:.1f}%"


def _period_change_insights(trends: Sequence[TrendPoint], noun: str, threshold: float) -> list[str]:
    growth = [t for t in trends if t.percent_change is not None and t.percent_change > threshold]
    decline = [t for t in trends if t.percent_change is not None and t.percent_change < -threshold]
    insights = []
    if growth:
        peak = max(growth, key=lambda t: t.percent_change)
        insights.append(
            f"Spending increased significantly in {len(growth)} {noun}(s), with the highest increase of "
            f"{peak.percent_change:.1f}% in {peak.period}."
        )
    if decline:
        trough = min(decline, key=lambda t: t.percent_change)
        insights.append(
            f"Spending decreased significantly in {len(decline)} {noun}(s), with the largest decrease of "
            f"{abs(trough.percent_change):.1f}% in {trough.period}."
        )
    if not insights:
        insights.append(f"Spending stayed within {threshold:g}% {noun} over {noun} across {len(trends)} {noun}(s).")
    return insights


def trend_insights(
    trends: Sequence[TrendPoint],
    analysis_type: AnalysisType | str,
    significant_change_pct: float = 10.0,
) -> list[str]:
    """Deterministic insight sentences for a trend series."""
    analysis_type = AnalysisType(analysis_type)

    if analysis_type == AnalysisType.ANOMALY:
        if not trends:
            return [NO_ANOMALIES_INSIGHT]
        top = trends[0]
        return [
            f"Detected {len(trends)} unusual spending day(s). "
            f"Your highest anomaly was {_money(top.amount)} on {top.period}."
        ]

    total = sum_money(t.amount for t in trends)
    if not trends or total == ZERO:
        return [NO_DATA_INSIGHT]

    if analysis_type in _PERIOD_NOUNS:
        return _period_change_insights(trends, _PERIOD_NOUNS[analysis_type], significant_change_pct)

    if analysis_type == AnalysisType.CATEGORY:
        top = trends[0]
        insights = [
            f'Your highest spending category is "{top.category}" accounting for '
            f"{_share(top.amount, total)} of total expenses."
        ]
        if len(trends) > 3:
            top_three = sum_money(t.amount for t in trends[:3])
            insights.append(f"Your top 3 categories account for {_share(top_three, total)} of all spending.")
        return insights

    # Seasonal: max/min keep the first season on ties
    highest = max(trends, key=lambda t: t.amount)
    lowest = min(trends, key=lambda t: t.amount)
    return [f"You spend the most during {highest.period} and least during {lowest.period}."]


def metrics_insights(metrics: MetricsSummary) -> list[str]:
    """Deterministic summary sentences for a ``MetricsSummary``."""
    if metrics.account_count == 0:
        return ["No accounts connected yet. Link an account or add a manual asset to see your net worth."]

    insights = [
        f"Your net worth is {_money(metrics.net_worth)}: {_money(metrics.total_assets)} in assets "
        f"against {_money(metrics.total_liabilities)} in liabilities."
    ]

    flow = metrics.monthly_cash_flow
    if flow > 0:
        insights.append(f"You saved {_money(flow)} over the last month.")
    elif flow < 0:
        insights.append(f"You spent {_money(-flow)} more than you earned over the last month.")

    if metrics.monthly_expenses > 0:
        runway = metrics.liquid_assets / metrics.monthly_expenses
        insights.append(f"Your liquid assets cover {runway:.1f} months of expenses.")

    if metrics.assets_by_type and metrics.total_assets > 0:
        category, amount = max(metrics.assets_by_type.items(), key=lambda kv: kv[1])
        label = category.replace("_", " ").title()
        insights.append(f"{label} makes up {_share(amount, metrics.total_assets)} of your assets.")
    return insights


def _check_narrative(output) -> list[str]:
    if isinstance(output, str):
        output = [output]
    if not isinstance(output, list | tuple) or not output:
        raise NarrativeError(f"Narrative generator returned {type(output).__name__}, expected a list of strings")
    cleaned = [s.strip() for s in output if isinstance(s, str) and s.strip()]
    if len(cleaned) != len(output):
        raise NarrativeError("Narrative generator returned empty or non-string insights")
    return cleaned


async def narrate(
    generator: NarrativeGenerator | None,
    metrics: MetricsSummary | None,
    trends: Sequence[TrendPoint] | None,
    fallback: list[str],
) -> tuple[list[str], str]:
    """Ask the narrative generator for insights, falling back to *fallback*.

    Returns (insights, source) where source is ``"narrative"`` or ``"rules"``.
    """
    if generator is None:
        return list(fallback), RULES_SOURCE
    try:
        output = await generator.generate(metrics, list(trends) if trends is not None else None)
        return _check_narrative(output), NARRATIVE_SOURCE
    except NarrativeError as e:
        logger.warning(f"Narrative generator output rejected, using rule-based insights: {e}")
    except Exception as e:
        logger.warning(f"Narrative generator unavailable, using rule-based insights: {e}")
    return list(fallback), RULES_SOURCE
