"""Financial calculators: net worth, cash flow, spending trends, projections."""

from .cash_flow import calculate_cash_flow
from .net_worth import bucket_accounts, calculate_net_worth
from .projection import project
from .trends import (
    SEASONS,
    TrendReport,
    analyze_trends,
    build_trend_report,
    detect_anomalies,
    spending_transactions,
)

__all__ = [
    "SEASONS",
    "TrendReport",
    "analyze_trends",
    "bucket_accounts",
    "build_trend_report",
    "calculate_cash_flow",
    "calculate_net_worth",
    "detect_anomalies",
    "project",
    "spending_transactions",
]
