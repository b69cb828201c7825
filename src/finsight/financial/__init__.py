"""Financial aggregation engine: normalization, metrics, trends, projections."""

from .models import (
    Account,
    AccountCategory,
    AnalysisType,
    DataSource,
    DateRange,
    MetricsSummary,
    OverviewStatus,
    Projection,
    SourceSystem,
    Transaction,
    TransactionType,
    TrendPoint,
)
from .service import AggregationService, NetWorthView, Overview, SpendingTrends
from .sources import AccountProvider, DocumentStore, InMemoryDocumentStore, NarrativeGenerator

__all__ = [
    "Account",
    "AccountCategory",
    "AccountProvider",
    "AggregationService",
    "AnalysisType",
    "DataSource",
    "DateRange",
    "DocumentStore",
    "InMemoryDocumentStore",
    "MetricsSummary",
    "NarrativeGenerator",
    "NetWorthView",
    "Overview",
    "OverviewStatus",
    "Projection",
    "SourceSystem",
    "SpendingTrends",
    "Transaction",
    "TransactionType",
    "TrendPoint",
]
