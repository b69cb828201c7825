"""
Aggregation service: the engine's entry point.

Fans out to the account provider and the document-store collections
concurrently, normalizes whatever came back, computes and validates metrics,
and memoizes each view per user for a short TTL.

Resilience rules:
- A failing connection or collection becomes a failed ``SourceBatch``; the
  remaining sources still flow through.  Nothing a single source does can fail
  the request.
- Cached account snapshots are normalized after live connections, so a live
  account always wins over its snapshot (duplicate ids are dropped).
- A hard sanity-bound violation degrades the overview (zeroed, flagged
  metrics) unless ``validation.strict`` is set, in which case it is raised.
"""

from __future__ import annotations

import asyncio
import copy
import dataclasses
from collections.abc import Awaitable, Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from loguru import logger

from finsight.core.config_schema import FinsightConfig
from finsight.core.exceptions import SanityBoundError
from finsight.core.utils.cache import CACHE_SOURCE, CacheKey, TTLCache

from .calculators import build_trend_report, calculate_net_worth
from .calculators import analyze_trends as _analyze_trends
from .calculators import project as _project
from .calculators.trends import TrendReport
from .demo import demo_accounts, resolve_data_source
from .history import HistoryDeltas, NetWorthHistory
from .insights import metrics_insights, narrate
from .models import (
    Account,
    AnalysisType,
    DataSource,
    DateRange,
    MetricsSummary,
    OverviewStatus,
    Projection,
    SourceSystem,
    Transaction,
    TrendPoint,
)
from .normalizer import Normalizer, SourceBatch, apply_category_overrides
from .sources import (
    ACCOUNT_COLLECTIONS,
    CACHED_ACCOUNTS,
    CATEGORIZED_TRANSACTIONS,
    CONNECTIONS,
    MANUAL_TRANSACTIONS,
    AccountProvider,
    DocumentStore,
    NarrativeGenerator,
)
from .validator import MetricsValidator, ValidationResult

COMPUTED_SOURCE = "computed"

TIME_SERIES_TYPES = (AnalysisType.MONTHLY, AnalysisType.WEEKLY, AnalysisType.DAILY)


def run_sync(coro: Awaitable[Any]) -> Any:
    """Run *coro* to completion from synchronous code.

    Inside a running event loop (notebooks, async web servers) the coroutine
    gets its own loop on a worker thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="finsight-sync") as pool:
        return pool.submit(asyncio.run, coro).result()


# ── Result types ─────────────────────────────────────────────────────


@dataclass
class Overview:
    """Accounts, transactions and validated metrics for one user."""

    user_id: str
    accounts: list[Account] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    metrics: MetricsSummary = field(default_factory=MetricsSummary)
    status: OverviewStatus = OverviewStatus.OK
    data_source: DataSource = DataSource.LIVE
    failed_sources: list[str] = field(default_factory=list)
    dropped_records: int = 0
    validation: ValidationResult | None = None
    deltas: HistoryDeltas = field(default_factory=HistoryDeltas)
    insights: list[str] = field(default_factory=list)
    insights_source: str = ""
    source: str = COMPUTED_SOURCE

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "status": self.status.value,
            "data_source": self.data_source.value,
            "source": self.source,
            "metrics": self.metrics.to_dict(),
            "deltas": self.deltas.to_dict(),
            "account_count": len(self.accounts),
            "transaction_count": len(self.transactions),
            "failed_sources": list(self.failed_sources),
            "dropped_records": self.dropped_records,
            "warnings": list(self.validation.warnings) if self.validation else [],
            "insights": list(self.insights),
        }


@dataclass
class NetWorthView:
    """Hero metric: net worth with its change over time."""

    user_id: str
    metrics: MetricsSummary
    deltas: HistoryDeltas
    status: OverviewStatus
    data_source: DataSource
    source: str = COMPUTED_SOURCE

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "net_worth": float(self.metrics.net_worth),
            "total_assets": float(self.metrics.total_assets),
            "total_liabilities": float(self.metrics.total_liabilities),
            "deltas": self.deltas.to_dict(),
            "status": self.status.value,
            "data_source": self.data_source.value,
            "source": self.source,
        }


@dataclass
class SpendingTrends:
    """A trend report for one user's spending over a timeframe."""

    user_id: str
    timeframe: str
    report: TrendReport
    status: OverviewStatus = OverviewStatus.OK
    failed_sources: list[str] = field(default_factory=list)
    insights_source: str = ""
    source: str = COMPUTED_SOURCE

    def to_dict(self) -> dict[str, Any]:
        data = self.report.to_dict()
        data.update(
            user_id=self.user_id,
            timeframe=self.timeframe,
            status=self.status.value,
            failed_sources=list(self.failed_sources),
            insights_source=self.insights_source,
            source=self.source,
        )
        return data


@dataclass
class _Gathered:
    batches: list[SourceBatch]
    overrides: list[dict[str, Any]]
    profile: dict[str, Any]


# ── Service ──────────────────────────────────────────────────────────


class AggregationService:
    """Owns the per-user cache and history and runs the aggregation pipeline."""

    def __init__(
        self,
        store: DocumentStore,
        provider: AccountProvider | None = None,
        narrator: NarrativeGenerator | None = None,
        settings: FinsightConfig | None = None,
        cache: TTLCache | None = None,
        history: NetWorthHistory | None = None,
        today: Callable[[], date] = date.today,
    ):
        """
        Args:
            store: Document store with the user's manual records and connections.
            provider: External account-data provider; linked connections are
                skipped when None.
            narrator: Optional narrative generator; rule-based insights are
                used when None or when it fails.
            settings: Validated configuration (defaults when None).
            cache: Request-coalescing cache (one is created when None).
            history: Net-worth history (one is created when None).
            today: Date source (injectable for tests).
        """
        self.settings = settings or FinsightConfig()
        self.store = store
        self.provider = provider
        self.narrator = narrator
        self.cache = cache if cache is not None else TTLCache(default_ttl=self.settings.cache.ttl_seconds)
        self.history = history if history is not None else NetWorthHistory.from_config(self.settings)
        self.validator = MetricsValidator.from_config(self.settings)
        self._today = today

    # -- fetching ------------------------------------------------------

    @staticmethod
    async def _batch(name: str, source: SourceSystem, fetch: Callable[[], Awaitable[SourceBatch]]) -> SourceBatch:
        try:
            return await fetch()
        except Exception as e:
            logger.warning(f"Source '{name}' unavailable: {e}")
            return SourceBatch(name=name, source=source, error=e)

    def _connection_batch(self, connection: dict[str, Any], start: date, end: date):
        conn_id = str(connection.get("id") or connection.get("itemId") or "unknown")
        name = f"connection:{conn_id}"
        source = (
            SourceSystem.LINKED_INVESTMENT
            if str(connection.get("type", "")).lower() == "investment"
            else SourceSystem.LINKED_BANK
        )
        credential = connection.get("accessToken") or connection.get("access_token")

        async def fetch() -> SourceBatch:
            if not credential:
                raise ValueError("connection has no access credential")
            accounts, transactions = await asyncio.gather(
                self.provider.get_accounts(credential),
                self.provider.get_transactions(credential, start, end),
            )
            institution = connection.get("institutionName") or connection.get("institution")
            if institution:
                for record in accounts:
                    record.setdefault("institution", institution)
            return SourceBatch(name=name, source=source, accounts=accounts, transactions=transactions)

        return self._batch(name, source, fetch)

    def _collection_batch(self, user_id: str, collection: str, source: SourceSystem, transactions: bool = False):
        async def fetch() -> SourceBatch:
            records = await self.store.list_records(user_id, collection)
            if transactions:
                return SourceBatch(name=collection, source=source, transactions=records)
            return SourceBatch(name=collection, source=source, accounts=records)

        return self._batch(collection, source, fetch)

    async def _optional(self, label: str, fetch: Awaitable[Any], default: Any) -> Any:
        try:
            return await fetch
        except Exception as e:
            logger.warning(f"Could not load {label}, continuing without it: {e}")
            return default

    async def _connection_batches(self, user_id: str, start: date, end: date) -> list[SourceBatch]:
        if self.provider is None:
            return []
        try:
            connections = await self.store.list_records(user_id, CONNECTIONS)
        except Exception as e:
            logger.warning(f"Source '{CONNECTIONS}' unavailable: {e}")
            return [SourceBatch(name=CONNECTIONS, source=SourceSystem.LINKED_BANK, error=e)]
        return list(await asyncio.gather(*(self._connection_batch(c, start, end) for c in connections)))

    async def gather(self, user_id: str, start: date, end: date) -> _Gathered:
        """Fetch every source for *user_id* concurrently; failures become failed batches."""
        collection_tasks = [
            self._collection_batch(user_id, CACHED_ACCOUNTS, SourceSystem.CACHED_BANK_SNAPSHOT),
            *(self._collection_batch(user_id, name, source) for name, source in ACCOUNT_COLLECTIONS.items()),
            self._collection_batch(user_id, MANUAL_TRANSACTIONS, SourceSystem.MANUAL_TRANSACTION, transactions=True),
        ]
        linked, collections, overrides, profile = await asyncio.gather(
            self._connection_batches(user_id, start, end),
            asyncio.gather(*collection_tasks),
            self._optional(CATEGORIZED_TRANSACTIONS, self.store.list_records(user_id, CATEGORIZED_TRANSACTIONS), []),
            self._optional("profile", self.store.get_profile(user_id), {}),
        )
        # Live connections first so their accounts take precedence over cached snapshots
        return _Gathered(batches=[*linked, *collections], overrides=overrides, profile=profile or {})

    # -- pure operations -----------------------------------------------

    def compute_net_worth(
        self,
        accounts: Sequence[Account],
        transactions: Sequence[Transaction] | None = None,
        *,
        as_of: date | None = None,
        context: str = "net_worth",
    ) -> MetricsSummary:
        """Calculate and validate metrics for canonical accounts.

        Raises:
            SanityBoundError: when a hard sanity bound is exceeded.
        """
        metrics, _ = self._checked_metrics(accounts, transactions, as_of, context)
        return metrics

    def _checked_metrics(self, accounts, transactions, as_of, context) -> tuple[MetricsSummary, ValidationResult]:
        raw = calculate_net_worth(
            accounts,
            transactions,
            as_of=as_of or self._today(),
            window_days=self.settings.cash_flow.window_days,
        )
        return self.validator.enforce(raw, context)

    def analyze_trends(
        self,
        transactions: Sequence[Transaction],
        analysis_type: AnalysisType | str,
        date_range: DateRange,
        categories: Sequence[str] | None = None,
    ) -> list[TrendPoint]:
        return _analyze_trends(
            transactions,
            analysis_type,
            date_range,
            categories=categories,
            anomaly_multiplier=self.settings.trends.anomaly_std_multiplier,
        )

    def project(
        self, trend_points: Sequence[TrendPoint], analysis_type: AnalysisType | str | None = None
    ) -> Projection:
        return _project(trend_points, analysis_type, window=self.settings.trends.projection_window)

    # -- views ---------------------------------------------------------

    async def _aggregate(self, user_id: str, as_of: date) -> Overview:
        window = timedelta(days=self.settings.cash_flow.window_days)
        gathered = await self.gather(user_id, as_of - window, as_of)
        normalized = Normalizer(user_id, self.settings.currency.default).normalize(gathered.batches)
        transactions = apply_category_overrides(normalized.transactions, gathered.overrides)

        accounts = normalized.accounts
        data_source = resolve_data_source(gathered.profile, len(accounts))
        if data_source == DataSource.DEMO:
            logger.info(f"No live accounts for {user_id}; using demo data")
            accounts = demo_accounts(user_id, self.settings.currency.default)

        overview = Overview(
            user_id=user_id,
            accounts=accounts,
            transactions=transactions,
            data_source=data_source,
            failed_sources=normalized.failed_sources,
            dropped_records=normalized.dropped_total,
        )

        if not accounts:
            overview.status = OverviewStatus.DEGRADED if normalized.failed_sources else OverviewStatus.NO_DATA
            logger.info(f"No accounts for {user_id} (status={overview.status})")
            return overview

        try:
            overview.metrics, overview.validation = self._checked_metrics(
                accounts, transactions, as_of, f"overview:{user_id}"
            )
        except SanityBoundError as e:
            if self.settings.validation.strict:
                raise
            overview.metrics = MetricsSummary(account_count=len(accounts), flags=e.result.flags)
            overview.validation = e.result
            overview.status = OverviewStatus.DEGRADED
            return overview

        if normalized.failed_sources:
            overview.status = OverviewStatus.DEGRADED
        if data_source == DataSource.LIVE:
            self.history.record(user_id, overview.metrics.net_worth)
            overview.deltas = self.history.deltas(user_id, overview.metrics.net_worth)
        logger.info(
            f"Computed overview for {user_id}: net_worth={overview.metrics.net_worth} "
            f"accounts={len(accounts)} status={overview.status}"
        )
        return overview

    def _cached(self, key: CacheKey) -> Any:
        # Callers get their own copy; mutating it never reaches the cache
        cached = self.cache.get(key)
        if not cached.hit:
            return None
        return dataclasses.replace(copy.deepcopy(cached.value), source=CACHE_SOURCE)

    def _store(self, key: CacheKey, value: Any, ttl: float) -> None:
        self.cache.set(key, copy.deepcopy(value), ttl=ttl)

    async def compute_overview(
        self, user_id: str, *, force_refresh: bool = False, as_of: date | None = None
    ) -> Overview:
        """Accounts, transactions and metrics for *user_id*, cached for ``cache.ttl_seconds``.

        ``force_refresh`` skips the cache read but still stores the fresh result.
        """
        as_of = as_of or self._today()
        key = CacheKey.build(user_id, "overview", {"as_of": as_of.isoformat()})
        if not force_refresh:
            cached = self._cached(key)
            if cached is not None:
                return cached

        overview = await self._aggregate(user_id, as_of)
        fallback = metrics_insights(overview.metrics)
        overview.insights, overview.insights_source = await narrate(self.narrator, overview.metrics, None, fallback)
        self._store(key, overview, ttl=self.settings.cache.ttl_seconds)
        return overview

    def compute_overview_sync(self, user_id: str, **kwargs: Any) -> Overview:
        """Blocking variant of :meth:`compute_overview`."""
        return run_sync(self.compute_overview(user_id, **kwargs))

    async def net_worth(self, user_id: str, *, force_refresh: bool = False, as_of: date | None = None) -> NetWorthView:
        """Net worth with daily/weekly/monthly deltas, cached for ``cache.net_worth_ttl_seconds``."""
        as_of = as_of or self._today()
        key = CacheKey.build(user_id, "net_worth", {"as_of": as_of.isoformat()})
        if not force_refresh:
            cached = self._cached(key)
            if cached is not None:
                return cached

        overview = await self._aggregate(user_id, as_of)
        view = NetWorthView(
            user_id=user_id,
            metrics=overview.metrics,
            deltas=overview.deltas,
            status=overview.status,
            data_source=overview.data_source,
        )
        self._store(key, view, ttl=self.settings.cache.net_worth_ttl_seconds)
        return view

    async def spending_trends(
        self,
        user_id: str,
        timeframe: str | None = None,
        analysis_type: AnalysisType | str = AnalysisType.MONTHLY,
        categories: Sequence[str] | None = None,
        include_projections: bool = False,
        force_refresh: bool = False,
        today: date | None = None,
    ) -> SpendingTrends:
        """Spending trend report for *user_id* over *timeframe* (default from config)."""
        analysis_type = AnalysisType(analysis_type)
        timeframe = timeframe or self.settings.trends.default_timeframe
        date_range = DateRange.from_timeframe(timeframe, today or self._today())
        key = CacheKey.build(
            user_id,
            "spending_trends",
            {
                "timeframe": timeframe,
                "type": analysis_type.value,
                "categories": tuple(sorted(categories)) if categories else None,
                "projections": include_projections,
                "end": date_range.end.isoformat(),
            },
        )
        if not force_refresh:
            cached = self._cached(key)
            if cached is not None:
                return cached

        gathered = await self.gather(user_id, date_range.start, date_range.end)
        normalized = Normalizer(user_id, self.settings.currency.default).normalize(gathered.batches)
        transactions = apply_category_overrides(normalized.transactions, gathered.overrides)

        report = build_trend_report(
            transactions,
            analysis_type,
            date_range,
            categories=categories,
            anomaly_multiplier=self.settings.trends.anomaly_std_multiplier,
            significant_change_pct=self.settings.trends.significant_change_pct,
        )
        if include_projections and analysis_type in TIME_SERIES_TYPES:
            report.projection = self.project(report.trends, analysis_type)
        report.insights, insights_source = await narrate(self.narrator, None, report.trends, report.insights)

        if normalized.failed_sources:
            status = OverviewStatus.DEGRADED
        elif report.total_spent == 0:
            status = OverviewStatus.NO_DATA
        else:
            status = OverviewStatus.OK
        result = SpendingTrends(
            user_id=user_id,
            timeframe=timeframe,
            report=report,
            status=status,
            failed_sources=normalized.failed_sources,
            insights_source=insights_source,
        )
        logger.info(f"Computed {analysis_type} spending trends for {user_id}: total={report.total_spent}")
        self._store(key, result, ttl=self.settings.cache.ttl_seconds)
        return result

    def invalidate(self, user_id: str) -> int:
        """Drop every cached view of *user_id* (call after its data changes)."""
        count = self.cache.invalidate(user_id)
        logger.debug(f"Invalidated {count} cached view(s) for {user_id}")
        return count

