"""
Collaborator protocols for the aggregation service.

The account-data provider, the document store and the narrative generator
are external systems.  Anything satisfying these protocols can be plugged
into :class:`finsight.financial.service.AggregationService`.
"""

from __future__ import annotations

import copy
from collections.abc import Sequence
from datetime import date
from typing import Any, Protocol, runtime_checkable

from finsight.core.exceptions import SourceUnavailableError

from .models import MetricsSummary, SourceSystem, TrendPoint

# Document-store collections
CONNECTIONS = "connections"
CACHED_ACCOUNTS = "cached_accounts"
MANUAL_ASSETS = "manual_assets"
MANUAL_LIABILITIES = "manual_liabilities"
CRYPTO_HOLDINGS = "crypto_holdings"
REAL_ESTATE = "real_estate"
PENSION_FUNDS = "pension_funds"
MANUAL_TRANSACTIONS = "manual_transactions"
CATEGORIZED_TRANSACTIONS = "categorized_transactions"

# Account-bearing collections and the source system their records come from
ACCOUNT_COLLECTIONS: dict[str, SourceSystem] = {
    MANUAL_ASSETS: SourceSystem.MANUAL_ASSET,
    MANUAL_LIABILITIES: SourceSystem.MANUAL_LIABILITY,
    CRYPTO_HOLDINGS: SourceSystem.CRYPTO_HOLDING,
    REAL_ESTATE: SourceSystem.REAL_ESTATE,
    PENSION_FUNDS: SourceSystem.PENSION,
}

COLLECTIONS = (
    CONNECTIONS,
    CACHED_ACCOUNTS,
    *ACCOUNT_COLLECTIONS,
    MANUAL_TRANSACTIONS,
    CATEGORIZED_TRANSACTIONS,
)


@runtime_checkable
class AccountProvider(Protocol):
    """External account-data provider (one call per linked connection)."""

    async def get_accounts(self, credential: str) -> list[dict[str, Any]]:
        """Raw account records for one connection."""
        ...

    async def get_transactions(self, credential: str, start: date, end: date) -> list[dict[str, Any]]:
        """Raw transaction records for one connection, date range inclusive."""
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """Per-user collections of flat, typed records."""

    async def get_profile(self, user_id: str) -> dict[str, Any]:
        ...

    async def list_records(self, user_id: str, collection: str) -> list[dict[str, Any]]:
        ...


@runtime_checkable
class NarrativeGenerator(Protocol):
    """Turns metrics (and optionally a trend series) into prose insights."""

    async def generate(
        self, metrics: MetricsSummary | None, trends: Sequence[TrendPoint] | None = None
    ) -> list[str]:
        ...


class InMemoryDocumentStore:
    """Dict-backed ``DocumentStore`` for fixtures, the CLI and tests.

    Records are deep-copied on the way in and out so callers cannot mutate
    stored state.  Collections listed in ``failing`` raise
    ``SourceUnavailableError`` to simulate an outage.
    """

    def __init__(self, data: dict[str, dict[str, Any]] | None = None):
        self._users: dict[str, dict[str, Any]] = copy.deepcopy(data) if data else {}
        self.failing: set[str] = set()

    def add(self, user_id: str, collection: str, *records: dict[str, Any]) -> None:
        user = self._users.setdefault(user_id, {})
        user.setdefault(collection, []).extend(copy.deepcopy(list(records)))

    def set_profile(self, user_id: str, **fields: Any) -> None:
        self._users.setdefault(user_id, {}).setdefault("profile", {}).update(fields)

    async def get_profile(self, user_id: str) -> dict[str, Any]:
        return copy.deepcopy(self._users.get(user_id, {}).get("profile", {}))

    async def list_records(self, user_id: str, collection: str) -> list[dict[str, Any]]:
        if collection in self.failing:
            raise SourceUnavailableError(collection, "collection is unavailable")
        return copy.deepcopy(self._users.get(user_id, {}).get(collection, []))
