"""Canonical financial data models.

Source-independent representations for accounts, transactions, computed
metrics and trend series.  Every provider- or store-specific shape is turned
into these by :mod:`finsight.financial.normalizer` before any arithmetic runs.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from finsight.core.money import ZERO, round_money, to_decimal

# ── Enums ────────────────────────────────────────────────────────────


class SourceSystem(StrEnum):
    """Where a canonical record came from."""

    LINKED_BANK = "linked-bank"
    LINKED_INVESTMENT = "linked-investment"
    MANUAL_ASSET = "manual-asset"
    MANUAL_LIABILITY = "manual-liability"
    CRYPTO_HOLDING = "crypto-holding"
    REAL_ESTATE = "real-estate"
    PENSION = "pension"
    CACHED_BANK_SNAPSHOT = "cached-bank-snapshot"
    MANUAL_TRANSACTION = "manual-transaction"
    DEMO = "demo"


class AccountCategory(StrEnum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    LOAN = "loan"
    MORTGAGE = "mortgage"
    INVESTMENT = "investment"
    BROKERAGE = "brokerage"
    RETIREMENT = "retirement"
    CRYPTO = "crypto"
    REAL_ESTATE = "real_estate"
    PENSION = "pension"
    OTHER = "other"


ASSET_CATEGORIES = frozenset(
    {
        AccountCategory.CHECKING,
        AccountCategory.SAVINGS,
        AccountCategory.INVESTMENT,
        AccountCategory.BROKERAGE,
        AccountCategory.RETIREMENT,
        AccountCategory.CRYPTO,
        AccountCategory.REAL_ESTATE,
        AccountCategory.PENSION,
    }
)

LIABILITY_CATEGORIES = frozenset(
    {
        AccountCategory.CREDIT,
        AccountCategory.LOAN,
        AccountCategory.MORTGAGE,
    }
)


class TransactionType(StrEnum):
    EXPENSE = "expense"
    INCOME = "income"


class AnalysisType(StrEnum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    DAILY = "daily"
    CATEGORY = "category"
    SEASONAL = "seasonal"
    ANOMALY = "anomaly"


class DataSource(StrEnum):
    """Whether an aggregation runs on the user's real data or placeholder demo data."""

    LIVE = "live"
    DEMO = "demo"


class OverviewStatus(StrEnum):
    OK = "ok"
    NO_DATA = "no_data"
    DEGRADED = "degraded"


# ── Canonical records ────────────────────────────────────────────────


@dataclass
class Account:
    """One funding source or holding.

    Attributes:
        id: Opaque identifier, unique per user.
        name: Human-readable name.
        source_system: Which source produced this record.
        category: Position in the fixed category enum.
        balance: Signed balance; liabilities carry a negative balance.
        currency: ISO currency code.
        user_id: Owning user.
        institution: e.g. "Chase", "Coinbase" (optional).
    """

    id: str
    name: str
    source_system: SourceSystem
    category: AccountCategory
    balance: Decimal
    currency: str = "USD"
    user_id: str | None = None
    institution: str | None = None

    def __post_init__(self):
        self.balance = to_decimal(self.balance)
        self.source_system = SourceSystem(self.source_system)
        self.category = AccountCategory(self.category)
        if not self.id:
            raise ValueError("Account id cannot be empty")

    @property
    def is_liability(self) -> bool:
        if self.category in LIABILITY_CATEGORIES:
            return True
        return self.category == AccountCategory.OTHER and self.balance < 0


@dataclass
class Transaction:
    """One economic event.  ``amount`` is always a positive magnitude; ``type`` carries direction."""

    id: str
    account_id: str
    date: date
    amount: Decimal
    type: TransactionType
    category: str = "Uncategorized"
    pending: bool = False
    description: str = ""
    source_system: SourceSystem | None = None

    def __post_init__(self):
        self.amount = abs(to_decimal(self.amount))
        self.type = TransactionType(self.type)
        if isinstance(self.date, datetime):
            self.date = self.date.date()
        if not isinstance(self.date, date):
            raise ValueError(f"Transaction {self.id} has no valid date: {self.date!r}")
        if not self.category:
            self.category = "Uncategorized"

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def is_completed(self) -> bool:
        return not self.pending


# ── Computed outputs ─────────────────────────────────────────────────

MONEY_FIELDS = (
    "total_assets",
    "total_liabilities",
    "net_worth",
    "liquid_assets",
    "investments",
    "crypto_balance",
    "real_estate",
    "pension",
    "monthly_income",
    "monthly_expenses",
    "monthly_cash_flow",
)


@dataclass
class MetricsSummary:
    """Computed output of the engine.

    ``net_worth`` and ``monthly_cash_flow`` are always derived from the other
    totals by the calculators; ``flags`` collects validator findings.
    """

    total_assets: Decimal = ZERO
    total_liabilities: Decimal = ZERO
    net_worth: Decimal = ZERO
    liquid_assets: Decimal = ZERO
    investments: Decimal = ZERO
    crypto_balance: Decimal = ZERO
    real_estate: Decimal = ZERO
    pension: Decimal = ZERO
    monthly_income: Decimal = ZERO
    monthly_expenses: Decimal = ZERO
    monthly_cash_flow: Decimal = ZERO
    assets_by_type: dict[str, Decimal] = field(default_factory=dict)
    liabilities_by_type: dict[str, Decimal] = field(default_factory=dict)
    account_count: int = 0
    flags: list[str] = field(default_factory=list)

    def __post_init__(self):
        # Plain numbers become Decimals; NaN/Infinity survive for the validator to catch
        for name in MONEY_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                setattr(self, name, Decimal(str(value)))
        for buckets in (self.assets_by_type, self.liabilities_by_type):
            for key, value in buckets.items():
                if not isinstance(value, Decimal):
                    buckets[key] = Decimal(str(value))

    @property
    def flagged(self) -> bool:
        return bool(self.flags)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data: dict[str, Any] = {name: float(round_money(getattr(self, name))) for name in MONEY_FIELDS}
        data["assets_by_type"] = {k: float(round_money(v)) for k, v in self.assets_by_type.items()}
        data["liabilities_by_type"] = {k: float(round_money(v)) for k, v in self.liabilities_by_type.items()}
        data["account_count"] = self.account_count
        data["flags"] = list(self.flags)
        return data


@dataclass
class TrendPoint:
    """One bucket of a trend series."""

    period: str
    amount: Decimal
    transaction_count: int = 0
    percent_change: float | None = None
    anomaly: bool | None = None
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "period": self.period,
            "amount": float(round_money(self.amount)),
            "transaction_count": self.transaction_count,
        }
        # Optional fields are omitted rather than emitted as null
        if self.percent_change is not None:
            data["percent_change"] = round(self.percent_change, 2)
        if self.anomaly is not None:
            data["anomaly"] = self.anomaly
        if self.category is not None:
            data["category"] = self.category
        return data


@dataclass
class Projection:
    """Forward estimate for the next period."""

    next_period: Decimal
    confidence: int
    factors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "next_period": float(round_money(self.next_period)),
            "confidence": self.confidence,
            "factors": list(self.factors),
        }


@dataclass(frozen=True)
class HistorySample:
    """One remembered net-worth reading.  Not a ledger of record."""

    net_worth: Decimal
    timestamp: datetime


# ── Date ranges ──────────────────────────────────────────────────────

TIMEFRAME_MONTHS = {
    "3months": 3,
    "6months": 6,
    "1year": 12,
    "2years": 24,
}


def shift_months(day: date, months: int) -> date:
    """Move *day* by *months* calendar months, clamping to the target month's end."""
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range."""

    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"DateRange start {self.start} is after end {self.end}")

    @classmethod
    def from_timeframe(cls, timeframe: str, today: date | None = None) -> DateRange:
        """Range ending *today* and starting N months earlier ("3months", "1year", ...)."""
        if timeframe not in TIMEFRAME_MONTHS:
            raise ValueError(f"Unknown timeframe {timeframe!r}; expected one of {sorted(TIMEFRAME_MONTHS)}")
        end = today or date.today()
        return cls(start=shift_months(end, -TIMEFRAME_MONTHS[timeframe]), end=end)

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1
