"""
Normalizer: provider-specific shapes to canonical ``Account`` / ``Transaction``.

Each source system registers a small normalization function in a lookup
table instead of the aggregation branching on source type.  Per-source sign
conventions:

- ``linked-bank`` / ``linked-investment`` / ``cached-bank-snapshot``: balances
  are reported as positive magnitudes for credit and loan accounts, so those
  are negated.  Transaction amounts are positive for money leaving the account
  (expense) and negative for money arriving (income).
- ``manual-asset``, ``crypto-holding``, ``real-estate``, ``pension``: balances
  are asset values and keep their sign.
- ``manual-liability``: amounts are stored as magnitudes and always negated.
- ``manual-transaction``: amounts are positive with an explicit ``type``;
  when ``type`` is missing the linked-bank sign rule applies.

Malformed records (unparseable date, non-finite amount) are dropped and
counted; they never abort normalization of the rest of the batch.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from loguru import logger

from finsight.core.exceptions import MalformedRecordError
from finsight.core.money import to_decimal

from .models import (
    LIABILITY_CATEGORIES,
    Account,
    AccountCategory,
    SourceSystem,
    Transaction,
    TransactionType,
)

OTHER_TRANSACTION_CATEGORY = "Other"
UNCATEGORIZED = "Uncategorized"

# ── Category lookup tables ───────────────────────────────────────────

LINKED_SUBTYPE_CATEGORIES: dict[str, AccountCategory] = {
    "checking": AccountCategory.CHECKING,
    "cash management": AccountCategory.CHECKING,
    "paypal": AccountCategory.CHECKING,
    "prepaid": AccountCategory.CHECKING,
    "savings": AccountCategory.SAVINGS,
    "money market": AccountCategory.SAVINGS,
    "cd": AccountCategory.SAVINGS,
    "hsa": AccountCategory.SAVINGS,
    "credit card": AccountCategory.CREDIT,
    "paypal credit": AccountCategory.CREDIT,
    "mortgage": AccountCategory.MORTGAGE,
    "home equity": AccountCategory.LOAN,
    "line of credit": AccountCategory.LOAN,
    "student": AccountCategory.LOAN,
    "auto": AccountCategory.LOAN,
    "consumer": AccountCategory.LOAN,
    "commercial": AccountCategory.LOAN,
    "brokerage": AccountCategory.BROKERAGE,
    "mutual fund": AccountCategory.INVESTMENT,
    "stock plan": AccountCategory.INVESTMENT,
    "401k": AccountCategory.RETIREMENT,
    "401a": AccountCategory.RETIREMENT,
    "403b": AccountCategory.RETIREMENT,
    "457b": AccountCategory.RETIREMENT,
    "ira": AccountCategory.RETIREMENT,
    "roth": AccountCategory.RETIREMENT,
    "roth 401k": AccountCategory.RETIREMENT,
    "sep ira": AccountCategory.RETIREMENT,
    "simple ira": AccountCategory.RETIREMENT,
    "keogh": AccountCategory.RETIREMENT,
    "retirement": AccountCategory.RETIREMENT,
    "pension": AccountCategory.PENSION,
    "crypto exchange": AccountCategory.CRYPTO,
    "non-custodial wallet": AccountCategory.CRYPTO,
}

# Used only when the subtype is absent or unmapped
LINKED_TYPE_CATEGORIES: dict[str, AccountCategory] = {
    "credit": AccountCategory.CREDIT,
    "loan": AccountCategory.LOAN,
    "investment": AccountCategory.INVESTMENT,
    "brokerage": AccountCategory.BROKERAGE,
}

LINKED_LIABILITY_TYPES = frozenset({"credit", "loan"})

MANUAL_ASSET_CATEGORIES: dict[str, AccountCategory] = {
    "cash": AccountCategory.CHECKING,
    "wallet": AccountCategory.CHECKING,
    "checking": AccountCategory.CHECKING,
    "checking account": AccountCategory.CHECKING,
    "bank account": AccountCategory.CHECKING,
    "paypal balance": AccountCategory.CHECKING,
    "digital wallet balance": AccountCategory.CHECKING,
    "savings": AccountCategory.SAVINGS,
    "savings account": AccountCategory.SAVINGS,
    "investment": AccountCategory.INVESTMENT,
    "stocks": AccountCategory.INVESTMENT,
    "brokerage": AccountCategory.BROKERAGE,
    "retirement": AccountCategory.RETIREMENT,
    "401k": AccountCategory.RETIREMENT,
    "ira": AccountCategory.RETIREMENT,
    "crypto": AccountCategory.CRYPTO,
    "cryptocurrency": AccountCategory.CRYPTO,
    "real estate": AccountCategory.REAL_ESTATE,
    "real_estate": AccountCategory.REAL_ESTATE,
    "property": AccountCategory.REAL_ESTATE,
    "pension": AccountCategory.PENSION,
}

MANUAL_LIABILITY_CATEGORIES: dict[str, AccountCategory] = {
    "credit": AccountCategory.CREDIT,
    "credit card": AccountCategory.CREDIT,
    "credit_card": AccountCategory.CREDIT,
    "loan": AccountCategory.LOAN,
    "student_loan": AccountCategory.LOAN,
    "student loan": AccountCategory.LOAN,
    "auto_loan": AccountCategory.LOAN,
    "car loan": AccountCategory.LOAN,
    "personal_loan": AccountCategory.LOAN,
    "personal loan": AccountCategory.LOAN,
    "mortgage": AccountCategory.MORTGAGE,
    "home loan": AccountCategory.MORTGAGE,
}


def _lookup(table: dict[str, AccountCategory], *keys: Any) -> AccountCategory | None:
    for key in keys:
        if isinstance(key, str) and key.strip().lower() in table:
            return table[key.strip().lower()]
    return None


# ── Field helpers ────────────────────────────────────────────────────

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%Y/%m/%d", "%m-%d-%Y")


def parse_date(value: Any) -> date:
    """Parse a record date.  Raises MalformedRecordError when it isn't one."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if hasattr(value, "to_date"):
        # Store timestamp objects
        return parse_date(value.to_date())
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    raise MalformedRecordError(f"Unparseable date: {value!r}")


def primary_category(raw: Any, fallback: str = UNCATEGORIZED) -> str:
    """First element of a category list, the string itself, or *fallback*."""
    if isinstance(raw, list | tuple):
        raw = raw[0] if raw else None
    if isinstance(raw, dict):
        raw = raw.get("primary") or raw.get("detailed")
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return fallback


def _first(record: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return default


def _record_id(record: dict[str, Any], *keys: str) -> str:
    value = _first(record, *keys, "id")
    if value is None:
        raise MalformedRecordError(f"Record has no id: {sorted(record)}")
    return str(value)


# ── Context and registry ─────────────────────────────────────────────


@dataclass
class NormalizeContext:
    user_id: str
    default_currency: str = "USD"

    def currency(self, record: dict[str, Any]) -> str:
        code = _first(record, "currency", "iso_currency_code", "isoCurrencyCode")
        if code is None and isinstance(record.get("balances"), dict):
            code = record["balances"].get("iso_currency_code")
        return str(code).upper() if code else self.default_currency


AccountNormalizer = Callable[[dict[str, Any], NormalizeContext], list[Account]]
TransactionNormalizer = Callable[[dict[str, Any], NormalizeContext], Transaction]


class NormalizerRegistry:
    """Lookup table of per-source normalization functions."""

    def __init__(self):
        self._accounts: dict[SourceSystem, AccountNormalizer] = {}
        self._transactions: dict[SourceSystem, TransactionNormalizer] = {}

    def register_account(self, source: SourceSystem, fn: AccountNormalizer) -> None:
        self._accounts[SourceSystem(source)] = fn

    def register_transaction(self, source: SourceSystem, fn: TransactionNormalizer) -> None:
        self._transactions[SourceSystem(source)] = fn

    def account_normalizer(self, source: SourceSystem) -> AccountNormalizer:
        fn = self._accounts.get(SourceSystem(source))
        if fn is None:
            raise KeyError(f"No account normalizer registered for '{source}'. Available: {self.account_sources()}")
        return fn

    def transaction_normalizer(self, source: SourceSystem) -> TransactionNormalizer:
        fn = self._transactions.get(SourceSystem(source))
        if fn is None:
            raise KeyError(
                f"No transaction normalizer registered for '{source}'. Available: {self.transaction_sources()}"
            )
        return fn

    def account_sources(self) -> list[str]:
        return [s.value for s in self._accounts]

    def transaction_sources(self) -> list[str]:
        return [s.value for s in self._transactions]


DEFAULT_REGISTRY = NormalizerRegistry()


def account_normalizer(*sources: SourceSystem):
    """Decorator: register an account normalizer in the default registry."""

    def decorator(fn: AccountNormalizer) -> AccountNormalizer:
        for source in sources:
            DEFAULT_REGISTRY.register_account(source, fn)
        return fn

    return decorator


def transaction_normalizer(*sources: SourceSystem):
    """Decorator: register a transaction normalizer in the default registry."""

    def decorator(fn: TransactionNormalizer) -> TransactionNormalizer:
        for source in sources:
            DEFAULT_REGISTRY.register_transaction(source, fn)
        return fn

    return decorator


# ── Account normalizers ──────────────────────────────────────────────


def _linked_account(record: dict[str, Any], ctx: NormalizeContext, source: SourceSystem) -> Account:
    raw_type = str(record.get("type") or "").lower()
    subtype = record.get("subtype")
    category = (
        _lookup(LINKED_SUBTYPE_CATEGORIES, subtype)
        or _lookup(LINKED_TYPE_CATEGORIES, raw_type)
        or AccountCategory.OTHER
    )

    balances = record.get("balances") if isinstance(record.get("balances"), dict) else {}
    balance = to_decimal(_first(balances, "current", "available", default=_first(record, "balance", default=0)))
    if category in LIABILITY_CATEGORIES or raw_type in LINKED_LIABILITY_TYPES:
        balance = -abs(balance)

    return Account(
        id=_record_id(record, "account_id", "accountId"),
        name=_first(record, "name", "official_name", "officialName", default="Account"),
        source_system=source,
        category=category,
        balance=balance,
        currency=ctx.currency(record),
        user_id=ctx.user_id,
        institution=_first(record, "institution", "institutionName", "institution_name"),
    )


@account_normalizer(SourceSystem.LINKED_BANK)
def normalize_linked_bank_account(record: dict[str, Any], ctx: NormalizeContext) -> list[Account]:
    return [_linked_account(record, ctx, SourceSystem.LINKED_BANK)]


@account_normalizer(SourceSystem.LINKED_INVESTMENT)
def normalize_linked_investment_account(record: dict[str, Any], ctx: NormalizeContext) -> list[Account]:
    return [_linked_account(record, ctx, SourceSystem.LINKED_INVESTMENT)]


@account_normalizer(SourceSystem.CACHED_BANK_SNAPSHOT)
def normalize_cached_account(record: dict[str, Any], ctx: NormalizeContext) -> list[Account]:
    return [_linked_account(record, ctx, SourceSystem.CACHED_BANK_SNAPSHOT)]


@account_normalizer(SourceSystem.MANUAL_ASSET)
def normalize_manual_asset(record: dict[str, Any], ctx: NormalizeContext) -> list[Account]:
    return [
        Account(
            id=_record_id(record),
            name=_first(record, "name", default="Unknown Asset"),
            source_system=SourceSystem.MANUAL_ASSET,
            category=_lookup(MANUAL_ASSET_CATEGORIES, record.get("type")) or AccountCategory.OTHER,
            balance=to_decimal(_first(record, "currentBalance", "amount", "balance", default=0)),
            currency=ctx.currency(record),
            user_id=ctx.user_id,
        )
    ]


@account_normalizer(SourceSystem.MANUAL_LIABILITY)
def normalize_manual_liability(record: dict[str, Any], ctx: NormalizeContext) -> list[Account]:
    category = _lookup(MANUAL_LIABILITY_CATEGORIES, record.get("type")) or AccountCategory.OTHER
    return [
        Account(
            id=_record_id(record),
            name=_first(record, "name", default="Liability"),
            source_system=SourceSystem.MANUAL_LIABILITY,
            category=category,
            balance=-abs(to_decimal(_first(record, "amount", "balance", "currentBalance", default=0))),
            currency=ctx.currency(record),
            user_id=ctx.user_id,
        )
    ]


@account_normalizer(SourceSystem.CRYPTO_HOLDING)
def normalize_crypto_holding(record: dict[str, Any], ctx: NormalizeContext) -> list[Account]:
    return [
        Account(
            id=_record_id(record),
            name=_first(record, "name", "exchange", "blockchain", default="Crypto Account"),
            source_system=SourceSystem.CRYPTO_HOLDING,
            category=AccountCategory.CRYPTO,
            balance=to_decimal(_first(record, "balance", "value", "usdValue", default=0)),
            currency=ctx.currency(record),
            user_id=ctx.user_id,
            institution=_first(record, "exchange", "blockchain"),
        )
    ]


@account_normalizer(SourceSystem.REAL_ESTATE)
def normalize_real_estate(record: dict[str, Any], ctx: NormalizeContext) -> list[Account]:
    """A property, plus a separate mortgage liability when one is embedded."""
    property_id = _record_id(record)
    name = _first(record, "name", "address", default="Property")
    currency = ctx.currency(record)
    accounts = [
        Account(
            id=property_id,
            name=name,
            source_system=SourceSystem.REAL_ESTATE,
            category=AccountCategory.REAL_ESTATE,
            balance=to_decimal(_first(record, "currentValue", "value", "purchasePrice", default=0)),
            currency=currency,
            user_id=ctx.user_id,
        )
    ]
    mortgage = record.get("mortgage")
    if isinstance(mortgage, dict):
        outstanding = to_decimal(_first(mortgage, "currentBalance", "balance", default=0))
        if outstanding:
            accounts.append(
                Account(
                    id=f"{property_id}:mortgage",
                    name=f"{name} mortgage",
                    source_system=SourceSystem.REAL_ESTATE,
                    category=AccountCategory.MORTGAGE,
                    balance=-abs(outstanding),
                    currency=currency,
                    user_id=ctx.user_id,
                    institution=mortgage.get("lender"),
                )
            )
    return accounts


@account_normalizer(SourceSystem.PENSION)
def normalize_pension(record: dict[str, Any], ctx: NormalizeContext) -> list[Account]:
    return [
        Account(
            id=_record_id(record),
            name=_first(record, "name", "provider", default="Pension"),
            source_system=SourceSystem.PENSION,
            category=AccountCategory.PENSION,
            balance=to_decimal(_first(record, "currentValue", "balance", "value", default=0)),
            currency=ctx.currency(record),
            user_id=ctx.user_id,
            institution=record.get("provider"),
        )
    ]


# ── Transaction normalizers ──────────────────────────────────────────


def _signed_type(amount) -> TransactionType:
    return TransactionType.EXPENSE if amount > 0 else TransactionType.INCOME


@transaction_normalizer(SourceSystem.LINKED_BANK)
def normalize_linked_transaction(
    record: dict[str, Any], ctx: NormalizeContext, source: SourceSystem = SourceSystem.LINKED_BANK
) -> Transaction:
    amount = to_decimal(record.get("amount"))
    return Transaction(
        id=_record_id(record, "transaction_id", "transactionId"),
        account_id=str(_first(record, "account_id", "accountId", default="")),
        date=parse_date(record.get("date")),
        amount=amount,
        type=_signed_type(amount),
        category=primary_category(
            _first(record, "category", "personal_finance_category"), fallback=OTHER_TRANSACTION_CATEGORY
        ),
        pending=bool(record.get("pending", False)),
        description=str(_first(record, "name", "merchant_name", default="")),
        source_system=source,
    )


@transaction_normalizer(SourceSystem.LINKED_INVESTMENT)
def normalize_investment_transaction(record: dict[str, Any], ctx: NormalizeContext) -> Transaction:
    return normalize_linked_transaction(record, ctx, SourceSystem.LINKED_INVESTMENT)


@transaction_normalizer(SourceSystem.MANUAL_TRANSACTION)
def normalize_manual_transaction(record: dict[str, Any], ctx: NormalizeContext) -> Transaction:
    amount = to_decimal(record.get("amount"))
    raw_type = str(record.get("type") or "").lower()
    tx_type = TransactionType(raw_type) if raw_type in ("income", "expense") else _signed_type(amount)
    return Transaction(
        id=_record_id(record),
        account_id=str(_first(record, "accountId", "account_id", default="")),
        date=parse_date(record.get("date")),
        amount=amount,
        type=tx_type,
        category=primary_category(record.get("category")),
        pending=bool(record.get("pending", False)),
        description=str(_first(record, "description", "name", default="")),
        source_system=SourceSystem.MANUAL_TRANSACTION,
    )


# ── Batch normalization ──────────────────────────────────────────────


@dataclass
class SourceBatch:
    """Raw records fetched from one source, or the error that prevented fetching them."""

    name: str
    source: SourceSystem
    accounts: list[dict[str, Any]] = field(default_factory=list)
    transactions: list[dict[str, Any]] = field(default_factory=list)
    error: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class NormalizationResult:
    accounts: list[Account] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    failed_sources: list[str] = field(default_factory=list)
    dropped: dict[str, int] = field(default_factory=dict)

    @property
    def dropped_total(self) -> int:
        return sum(self.dropped.values())


class Normalizer:
    """Turns raw source batches into canonical records for one user."""

    def __init__(self, user_id: str, default_currency: str = "USD", registry: NormalizerRegistry | None = None):
        self.context = NormalizeContext(user_id=user_id, default_currency=default_currency)
        self.registry = registry or DEFAULT_REGISTRY

    def normalize_accounts(self, source: SourceSystem, records: Iterable[dict[str, Any]]) -> tuple[list[Account], int]:
        """Normalize account records.  Returns (accounts, number dropped)."""
        fn = self.registry.account_normalizer(source)
        accounts: list[Account] = []
        dropped = 0
        for record in records:
            try:
                accounts.extend(fn(record, self.context))
            except (MalformedRecordError, ValueError, TypeError, AttributeError) as e:
                dropped += 1
                logger.debug(f"Dropped malformed {source} account: {e}")
        return accounts, dropped

    def normalize_transactions(
        self, source: SourceSystem, records: Iterable[dict[str, Any]]
    ) -> tuple[list[Transaction], int]:
        """Normalize transaction records.  Returns (transactions, number dropped)."""
        fn = self.registry.transaction_normalizer(source)
        transactions: list[Transaction] = []
        dropped = 0
        for record in records:
            try:
                transactions.append(fn(record, self.context))
            except (MalformedRecordError, ValueError, TypeError, AttributeError) as e:
                dropped += 1
                logger.debug(f"Dropped malformed {source} transaction: {e}")
        return transactions, dropped

    def normalize(self, batches: Iterable[SourceBatch]) -> NormalizationResult:
        """Normalize every batch; failed batches are skipped and reported, never raised."""
        result = NormalizationResult()
        seen_accounts: set[str] = set()
        seen_transactions: set[str] = set()

        for batch in batches:
            if batch.failed:
                logger.warning(f"Skipping source '{batch.name}' ({batch.source}): {batch.error}")
                result.failed_sources.append(batch.name)
                continue

            accounts: list[Account] = []
            dropped_accounts = 0
            if batch.accounts:
                accounts, dropped_accounts = self.normalize_accounts(batch.source, batch.accounts)
            transactions: list[Transaction] = []
            dropped_transactions = 0
            if batch.transactions:
                tx_source = (
                    batch.source
                    if batch.source in (SourceSystem.LINKED_BANK, SourceSystem.LINKED_INVESTMENT)
                    else SourceSystem.MANUAL_TRANSACTION
                )
                transactions, dropped_transactions = self.normalize_transactions(tx_source, batch.transactions)

            for account in accounts:
                if account.id in seen_accounts:
                    logger.debug(f"Duplicate account id {account.id} from '{batch.name}' ignored")
                    continue
                seen_accounts.add(account.id)
                result.accounts.append(account)
            for tx in transactions:
                if tx.id in seen_transactions:
                    continue
                seen_transactions.add(tx.id)
                result.transactions.append(tx)

            dropped = dropped_accounts + dropped_transactions
            if dropped:
                result.dropped[batch.name] = dropped
                logger.warning(f"Dropped {dropped} malformed record(s) from source '{batch.name}'")

        logger.info(
            f"Normalized {len(result.accounts)} accounts and {len(result.transactions)} transactions "
            f"for user {self.context.user_id} ({len(result.failed_sources)} source(s) skipped)"
        )
        return result


def apply_category_overrides(
    transactions: Iterable[Transaction], overrides: Iterable[dict[str, Any]]
) -> list[Transaction]:
    """Replace categories with stored (e.g. AI-assigned) ones.

    Override records look like ``{"originalTransactionId", "aiCategory", "type"}``.
    An override typed ``income`` re-types the transaction so it drops out of
    spending views.
    """
    by_id: dict[str, dict[str, Any]] = {}
    for record in overrides:
        tx_id = record.get("originalTransactionId") or record.get("id")
        if tx_id:
            by_id[str(tx_id)] = record

    result = []
    for tx in transactions:
        override = by_id.get(tx.id)
        if override is None:
            result.append(tx)
            continue
        changes: dict[str, Any] = {}
        category = override.get("aiCategory") or override.get("category")
        if isinstance(category, str) and category.strip():
            changes["category"] = category.strip()
        if str(override.get("type") or "").lower() == TransactionType.INCOME:
            changes["type"] = TransactionType.INCOME
        result.append(dataclasses.replace(tx, **changes) if changes else tx)
    return result
