"""
Net worth calculator.

Partitions canonical accounts into asset and liability buckets by category
and totals them.  Every bucket is rounded once with ``round_money`` and every
total is the sum of already-rounded buckets, so a total always equals the sum
of the figures it is made of.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from loguru import logger

from finsight.core.money import ZERO, round_money, sum_money

from ..models import Account, AccountCategory, MetricsSummary, Transaction
from .cash_flow import calculate_cash_flow

LIQUID_CATEGORIES = (AccountCategory.CHECKING, AccountCategory.SAVINGS)
INVESTMENT_CATEGORIES = (AccountCategory.INVESTMENT, AccountCategory.BROKERAGE, AccountCategory.RETIREMENT)

_CATEGORY_ORDER = {c.value: i for i, c in enumerate(AccountCategory)}


def bucket_accounts(accounts: Iterable[Account]) -> tuple[dict[str, Decimal], dict[str, Decimal]]:
    """Sum balance magnitudes per category into (assets_by_type, liabilities_by_type).

    Buckets are rounded and ordered by the category enum so that repeated
    runs over the same accounts produce identical mappings.
    """
    assets: dict[str, Decimal] = {}
    liabilities: dict[str, Decimal] = {}
    for account in accounts:
        target = liabilities if account.is_liability else assets
        key = account.category.value
        target[key] = target.get(key, ZERO) + abs(account.balance)

    def _finish(buckets: dict[str, Decimal]) -> dict[str, Decimal]:
        ordered = sorted(buckets.items(), key=lambda kv: _CATEGORY_ORDER.get(kv[0], len(_CATEGORY_ORDER)))
        return {k: round_money(v) for k, v in ordered}

    return _finish(assets), _finish(liabilities)


def calculate_net_worth(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction] | None = None,
    *,
    as_of: date | None = None,
    window_days: int = 30,
) -> MetricsSummary:
    """Compute a ``MetricsSummary`` from canonical accounts (and optionally transactions).

    Zero accounts yields an all-zero summary, not an error.  Accounts with an
    unrecognized category arrive here as ``other`` and are bucketed by sign.
    """
    accounts = list(accounts)
    assets_by_type, liabilities_by_type = bucket_accounts(accounts)

    total_assets = sum_money(assets_by_type.values())
    total_liabilities = sum_money(liabilities_by_type.values())

    def _assets(*categories: AccountCategory) -> Decimal:
        return sum_money(assets_by_type.get(c.value, ZERO) for c in categories)

    income = expenses = ZERO
    if transactions is not None:
        income, expenses = calculate_cash_flow(transactions, as_of=as_of, window_days=window_days)

    summary = MetricsSummary(
        total_assets=total_assets,
        total_liabilities=total_liabilities,
        net_worth=round_money(total_assets - total_liabilities),
        liquid_assets=_assets(*LIQUID_CATEGORIES),
        investments=_assets(*INVESTMENT_CATEGORIES),
        crypto_balance=_assets(AccountCategory.CRYPTO),
        real_estate=_assets(AccountCategory.REAL_ESTATE),
        pension=_assets(AccountCategory.PENSION),
        monthly_income=income,
        monthly_expenses=expenses,
        monthly_cash_flow=round_money(income - expenses),
        assets_by_type=assets_by_type,
        liabilities_by_type=liabilities_by_type,
        account_count=len(accounts),
    )
    logger.debug(
        f"Net worth over {len(accounts)} accounts: assets={summary.total_assets} "
        f"liabilities={summary.total_liabilities} net={summary.net_worth}"
    )
    return summary
