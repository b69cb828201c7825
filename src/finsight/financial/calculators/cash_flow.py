"""Monthly cash flow from recent completed transactions."""

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal

from finsight.core.money import ZERO, round_money

from ..models import Transaction


def calculate_cash_flow(
    transactions: Iterable[Transaction],
    as_of: date | None = None,
    window_days: int = 30,
) -> tuple[Decimal, Decimal]:
    """Return rounded (income, expenses) over the *window_days* ending at *as_of*.

    The window holds *as_of* and the *window_days* - 1 days before it.  Pending
    transactions are excluded, as are transactions dated after *as_of*.
    """
    as_of = as_of or date.today()
    cutoff = as_of - timedelta(days=window_days)
    income = expenses = ZERO
    for tx in transactions:
        if not tx.is_completed or not (cutoff < tx.date <= as_of):
            continue
        if tx.is_expense:
            expenses += tx.amount
        else:
            income += tx.amount
    return round_money(income), round_money(expenses)
