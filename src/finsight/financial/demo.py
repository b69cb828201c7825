"""Demo data source.

A user who opted into demo mode and has no real accounts sees a fixed set of
placeholder accounts.  The choice is made once, before aggregation, so the
calculators never know whether they are working on demo data.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from .models import Account, AccountCategory, DataSource, SourceSystem

DEMO_PROFILE_FLAG = "useDemoData"

DEMO_ACCOUNTS: tuple[tuple[str, str, AccountCategory, str], ...] = (
    ("demo-checking", "Demo Checking", AccountCategory.CHECKING, "12500"),
    ("demo-savings", "High Yield Savings", AccountCategory.SAVINGS, "25750.82"),
    ("demo-brokerage", "Investment Portfolio", AccountCategory.INVESTMENT, "89200"),
)


def resolve_data_source(profile: dict[str, Any] | None, live_account_count: int) -> DataSource:
    """Demo only when the profile asks for it and there is nothing real to show."""
    wants_demo = bool((profile or {}).get(DEMO_PROFILE_FLAG))
    if wants_demo and live_account_count == 0:
        return DataSource.DEMO
    return DataSource.LIVE


def demo_accounts(user_id: str, currency: str = "USD") -> list[Account]:
    return [
        Account(
            id=account_id,
            name=name,
            source_system=SourceSystem.DEMO,
            category=category,
            balance=Decimal(balance),
            currency=currency,
            user_id=user_id,
        )
        for account_id, name, category, balance in DEMO_ACCOUNTS
    ]
