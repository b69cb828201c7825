"""Shared test fixtures for finsight."""

import os
import tempfile
from datetime import date
from decimal import Decimal

import pytest

from finsight.financial.models import Account, AccountCategory, SourceSystem, Transaction, TransactionType
from finsight.financial.sources import InMemoryDocumentStore


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def tmp_config_file(tmp_dir):
    """Create a temporary YAML config file."""
    import yaml

    config_data = {
        "cache": {"ttl_seconds": 5},
        "validation": {"max_abs_total": "5000000"},
        "trends": {"default_timeframe": "3months"},
    }
    config_path = os.path.join(tmp_dir, "config.yaml")
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path


def _account(account_id, category, balance, source=SourceSystem.MANUAL_ASSET, **kwargs):
    return Account(
        id=account_id,
        name=kwargs.pop("name", account_id),
        source_system=source,
        category=category,
        balance=Decimal(str(balance)),
        **kwargs,
    )


def _tx(tx_id, day, amount, tx_type=TransactionType.EXPENSE, category="Food", **kwargs):
    return Transaction(
        id=tx_id,
        account_id=kwargs.pop("account_id", "acc-1"),
        date=day,
        amount=Decimal(str(amount)),
        type=tx_type,
        category=category,
        **kwargs,
    )


@pytest.fixture
def make_account():
    """Factory for canonical accounts."""
    return _account


@pytest.fixture
def make_tx():
    """Factory for canonical transactions (expense by default)."""
    return _tx


@pytest.fixture
def sample_accounts():
    return [
        _account("chk", AccountCategory.CHECKING, "1200"),
        _account("sav", AccountCategory.SAVINGS, "3000.50"),
        _account("brk", AccountCategory.BROKERAGE, "10000"),
        _account("cc", AccountCategory.CREDIT, "-300", source=SourceSystem.MANUAL_LIABILITY),
    ]


@pytest.fixture
def sample_transactions():
    return [
        _tx("t1", date(2024, 3, 1), "2000", TransactionType.INCOME, category="Salary"),
        _tx("t2", date(2024, 3, 5), "120.25", category="Groceries"),
        _tx("t3", date(2024, 3, 10), "80", category="Dining"),
        _tx("t4", date(2024, 3, 12), "500", category="Rent", pending=True),
    ]


@pytest.fixture
def store():
    """In-memory document store with one user's manual records."""
    s = InMemoryDocumentStore()
    s.add(
        "alice",
        "manual_assets",
        {"id": "house-fund", "name": "Emergency Fund", "type": "savings", "currentBalance": 5000},
        {"id": "stocks", "name": "Index Funds", "type": "investment", "currentBalance": "12000.40"},
    )
    s.add("alice", "manual_liabilities", {"id": "car", "name": "Car Loan", "type": "car loan", "amount": 4000})
    s.add("alice", "crypto_holdings", {"id": "btc", "name": "Bitcoin", "balance": 1500})
    s.add(
        "alice",
        "manual_transactions",
        {"id": "m1", "date": "2024-03-02", "amount": 3000, "type": "income", "category": "Salary"},
        {"id": "m2", "date": "2024-03-04", "amount": 150, "type": "expense", "category": "Groceries"},
        {"id": "m3", "date": "2024-03-09", "amount": 60, "category": ["Dining", "Restaurants"]},
    )
    return s
