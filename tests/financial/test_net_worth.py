"""Tests for finsight.financial.calculators.net_worth and cash_flow."""

from datetime import date
from decimal import Decimal

from finsight.core.money import round_money
from finsight.financial.calculators import bucket_accounts, calculate_cash_flow, calculate_net_worth
from finsight.financial.models import AccountCategory, SourceSystem, TransactionType


class TestCalculateNetWorth:
    def test_checking_and_credit(self, make_account):
        accounts = [
            make_account("chk", AccountCategory.CHECKING, 1200),
            make_account("cc", AccountCategory.CREDIT, -300, source=SourceSystem.LINKED_BANK),
        ]
        m = calculate_net_worth(accounts)
        assert m.total_assets == Decimal("1200")
        assert m.total_liabilities == Decimal("300")
        assert m.net_worth == Decimal("900")
        assert m.liabilities_by_type == {"credit": Decimal("300.00")}

    def test_zero_accounts(self):
        m = calculate_net_worth([])
        assert m.net_worth == 0
        assert m.total_assets == 0
        assert m.account_count == 0
        assert m.assets_by_type == {}

    def test_sub_totals(self, sample_accounts, make_account):
        accounts = [
            *sample_accounts,
            make_account("ret", AccountCategory.RETIREMENT, "5000"),
            make_account("btc", AccountCategory.CRYPTO, "750.10"),
            make_account("home", AccountCategory.REAL_ESTATE, "300000"),
            make_account("mtg", AccountCategory.MORTGAGE, "-200000"),
            make_account("pen", AccountCategory.PENSION, "42000"),
        ]
        m = calculate_net_worth(accounts)
        assert m.liquid_assets == Decimal("4200.50")
        assert m.investments == Decimal("15000")
        assert m.crypto_balance == Decimal("750.10")
        assert m.real_estate == Decimal("300000")
        assert m.pension == Decimal("42000")
        assert m.total_liabilities == Decimal("200300")
        assert m.account_count == 9

    def test_other_bucketed_by_sign(self, make_account):
        accounts = [
            make_account("gold", AccountCategory.OTHER, "800"),
            make_account("iou", AccountCategory.OTHER, "-50"),
        ]
        m = calculate_net_worth(accounts)
        assert m.assets_by_type == {"other": Decimal("800.00")}
        assert m.liabilities_by_type == {"other": Decimal("50.00")}
        assert m.net_worth == Decimal("750")

    def test_net_worth_invariant_holds_with_fractions(self, make_account):
        accounts = [
            make_account("a", AccountCategory.CHECKING, "0.005"),
            make_account("b", AccountCategory.SAVINGS, "0.005"),
            make_account("c", AccountCategory.CREDIT, "-0.015"),
        ]
        m = calculate_net_worth(accounts)
        assert m.net_worth == round_money(m.total_assets - m.total_liabilities)
        assert m.total_assets == sum(m.assets_by_type.values())

    def test_idempotent(self, sample_accounts, sample_transactions):
        first = calculate_net_worth(sample_accounts, sample_transactions, as_of=date(2024, 3, 15))
        second = calculate_net_worth(sample_accounts, sample_transactions, as_of=date(2024, 3, 15))
        assert first == second
        assert list(first.assets_by_type) == list(second.assets_by_type)

    def test_cash_flow_included(self, sample_accounts, sample_transactions):
        m = calculate_net_worth(sample_accounts, sample_transactions, as_of=date(2024, 3, 15))
        assert m.monthly_income == Decimal("2000.00")
        assert m.monthly_expenses == Decimal("200.25")
        assert m.monthly_cash_flow == Decimal("1799.75")
        assert m.monthly_cash_flow == round_money(m.monthly_income - m.monthly_expenses)


def test_bucket_order_follows_category_enum(make_account):
    accounts = [
        make_account("p", AccountCategory.PENSION, 1),
        make_account("c", AccountCategory.CHECKING, 1),
        make_account("s", AccountCategory.SAVINGS, 1),
    ]
    assets, liabilities = bucket_accounts(accounts)
    assert list(assets) == ["checking", "savings", "pension"]
    assert liabilities == {}


class TestCashFlow:
    def test_pending_excluded(self, sample_transactions):
        income, expenses = calculate_cash_flow(sample_transactions, as_of=date(2024, 3, 15))
        assert income == Decimal("2000.00")
        assert expenses == Decimal("200.25")

    def test_window(self, make_tx):
        txs = [
            make_tx("old", date(2024, 1, 1), 999),
            make_tx("future", date(2024, 4, 1), 999),
            make_tx("in", date(2024, 3, 1), 10),
            make_tx("pay", date(2024, 2, 20), 500, TransactionType.INCOME),
        ]
        income, expenses = calculate_cash_flow(txs, as_of=date(2024, 3, 15), window_days=30)
        assert income == Decimal("500.00")
        assert expenses == Decimal("10.00")

    def test_window_covers_thirty_calendar_days(self, make_tx):
        txs = [
            make_tx("first-day", date(2024, 2, 15), 7),
            make_tx("day-before", date(2024, 2, 14), 100),
            make_tx("today", date(2024, 3, 15), 3),
        ]
        _, expenses = calculate_cash_flow(txs, as_of=date(2024, 3, 15), window_days=30)
        assert expenses == Decimal("10.00")

    def test_empty(self):
        assert calculate_cash_flow([], as_of=date(2024, 3, 15)) == (Decimal("0.00"), Decimal("0.00"))
