"""Tests for finsight.financial.normalizer."""

from datetime import date
from decimal import Decimal

import pytest

from finsight.core.exceptions import MalformedRecordError, SourceUnavailableError
from finsight.financial.models import AccountCategory, SourceSystem, TransactionType
from finsight.financial.normalizer import (
    DEFAULT_REGISTRY,
    NormalizeContext,
    Normalizer,
    NormalizerRegistry,
    SourceBatch,
    apply_category_overrides,
    normalize_linked_bank_account,
    normalize_linked_transaction,
    normalize_manual_liability,
    normalize_manual_transaction,
    normalize_real_estate,
    parse_date,
    primary_category,
)

CTX = NormalizeContext(user_id="alice")


class TestLinkedAccounts:
    def test_depository_subtype(self):
        record = {"account_id": "a1", "name": "Chase", "type": "depository", "subtype": "checking",
                  "balances": {"current": 1200, "iso_currency_code": "usd"}}
        (acct,) = normalize_linked_bank_account(record, CTX)
        assert acct.category == AccountCategory.CHECKING
        assert acct.balance == Decimal("1200")
        assert acct.currency == "USD"
        assert acct.user_id == "alice"

    def test_credit_balance_is_negated(self):
        record = {"account_id": "c1", "name": "Visa", "type": "credit", "subtype": "credit card",
                  "balances": {"current": 300}}
        (acct,) = normalize_linked_bank_account(record, CTX)
        assert acct.category == AccountCategory.CREDIT
        assert acct.balance == Decimal("-300")

    def test_unmapped_subtype_falls_back_to_other(self):
        record = {"account_id": "x", "name": "Odd", "type": "depository", "subtype": "gift card",
                  "balances": {"current": 10}}
        (acct,) = normalize_linked_bank_account(record, CTX)
        assert acct.category == AccountCategory.OTHER

    def test_loan_type_without_subtype(self):
        record = {"account_id": "l1", "name": "Loan", "type": "loan", "balances": {"current": 5000}}
        (acct,) = normalize_linked_bank_account(record, CTX)
        assert acct.category == AccountCategory.LOAN
        assert acct.balance == Decimal("-5000")


class TestManualAccounts:
    def test_liability_amount_is_negated(self):
        (acct,) = normalize_manual_liability({"id": "car", "name": "Car", "type": "car loan", "amount": 4000}, CTX)
        assert acct.category == AccountCategory.LOAN
        assert acct.balance == Decimal("-4000")

    def test_unknown_liability_type_is_other_negative(self):
        (acct,) = normalize_manual_liability({"id": "iou", "type": "family", "amount": 50}, CTX)
        assert acct.category == AccountCategory.OTHER
        assert acct.is_liability

    def test_real_estate_with_mortgage(self):
        record = {"id": "home", "name": "Home", "currentValue": 400000,
                  "mortgage": {"currentBalance": 250000, "lender": "Bank"}}
        home, mortgage = normalize_real_estate(record, CTX)
        assert home.category == AccountCategory.REAL_ESTATE
        assert home.balance == Decimal("400000")
        assert mortgage.id == "home:mortgage"
        assert mortgage.category == AccountCategory.MORTGAGE
        assert mortgage.balance == Decimal("-250000")

    def test_real_estate_without_mortgage(self):
        accounts = normalize_real_estate({"id": "lot", "value": 50000}, CTX)
        assert len(accounts) == 1


class TestTransactions:
    def test_linked_sign_rule(self):
        expense = normalize_linked_transaction(
            {"transaction_id": "t1", "account_id": "a1", "date": "2024-03-01", "amount": 25.5,
             "category": ["Food and Drink", "Restaurants"]}, CTX)
        income = normalize_linked_transaction(
            {"transaction_id": "t2", "account_id": "a1", "date": "2024-03-01", "amount": -1000}, CTX)
        assert expense.type == TransactionType.EXPENSE
        assert expense.amount == Decimal("25.5")
        assert expense.category == "Food and Drink"
        assert income.type == TransactionType.INCOME
        assert income.amount == Decimal("1000")
        assert income.category == "Other"

    def test_manual_explicit_type_wins(self):
        tx = normalize_manual_transaction(
            {"id": "m1", "date": "2024-03-02", "amount": 3000, "type": "income"}, CTX)
        assert tx.type == TransactionType.INCOME
        assert tx.category == "Uncategorized"

    def test_manual_without_type_uses_sign(self):
        tx = normalize_manual_transaction({"id": "m2", "date": "2024-03-02", "amount": 40}, CTX)
        assert tx.type == TransactionType.EXPENSE

    def test_bad_date_raises(self):
        with pytest.raises(MalformedRecordError):
            normalize_manual_transaction({"id": "m3", "date": "not a date", "amount": 40}, CTX)


class TestFieldHelpers:
    @pytest.mark.parametrize(
        "value",
        ["2024-03-05", "2024-03-05T10:00:00Z", "05/03/2024", "2024/03/05", date(2024, 3, 5)],
    )
    def test_parse_date(self, value):
        assert parse_date(value) == date(2024, 3, 5)

    def test_parse_date_timestamp_object(self):
        class Stamp:
            def to_date(self):
                return date(2024, 3, 5)

        assert parse_date(Stamp()) == date(2024, 3, 5)

    @pytest.mark.parametrize("value", [None, "", "yesterday", 12])
    def test_parse_date_rejects(self, value):
        with pytest.raises(MalformedRecordError):
            parse_date(value)

    def test_primary_category(self):
        assert primary_category(["Travel", "Flights"]) == "Travel"
        assert primary_category({"primary": "FOOD"}) == "FOOD"
        assert primary_category([]) == "Uncategorized"
        assert primary_category(None, fallback="Other") == "Other"


class TestRegistry:
    def test_default_registry_covers_every_account_source(self):
        expected = set(SourceSystem) - {SourceSystem.MANUAL_TRANSACTION, SourceSystem.DEMO}
        assert set(DEFAULT_REGISTRY.account_sources()) == {s.value for s in expected}

    def test_missing_normalizer_raises_key_error(self):
        with pytest.raises(KeyError, match="crypto-holding"):
            NormalizerRegistry().account_normalizer(SourceSystem.CRYPTO_HOLDING)


class TestNormalizer:
    def test_failed_source_is_skipped(self):
        batches = [
            SourceBatch(name="manual_assets", source=SourceSystem.MANUAL_ASSET,
                        accounts=[{"id": "cash", "type": "cash", "amount": 100}]),
            SourceBatch(name="crypto_holdings", source=SourceSystem.CRYPTO_HOLDING,
                        error=SourceUnavailableError("crypto_holdings")),
            SourceBatch(name="pension_funds", source=SourceSystem.PENSION,
                        accounts=[{"id": "p1", "currentValue": 20000}]),
        ]
        result = Normalizer("alice").normalize(batches)
        assert [a.id for a in result.accounts] == ["cash", "p1"]
        assert result.failed_sources == ["crypto_holdings"]

    def test_malformed_records_are_dropped_and_counted(self):
        batch = SourceBatch(
            name="manual_transactions",
            source=SourceSystem.MANUAL_TRANSACTION,
            transactions=[
                {"id": "ok", "date": "2024-03-01", "amount": 10},
                {"id": "bad-date", "date": "31st of never", "amount": 10},
                {"id": "bad-amount", "date": "2024-03-01", "amount": "NaN"},
            ],
        )
        result = Normalizer("alice").normalize([batch])
        assert [t.id for t in result.transactions] == ["ok"]
        assert result.dropped == {"manual_transactions": 2}
        assert result.dropped_total == 2

    def test_first_account_id_wins(self):
        live = SourceBatch(name="connection:1", source=SourceSystem.LINKED_BANK,
                           accounts=[{"account_id": "a1", "type": "depository", "subtype": "checking",
                                      "balances": {"current": 500}}])
        cached = SourceBatch(name="cached_accounts", source=SourceSystem.CACHED_BANK_SNAPSHOT,
                             accounts=[{"account_id": "a1", "type": "depository", "subtype": "checking",
                                        "balances": {"current": 450}},
                                       {"account_id": "a2", "type": "depository", "subtype": "savings",
                                        "balances": {"current": 50}}])
        result = Normalizer("alice").normalize([live, cached])
        assert {a.id: a.balance for a in result.accounts} == {"a1": Decimal("500"), "a2": Decimal("50")}

    def test_transactions_keep_their_connection_source(self):
        record = {"transaction_id": "t1", "account_id": "a1", "date": "2024-03-01", "amount": 40}
        bank = SourceBatch(name="connection:1", source=SourceSystem.LINKED_BANK, transactions=[dict(record)])
        broker = SourceBatch(name="connection:2", source=SourceSystem.LINKED_INVESTMENT,
                             transactions=[dict(record, transaction_id="t2")])
        result = Normalizer("alice").normalize([bank, broker])
        assert {t.id: t.source_system for t in result.transactions} == {
            "t1": SourceSystem.LINKED_BANK,
            "t2": SourceSystem.LINKED_INVESTMENT,
        }

    def test_default_currency(self):
        batch = SourceBatch(name="manual_assets", source=SourceSystem.MANUAL_ASSET,
                            accounts=[{"id": "cash", "type": "cash", "amount": 100}])
        result = Normalizer("alice", default_currency="EUR").normalize([batch])
        assert result.accounts[0].currency == "EUR"


class TestCategoryOverrides:
    def test_category_replaced(self, make_tx):
        txs = [make_tx("t1", date(2024, 3, 1), 10, category="Uncategorized"), make_tx("t2", date(2024, 3, 1), 5)]
        result = apply_category_overrides(txs, [{"originalTransactionId": "t1", "aiCategory": "Coffee"}])
        assert result[0].category == "Coffee"
        assert result[1] is txs[1]
        # Originals are not mutated
        assert txs[0].category == "Uncategorized"

    def test_income_override_retypes(self, make_tx):
        txs = [make_tx("t1", date(2024, 3, 1), 10)]
        result = apply_category_overrides(txs, [{"originalTransactionId": "t1", "aiCategory": "Refund",
                                                 "type": "income"}])
        assert result[0].type == TransactionType.INCOME
