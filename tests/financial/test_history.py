"""Tests for finsight.financial.history."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from finsight.core.config_schema import FinsightConfig
from finsight.financial.history import NetWorthHistory

T0 = datetime(2024, 3, 1, 12, 0)


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestRecord:
    def test_appends(self, clock):
        history = NetWorthHistory(clock=clock)
        assert history.record("alice", Decimal("100"))
        assert [s.net_worth for s in history.samples("alice")] == [Decimal("100")]
        assert history.samples("alice")[0].timestamp == T0

    def test_identical_value_within_interval_is_skipped(self):
        history = NetWorthHistory()
        assert history.record("alice", 100, T0)
        assert not history.record("alice", 100, T0 + timedelta(minutes=4))
        assert len(history.samples("alice")) == 1

    def test_identical_value_after_interval_is_kept(self):
        history = NetWorthHistory()
        history.record("alice", 100, T0)
        assert history.record("alice", 100, T0 + timedelta(minutes=5))
        assert len(history.samples("alice")) == 2

    def test_changed_value_is_kept(self):
        history = NetWorthHistory()
        history.record("alice", 100, T0)
        assert history.record("alice", 101, T0 + timedelta(seconds=1))

    def test_bounded(self):
        history = NetWorthHistory(max_samples=100)
        for i in range(150):
            history.record("alice", i, T0 + timedelta(hours=i))
        samples = history.samples("alice")
        assert len(samples) == 100
        assert samples[0].net_worth == 50
        assert samples[-1].net_worth == 149

    def test_users_are_isolated(self):
        history = NetWorthHistory()
        history.record("alice", 100, T0)
        history.record("bob", 100, T0)
        assert len(history.samples("alice")) == 1
        assert history.samples("carol") == []

    def test_clear(self):
        history = NetWorthHistory()
        history.record("alice", 1, T0)
        history.record("bob", 1, T0)
        history.clear("alice")
        assert history.samples("alice") == []
        assert history.samples("bob")
        history.clear()
        assert history.samples("bob") == []

    def test_from_config(self):
        settings = FinsightConfig.model_validate({"history": {"max_samples": 3, "dedup_interval_seconds": 0}})
        history = NetWorthHistory.from_config(settings)
        assert history.max_samples == 3
        assert history.dedup_interval == timedelta(0)

    def test_invalid_bound(self):
        with pytest.raises(ValueError):
            NetWorthHistory(max_samples=0)


class TestDeltas:
    def test_no_history(self):
        deltas = NetWorthHistory().deltas("alice")
        assert deltas.daily is None
        assert deltas.to_dict() == {}

    def test_closest_sample_not_after_cutoff(self):
        history = NetWorthHistory()
        history.record("alice", 1000, T0 - timedelta(days=40))
        history.record("alice", 1100, T0 - timedelta(days=8))
        history.record("alice", 1150, T0 - timedelta(days=2))
        history.record("alice", 1180, T0 - timedelta(hours=3))
        deltas = history.deltas("alice", Decimal("1200"), now=T0)
        assert deltas.daily.amount == Decimal("50.00")
        assert deltas.weekly.amount == Decimal("100.00")
        assert deltas.monthly.amount == Decimal("200.00")
        assert deltas.monthly.percent == pytest.approx(20.0)
        assert deltas.monthly.since == T0 - timedelta(days=40)

    def test_falls_back_to_earliest_sample(self):
        history = NetWorthHistory()
        history.record("alice", 500, T0 - timedelta(hours=2))
        history.record("alice", 600, T0 - timedelta(hours=1))
        deltas = history.deltas("alice", now=T0)
        for change in (deltas.daily, deltas.weekly, deltas.monthly):
            assert change.amount == Decimal("100.00")
            assert change.since == T0 - timedelta(hours=2)

    def test_percent_omitted_for_zero_reference(self):
        history = NetWorthHistory()
        history.record("alice", 0, T0 - timedelta(days=2))
        deltas = history.deltas("alice", Decimal("50"), now=T0)
        assert deltas.daily.percent is None
        assert "percent" not in deltas.to_dict()["daily"]

    def test_defaults_to_latest_sample_and_clock(self, clock):
        history = NetWorthHistory(clock=clock)
        history.record("alice", 100, T0 - timedelta(days=1))
        history.record("alice", 130, T0)
        deltas = history.deltas("alice")
        assert deltas.daily.amount == Decimal("30.00")
        assert deltas.daily.percent == pytest.approx(30.0)
