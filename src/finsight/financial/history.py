"""
Rolling net-worth history.

Keeps the most recent samples per user (100 by default) so the hero metric can
show "change since yesterday / last week / last month".  It is not a ledger:
samples are in memory, consecutive identical readings inside the dedup
interval are dropped, and the oldest samples fall off the end.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from loguru import logger

from finsight.core.money import percent_change, round_money, to_decimal

from .models import HistorySample

DELTA_INTERVALS: dict[str, timedelta] = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
}


@dataclass(frozen=True)
class NetWorthChange:
    """Change of net worth against a reference sample."""

    amount: Decimal
    percent: float | None
    since: datetime

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"amount": float(round_money(self.amount)), "since": self.since.isoformat()}
        if self.percent is not None:
            data["percent"] = round(self.percent, 2)
        return data


@dataclass(frozen=True)
class HistoryDeltas:
    daily: NetWorthChange | None = None
    weekly: NetWorthChange | None = None
    monthly: NetWorthChange | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            name: change.to_dict()
            for name, change in (("daily", self.daily), ("weekly", self.weekly), ("monthly", self.monthly))
            if change is not None
        }


class NetWorthHistory:
    """Per-user bounded list of ``HistorySample``."""

    def __init__(
        self,
        max_samples: int = 100,
        dedup_interval: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = datetime.now,
    ):
        if max_samples <= 0:
            raise ValueError(f"max_samples must be positive, got {max_samples}")
        self.max_samples = max_samples
        self.dedup_interval = dedup_interval
        self._clock = clock
        self._samples: dict[str, deque[HistorySample]] = {}

    @classmethod
    def from_config(cls, settings, clock: Callable[[], datetime] = datetime.now) -> NetWorthHistory:
        return cls(
            max_samples=settings.history.max_samples,
            dedup_interval=timedelta(seconds=settings.history.dedup_interval_seconds),
            clock=clock,
        )

    def record(self, user_id: str, net_worth: Decimal, timestamp: datetime | None = None) -> bool:
        """Append a sample.  Returns False when it was a duplicate inside the dedup interval."""
        value = to_decimal(net_worth)
        timestamp = timestamp or self._clock()
        samples = self._samples.setdefault(user_id, deque(maxlen=self.max_samples))

        if samples:
            last = samples[-1]
            if last.net_worth == value and timestamp - last.timestamp < self.dedup_interval:
                logger.debug(f"Skipping duplicate net worth sample for {user_id}")
                return False

        samples.append(HistorySample(net_worth=value, timestamp=timestamp))
        return True

    def samples(self, user_id: str) -> list[HistorySample]:
        return list(self._samples.get(user_id, ()))

    def reference_sample(self, user_id: str, interval: timedelta, now: datetime | None = None) -> HistorySample | None:
        """Latest sample at or before ``now - interval``; the earliest sample if none is that old."""
        samples = self._samples.get(user_id)
        if not samples:
            return None
        cutoff = (now or self._clock()) - interval
        candidate = None
        for sample in samples:
            if sample.timestamp <= cutoff:
                candidate = sample
            else:
                break
        return candidate or samples[0]

    def deltas(self, user_id: str, current: Decimal | None = None, now: datetime | None = None) -> HistoryDeltas:
        """Daily, weekly and monthly change of *current* (default: latest sample)."""
        samples = self._samples.get(user_id)
        if not samples:
            return HistoryDeltas()
        now = now or self._clock()
        current = samples[-1].net_worth if current is None else to_decimal(current)

        changes: dict[str, NetWorthChange] = {}
        for name, interval in DELTA_INTERVALS.items():
            reference = self.reference_sample(user_id, interval, now)
            if reference is None:
                continue
            changes[name] = NetWorthChange(
                amount=round_money(current - reference.net_worth),
                percent=percent_change(current, reference.net_worth),
                since=reference.timestamp,
            )
        return HistoryDeltas(**changes)

    def clear(self, user_id: str | None = None) -> None:
        if user_id is None:
            self._samples.clear()
        else:
            self._samples.pop(user_id, None)
