"""
In-memory TTL cache for request coalescing.

Holds computed views (overview, net worth, trends) per user for a few tens of
seconds so that bursts of identical requests do not re-run the whole
aggregation pipeline.  It is not a source of truth: a miss simply means
"compute again".

Expired entries are swept on write rather than by a background timer.
Concurrent writers for the same key are last-write-wins.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple

from loguru import logger

from finsight.core.exceptions import CacheError

CACHE_SOURCE = "cache"
MISS_SOURCE = "miss"


@dataclass(frozen=True)
class CacheKey:
    """Cache key: user id plus the view parameters that shaped the result."""

    user_id: str
    view: str
    params: tuple[tuple[str, str], ...] = ()

    @classmethod
    def build(cls, user_id: str, view: str, params: Mapping[str, Any] | None = None) -> CacheKey:
        items = tuple(sorted((str(k), repr(v)) for k, v in (params or {}).items()))
        return cls(user_id=user_id, view=view, params=items)

    def __str__(self) -> str:
        suffix = ",".join(f"{k}={v}" for k, v in self.params)
        return f"{self.view}:{self.user_id}" + (f"[{suffix}]" if suffix else "")


class CacheResult(NamedTuple):
    hit: bool
    value: Any
    source: str


@dataclass
class _Entry:
    value: Any
    expires_at: float


class TTLCache:
    """Per-key TTL cache with opportunistic sweeping."""

    def __init__(self, default_ttl: float = 30.0, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            default_ttl: Seconds an entry stays fresh when ``set`` gets no ttl.
            clock: Monotonic time source (injectable for tests).
        """
        if default_ttl <= 0:
            raise CacheError(f"TTL must be positive, got {default_ttl}")
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[CacheKey, _Entry] = {}

    def get(self, key: CacheKey) -> CacheResult:
        """Look up *key*.  Expired entries count as misses."""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss: {key}")
            return CacheResult(False, None, MISS_SOURCE)
        if entry.expires_at <= self._clock():
            logger.debug(f"Cache expired: {key}")
            return CacheResult(False, None, MISS_SOURCE)
        logger.debug(f"Cache hit: {key}")
        return CacheResult(True, entry.value, CACHE_SOURCE)

    def set(self, key: CacheKey, value: Any, ttl: float | None = None) -> None:
        """Store *value* under *key* and sweep anything already expired."""
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise CacheError(f"TTL must be positive, got {ttl}")
        now = self._clock()
        self._entries[key] = _Entry(value=value, expires_at=now + ttl)
        self.sweep(now)

    def sweep(self, now: float | None = None) -> int:
        """Drop expired entries.  Returns how many were removed."""
        now = self._clock() if now is None else now
        stale = [k for k, e in self._entries.items() if e.expires_at <= now]
        for k in stale:
            del self._entries[k]
        if stale:
            logger.debug(f"Swept {len(stale)} stale cache entries")
        return len(stale)

    def invalidate(self, user_id: str | None = None) -> int:
        """Drop every entry for *user_id*, or everything when None."""
        if user_id is None:
            count = len(self._entries)
            self._entries.clear()
            return count
        keys = [k for k in self._entries if k.user_id == user_id]
        for k in keys:
            del self._entries[k]
        return len(keys)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return self.get(key).hit
