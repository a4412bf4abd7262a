"""
In-process response cache store with TTL expiry and background sweeping.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from shared.logging import get_logger


DEFAULT_TTL_SECONDS = 600
DEFAULT_CHECK_PERIOD_SECONDS = 120


@dataclass
class CacheEntry:
    """A single cached value and its expiry bookkeeping."""

    key: str
    value: Any
    inserted_at: float
    ttl: Optional[float]

    @property
    def expires_at(self) -> Optional[float]:
        if not self.ttl:
            return None
        return self.inserted_at + self.ttl

    def is_expired(self, now: float) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and expires_at <= now


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time store statistics."""

    key_count: int
    hit_count: int
    miss_count: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "keys": self.key_count,
            "hits": self.hit_count,
            "misses": self.miss_count,
        }


class CacheStore:
    """Key/value store whose entries expire ``ttl`` seconds after insertion.

    Expired entries are dropped lazily on read and proactively by a sweep
    task that runs every ``check_period`` seconds between ``open()`` and
    ``close()``. A ``ttl`` of 0 (or ``None`` with a falsy default) stores
    the entry without expiry.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        check_period: float = DEFAULT_CHECK_PERIOD_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.default_ttl = default_ttl
        self.check_period = check_period
        self.logger = get_logger("hotels.cache_store")

        self._clock = clock or time.time
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._sweep_task: Optional[asyncio.Task] = None

    # Lifecycle

    async def open(self) -> None:
        """Start the background expiry sweep."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        self.logger.info("Cache store opened", check_period=self.check_period)

    async def close(self) -> None:
        """Stop the background expiry sweep."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("Cache store closed")

    @property
    def is_open(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def __aenter__(self) -> "CacheStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Operations

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Insert or replace ``key``, restarting its TTL."""
        if ttl is None:
            ttl = self.default_ttl
        self._entries[key] = CacheEntry(key=key, value=value, inserted_at=self._clock(), ttl=ttl)

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key`` or None, counting a hit or miss."""
        entry = self._live_entry(key)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def peek(self, key: str) -> Optional[Any]:
        """Like ``get`` but without touching the hit/miss counters."""
        entry = self._live_entry(key)
        return entry.value if entry is not None else None

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        return entry is not None and not entry.is_expired(self._clock())

    def keys(self) -> List[str]:
        now = self._clock()
        return [key for key, entry in list(self._entries.items()) if not entry.is_expired(now)]

    def get_expiry_timestamp(self, key: str) -> Optional[float]:
        """Epoch seconds at which ``key`` expires, None if absent or unbounded."""
        entry = self._live_entry(key)
        if entry is None:
            return None
        return entry.expires_at

    def flush_all(self) -> int:
        count = len(self.keys())
        self._entries.clear()
        return count

    def flush_stats(self) -> None:
        self._hits = 0
        self._misses = 0

    def stats(self) -> CacheStats:
        return CacheStats(key_count=len(self.keys()), hit_count=self._hits, miss_count=self._misses)

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        removed = 0
        for key, entry in list(self._entries.items()):
            # Only drop the entry we inspected; a concurrent set may have replaced it.
            if entry.is_expired(now) and self._entries.get(key) is entry:
                del self._entries[key]
                removed += 1
        return removed

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        return len(self.keys())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            try:
                removed = self.sweep()
                if removed:
                    self.logger.debug("Expired cache entries swept", removed=removed)
            except Exception as e:
                self.logger.error("Cache sweep failed", error=str(e))
