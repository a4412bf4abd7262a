"""
Hotel service cache manager.

Owns the response cache store and the pending-operation registry, hands
out caching decorators bound to them, and exposes the administrative
operations used by the cache management endpoints.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from shared.logging import get_logger

from .decorators import (
    AtomicCachingDecorator,
    CachingDecorator,
    DEFAULT_DURATION_SECONDS,
    DEFAULT_WAIT_TIMEOUT_MS,
)
from .pending import PendingRegistry
from .store import CacheStore, DEFAULT_CHECK_PERIOD_SECONDS, DEFAULT_TTL_SECONDS

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class CacheManager:
    """Process-wide response cache with explicit lifecycle."""

    def __init__(
        self,
        *,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        check_period: float = DEFAULT_CHECK_PERIOD_SECONDS,
        wait_timeout_ms: float = DEFAULT_WAIT_TIMEOUT_MS,
        metrics: Optional["MetricsCollector"] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.logger = get_logger("hotels.cache_manager")
        self.metrics = metrics
        self.wait_timeout_ms = wait_timeout_ms
        self.store = CacheStore(default_ttl=default_ttl, check_period=check_period, clock=clock)
        self.pending = PendingRegistry()

    async def open(self) -> None:
        await self.store.open()

    async def close(self) -> None:
        await self.store.close()
        dropped = self.pending.clear()
        if dropped:
            self.logger.info("Dropped pending operations on close", count=dropped)

    async def __aenter__(self) -> "CacheManager":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Decorators

    def cached(self, duration_seconds: float = DEFAULT_DURATION_SECONDS) -> CachingDecorator:
        """Non-atomic response caching for a handler."""
        return CachingDecorator(self.store, duration_seconds, metrics=self.metrics)

    def atomic_cached(
        self,
        duration_seconds: float = DEFAULT_DURATION_SECONDS,
        wait_timeout_ms: Optional[float] = None,
    ) -> AtomicCachingDecorator:
        """Single-flight response caching for a handler."""
        return AtomicCachingDecorator(
            self.store,
            self.pending,
            duration_seconds,
            wait_timeout_ms if wait_timeout_ms is not None else self.wait_timeout_ms,
            metrics=self.metrics,
        )

    # Administrative surface

    def stats(self) -> Dict[str, int]:
        stats = self.store.stats().to_dict()
        stats["pending"] = len(self.pending)
        return stats

    def keys(self) -> List[str]:
        return self.store.keys()

    def get(self, key: str) -> Optional[Any]:
        return self.store.get(key)

    def get_expiry_timestamp(self, key: str) -> Optional[float]:
        return self.store.get_expiry_timestamp(key)

    def delete(self, key: str) -> bool:
        deleted = self.store.delete(key)
        if deleted:
            self.logger.info("Cache key deleted", key=key)
        return deleted

    def clear_by_pattern(self, pattern: str) -> int:
        """Remove every store and pending key containing ``pattern``."""
        matching = [key for key in self.store.keys() if pattern in key]
        for key in matching:
            self.store.delete(key)
        pending_dropped = self.pending.remove_matching(pattern)
        self.logger.info(
            "Cleared cache entries matching pattern",
            pattern=pattern,
            keys_cleared=len(matching),
            pending_cleared=pending_dropped,
        )
        return len(matching)

    def clear_all(self) -> int:
        cleared = self.store.flush_all()
        pending_dropped = self.pending.clear()
        self.logger.info("All cache cleared", keys_cleared=cleared, pending_cleared=pending_dropped)
        return cleared

    def describe_key(self, key: str) -> Optional[Dict[str, Any]]:
        """JSON-ready view of one entry, read without counting a hit."""
        if not self.store.has(key):
            return None
        expires_at = self.store.get_expiry_timestamp(key)
        return {
            "key": key,
            "data": self.store.peek(key),
            "ttl": self._seconds_left(expires_at),
            "expires_at": self._format_timestamp(expires_at),
        }

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        entries = {}
        for key in self.store.keys():
            described = self.describe_key(key)
            if described is not None:
                described.pop("key")
                entries[key] = described
        return entries

    def _seconds_left(self, expires_at: Optional[float]) -> Optional[int]:
        if expires_at is None:
            return None
        return max(0, round(expires_at - self.store.now()))

    @staticmethod
    def _format_timestamp(value: Optional[float]) -> Optional[str]:
        if value is None:
            return None
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
