"""
Hotel service response caching package.

Shields the upstream hotel API from duplicate work: an in-process TTL
store, a non-atomic caching decorator, and a single-flight decorator
that coalesces concurrent misses for the same request key.
"""

from .cache_manager import CacheManager
from .decorators import (
    AtomicCachingDecorator,
    CachingDecorator,
    RequestDescriptor,
    describe_request,
    request_cache_key,
)
from .outcome import Failure, Outcome, Success, TimedOut
from .pending import PendingOperation, PendingRegistry
from .store import CacheEntry, CacheStats, CacheStore

__all__ = [
    "AtomicCachingDecorator",
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "CacheStore",
    "CachingDecorator",
    "Failure",
    "Outcome",
    "PendingOperation",
    "PendingRegistry",
    "RequestDescriptor",
    "Success",
    "TimedOut",
    "describe_request",
    "request_cache_key",
]
