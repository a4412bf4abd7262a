"""
Unit tests for the pending-operation registry.
"""

import asyncio

import pytest

from service_hotels.app.caching.outcome import Failure, Success, TimedOut
from service_hotels.app.caching.pending import PendingRegistry
from shared.errors import CacheInvalidatedError, ProcessingTimeoutError


KEY = "/hotels/diH7/prices?destination_id=WD0M"


class TestPendingRegistry:
    """Test cases for PendingRegistry."""

    @pytest.fixture
    def registry(self):
        return PendingRegistry()

    @pytest.mark.asyncio
    async def test_register_and_get(self, registry):
        operation = registry.register(KEY, timeout=1.0)

        assert registry.get(KEY) is operation
        assert KEY in registry
        assert len(registry) == 1
        assert operation.done is False
        assert operation.deadline == pytest.approx(operation.created_at + 1.0)

        registry.resolve(operation, {"rooms": []})

    @pytest.mark.asyncio
    async def test_resolve_settles_future_and_removes_entry(self, registry):
        operation = registry.register(KEY, timeout=1.0)
        waiter = asyncio.ensure_future(operation.future)

        registry.resolve(operation, {"rooms": [{"price": 120}]})

        assert await waiter == {"rooms": [{"price": 120}]}
        assert registry.get(KEY) is None
        assert registry.keys() == []

    @pytest.mark.asyncio
    async def test_reject_settles_future_and_removes_entry(self, registry):
        operation = registry.register(KEY, timeout=1.0)

        registry.reject(operation, ValueError("upstream exploded"))

        with pytest.raises(ValueError, match="upstream exploded"):
            await operation.future
        assert KEY not in registry

    @pytest.mark.asyncio
    async def test_settling_twice_keeps_first_outcome(self, registry):
        operation = registry.register(KEY, timeout=1.0)

        registry.resolve(operation, "first")
        assert operation.resolve("second") is False
        assert operation.reject(ValueError("late")) is False
        assert operation.future.result() == "first"

    @pytest.mark.asyncio
    async def test_safety_timeout_rejects_and_removes(self, registry):
        loop = asyncio.get_running_loop()
        operation = registry.register(KEY, timeout=0.05)
        started = loop.time()

        with pytest.raises(ProcessingTimeoutError) as exc_info:
            await operation.future

        assert loop.time() - started < 0.05 + 0.1
        assert exc_info.value.details["timeout_ms"] == pytest.approx(50)
        assert KEY not in registry

    @pytest.mark.asyncio
    async def test_resolved_operation_timer_does_not_fire(self, registry):
        operation = registry.register(KEY, timeout=0.02)
        registry.resolve(operation, "value")

        await asyncio.sleep(0.05)

        assert operation.future.result() == "value"

    @pytest.mark.asyncio
    async def test_superseded_operation_does_not_remove_successor(self, registry):
        abandoned = registry.register(KEY, timeout=1.0)
        successor = registry.register(KEY, timeout=1.0)

        assert registry.get(KEY) is successor

        registry.resolve(abandoned, "stale")
        assert registry.get(KEY) is successor

        registry.resolve(successor, "fresh")
        assert registry.get(KEY) is None

    @pytest.mark.asyncio
    async def test_superseded_operation_timeout_does_not_remove_successor(self, registry):
        abandoned = registry.register(KEY, timeout=0.02)
        successor = registry.register(KEY, timeout=1.0)

        await asyncio.sleep(0.05)

        assert isinstance(abandoned.future.exception(), ProcessingTimeoutError)
        assert registry.get(KEY) is successor
        registry.resolve(successor, "fresh")

    @pytest.mark.asyncio
    async def test_remove_matching_rejects_matching_operations(self, registry):
        prices = registry.register("/hotels/diH7/prices?destination_id=WD0M", timeout=1.0)
        other = registry.register("/hotels?destination_id=RsBU", timeout=1.0)

        assert registry.remove_matching("prices") == 1

        assert isinstance(prices.future.exception(), CacheInvalidatedError)
        assert registry.keys() == ["/hotels?destination_id=RsBU"]
        assert other.done is False
        registry.resolve(other, [])

    @pytest.mark.asyncio
    async def test_clear(self, registry):
        first = registry.register("/a", timeout=1.0)
        second = registry.register("/b", timeout=1.0)

        assert registry.clear() == 2

        assert len(registry) == 0
        assert first.done and second.done

    @pytest.mark.asyncio
    async def test_settle_with_outcomes(self, registry):
        succeeded = registry.register("/a", timeout=1.0)
        failed = registry.register("/b", timeout=1.0)
        timed_out = registry.register("/c", timeout=1.0)

        registry.settle(succeeded, Success({"rooms": []}))
        registry.settle(failed, Failure(error=ValueError("upstream exploded")))
        registry.settle(timed_out, TimedOut("/c", 1000))

        assert succeeded.future.result() == {"rooms": []}
        assert isinstance(failed.future.exception(), ValueError)
        assert isinstance(timed_out.future.exception(), ProcessingTimeoutError)
        assert len(registry) == 0
