"""
Registry of in-flight cache computations that concurrent requests can join.
"""

import asyncio
from typing import Any, Dict, List, Optional

from shared.errors import CacheInvalidatedError
from shared.logging import get_logger

from .outcome import Outcome, Success, TimedOut


def _mark_retrieved(future: asyncio.Future) -> None:
    # A rejection nobody awaited must not be reported as "never retrieved".
    if not future.cancelled():
        future.exception()


class PendingOperation:
    """One leader's in-flight computation for ``key``.

    ``future`` is shared by the leader and every follower. A safety timer
    armed at creation force-rejects it with ``ProcessingTimeoutError``
    if nothing settles it within ``timeout`` seconds.
    """

    def __init__(self, key: str, timeout: float, loop: asyncio.AbstractEventLoop):
        self.key = key
        self.timeout = timeout
        self.created_at = loop.time()
        self.deadline = self.created_at + timeout
        self.future: asyncio.Future = loop.create_future()
        self.future.add_done_callback(_mark_retrieved)
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def done(self) -> bool:
        return self.future.done()

    def resolve(self, value: Any) -> bool:
        """Settle successfully; returns False if already settled."""
        self._cancel_timer()
        if self.future.done():
            return False
        self.future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        """Settle with ``error``; returns False if already settled."""
        self._cancel_timer()
        if self.future.done():
            return False
        self.future.set_exception(error)
        return True

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def __repr__(self) -> str:
        state = "done" if self.done else "pending"
        return f"<PendingOperation key={self.key!r} {state}>"


class PendingRegistry:
    """Per-key table of pending operations, keyed like the cache store.

    An operation leaves the table as soon as it is resolved, rejected or
    times out. When a follower gives up on a slow leader and registers a
    new operation for the same key, the newer operation takes the slot and
    the abandoned one no longer removes anything when it settles.
    """

    def __init__(self):
        self.logger = get_logger("hotels.pending_registry")
        self._operations: Dict[str, PendingOperation] = {}

    def get(self, key: str) -> Optional[PendingOperation]:
        return self._operations.get(key)

    def register(self, key: str, timeout: float) -> PendingOperation:
        """Create the pending operation for ``key`` with a safety timeout."""
        loop = asyncio.get_running_loop()
        operation = PendingOperation(key, timeout, loop)
        operation._timer = loop.call_later(timeout, self._expire, operation)

        previous = self._operations.get(key)
        if previous is not None and not previous.done:
            self.logger.warning("Superseding slow pending operation", key=key)
        self._operations[key] = operation
        return operation

    def resolve(self, operation: PendingOperation, value: Any) -> None:
        operation.resolve(value)
        self._discard(operation)

    def reject(self, operation: PendingOperation, error: BaseException) -> None:
        operation.reject(error)
        self._discard(operation)

    def settle(self, operation: PendingOperation, outcome: Outcome) -> None:
        """Resolve with a success, reject with anything else."""
        if isinstance(outcome, Success):
            self.resolve(operation, outcome.value)
        else:
            self.reject(operation, outcome.as_exception())

    def remove_matching(self, pattern: str) -> int:
        """Drop every operation whose key contains ``pattern``."""
        matching = [op for key, op in list(self._operations.items()) if pattern in key]
        for operation in matching:
            self.reject(operation, CacheInvalidatedError(operation.key))
        return len(matching)

    def clear(self) -> int:
        return self.remove_matching("")

    def keys(self) -> List[str]:
        return list(self._operations)

    def __contains__(self, key: object) -> bool:
        return key in self._operations

    def __len__(self) -> int:
        return len(self._operations)

    def _expire(self, operation: PendingOperation) -> None:
        operation._timer = None
        if not operation.done:
            self.logger.warning(
                "Pending operation exceeded safety timeout",
                key=operation.key,
                timeout_ms=operation.timeout * 1000,
            )
            operation.reject(TimedOut(operation.key, operation.timeout * 1000).as_exception())
        self._discard(operation)

    def _discard(self, operation: PendingOperation) -> None:
        if self._operations.get(operation.key) is operation:
            del self._operations[operation.key]
