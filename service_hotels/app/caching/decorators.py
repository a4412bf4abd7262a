"""
Response caching decorators for request handlers.

Two flavours share the same memoization contract:

- ``CachingDecorator`` serves hits from the store and populates it on a
  miss. Concurrent misses for one key each run the handler.
- ``AtomicCachingDecorator`` additionally coalesces concurrent misses:
  the first request (the leader) runs the handler while later ones
  (followers) await its pending operation, bounded by ``wait_timeout_ms``.

Handlers are plain async callables. Their completion is captured as an
explicit ``Outcome`` (see ``outcome.py``); raising, or returning a
``Response`` with an error status, counts as failure and is never cached.
"""

import asyncio
import functools
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from starlette.requests import Request

from shared.errors import CacheInvalidatedError, ProcessingTimeoutError
from shared.logging import get_logger

from .outcome import Outcome, Success, invoke_handler
from .pending import PendingOperation, PendingRegistry
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_DURATION_SECONDS = 600
DEFAULT_WAIT_TIMEOUT_MS = 5000

Handler = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class RequestDescriptor:
    """What the cache needs to know about a request."""

    key: str
    bypass: bool = False


def request_cache_key(request: Request) -> str:
    """Path plus raw query string, exactly as the client sent them.

    The path comes from the undecoded ``raw_path`` so that ``/a%3Fb=1`` and
    ``/a?b=1`` never share a key.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path
    query = request.url.query
    return f"{path}?{query}" if query else path


def describe_request(request: Union[Request, RequestDescriptor]) -> RequestDescriptor:
    """Build a descriptor from a Starlette request.

    The cache is bypassed when an upstream dependency set
    ``request.state.skip_cache`` or the client sent ``Cache-Control: no-cache``.
    """
    if isinstance(request, RequestDescriptor):
        return request

    bypass = bool(getattr(request.state, "skip_cache", False))
    cache_control = request.headers.get("cache-control", "")
    if "no-cache" in cache_control.lower():
        bypass = True
    return RequestDescriptor(key=request_cache_key(request), bypass=bypass)


class CachingDecorator:
    """Memoize handler results by request key for ``duration_seconds``."""

    kind = "cached"

    def __init__(
        self,
        store: CacheStore,
        duration_seconds: float = DEFAULT_DURATION_SECONDS,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.duration_seconds = duration_seconds
        self.metrics = metrics
        self.logger = get_logger(f"hotels.{self.kind}")

    def __call__(self, handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def wrapper(*args, **kwargs):
            descriptor = self._find_request(args, kwargs)
            return await self.fetch(descriptor, lambda: handler(*args, **kwargs))

        wrapper.cache_decorator = self  # type: ignore[attr-defined]
        return wrapper

    async def fetch(
        self,
        request: Union[Request, RequestDescriptor],
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        descriptor = describe_request(request)
        key = descriptor.key

        if descriptor.bypass:
            self._record("bypass", key)
            return await compute()

        cached = self.store.get(key)
        if cached is not None:
            self._record("hit", key)
            return cached

        self._record("miss", key)
        outcome = await invoke_handler(compute)
        if isinstance(outcome, Success):
            self._store(key, outcome.value)
        else:
            self._record("failure", key)
        return outcome.unwrap()

    def _store(self, key: str, value: Any) -> None:
        if value is None:
            return
        self.store.set(key, value, self.duration_seconds)
        self.logger.debug("Response cached", key=key, ttl=self.duration_seconds)

    def _record(self, result: str, key: str) -> None:
        self.logger.debug("Cache lookup", result=result, key=key)
        if self.metrics is not None:
            self.metrics.record_cache_event(self.kind, result)

    @staticmethod
    def _find_request(args: tuple, kwargs: dict) -> Union[Request, RequestDescriptor]:
        request = kwargs.get("request")
        if isinstance(request, (Request, RequestDescriptor)):
            return request
        for value in list(args) + list(kwargs.values()):
            if isinstance(value, (Request, RequestDescriptor)):
                return value
        raise TypeError("Cached handlers must accept a Request or RequestDescriptor argument")


class AtomicCachingDecorator(CachingDecorator):
    """Single-flight variant: one handler run per key, shared by all waiters.

    Followers wait at most ``wait_timeout_ms`` for the leader, then lead
    themselves. The pending operation carries a safety timer of twice that
    window: when it fires, anyone still waiting gets ``ProcessingTimeoutError``
    and the key is free again. The leader itself always waits for its own
    handler and returns its real outcome, storing a late success.
    """

    kind = "atomic_cached"

    def __init__(
        self,
        store: CacheStore,
        registry: PendingRegistry,
        duration_seconds: float = DEFAULT_DURATION_SECONDS,
        wait_timeout_ms: float = DEFAULT_WAIT_TIMEOUT_MS,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        super().__init__(store, duration_seconds, metrics=metrics)
        self.registry = registry
        self.wait_timeout_ms = wait_timeout_ms

    @property
    def safety_timeout_ms(self) -> float:
        return 2 * self.wait_timeout_ms

    async def fetch(
        self,
        request: Union[Request, RequestDescriptor],
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        descriptor = describe_request(request)
        key = descriptor.key

        if descriptor.bypass:
            self._record("bypass", key)
            return await compute()

        cached = self.store.get(key)
        if cached is not None:
            self._record("hit", key)
            return cached

        operation = self.registry.get(key)
        if operation is not None:
            try:
                value = await asyncio.wait_for(
                    asyncio.shield(operation.future),
                    timeout=self.wait_timeout_ms / 1000,
                )
            except asyncio.TimeoutError:
                self._record("wait_timeout", key)
                self.logger.warning(
                    "Gave up waiting for pending request, processing independently",
                    key=key,
                    wait_timeout_ms=self.wait_timeout_ms,
                )
            except ProcessingTimeoutError:
                self._record("failure", key)
                raise
            except Exception as exc:
                self.logger.info("Pending request failed, processing independently", key=key, error=str(exc))
            else:
                self._record("coalesced", key)
                return value
        else:
            self._record("miss", key)

        return await self._lead(key, compute)

    async def _lead(self, key: str, compute: Callable[[], Awaitable[Any]]) -> Any:
        operation = self.registry.register(key, self.safety_timeout_ms / 1000)
        task = asyncio.ensure_future(invoke_handler(compute))

        try:
            outcome: Outcome = await asyncio.shield(task)
        except asyncio.CancelledError:
            # The caller went away; whoever else waits still gets the result.
            task.add_done_callback(functools.partial(self._settle_late, key, operation))
            raise

        self._settle(key, operation, outcome)
        return outcome.unwrap()

    def _settle(self, key: str, operation: PendingOperation, outcome: Outcome) -> None:
        if operation.done:
            # Already released by the safety timer or an invalidation.
            self.logger.info("Handler finished after its pending operation was released", key=key)

        if isinstance(outcome, Success):
            # Store before resolving so the value is visible to later requests first.
            self._store(key, outcome.value)
        else:
            self._record("failure", key)
        self.registry.settle(operation, outcome)

    def _settle_late(self, key: str, operation: PendingOperation, task: asyncio.Future) -> None:
        if task.cancelled():
            self.registry.reject(operation, CacheInvalidatedError(key))
            return
        self._settle(key, operation, task.result())
