"""
Circuit breaker guarding calls to the upstream hotel API.
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, Union

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    CLOSED = "closed"  # calls flow
    OPEN = "open"  # calls rejected until recovery_timeout passes
    HALF_OPEN = "half_open"  # one trial call decides


class CircuitBreakerOpenException(Exception):
    """Raised instead of calling through an open breaker."""


class CircuitBreaker:
    """Stop calling a dependency after ``failure_threshold`` consecutive failures.

    Only exceptions matching ``expected_exception`` count as failures, so
    a 404 from upstream does not trip the breaker. After
    ``recovery_timeout`` seconds one trial call is let through: success
    closes the breaker, failure reopens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        expected_exception: Union[Type[BaseException], Tuple[Type[BaseException], ...]] = Exception,
        name: str = "default",
        clock: Optional[Callable[[], float]] = None,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.name = name
        self.logger = get_logger(f"hotels.circuit_breaker.{name}")
        self._clock = clock or time.monotonic

        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    def allow_request(self) -> bool:
        if self.state is not CircuitBreakerState.OPEN:
            return True
        if self._clock() - self.opened_at >= self.recovery_timeout:
            self.state = CircuitBreakerState.HALF_OPEN
            self.logger.info("Circuit half-open, allowing trial call")
            return True
        return False

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        if not self.allow_request():
            raise CircuitBreakerOpenException(f"Circuit breaker '{self.name}' is OPEN")

        try:
            result = await func(*args, **kwargs)
        except self.expected_exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self) -> None:
        if self.state is CircuitBreakerState.HALF_OPEN:
            self.logger.info("Circuit closed after successful trial call")
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state is CircuitBreakerState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state is not CircuitBreakerState.OPEN:
                self.logger.warning(
                    "Circuit opened",
                    failure_count=self.failure_count,
                    threshold=self.failure_threshold,
                )
            self.state = CircuitBreakerState.OPEN
            self.opened_at = self._clock()

    def is_open(self) -> bool:
        return self.state is CircuitBreakerState.OPEN

    def get_state(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }
