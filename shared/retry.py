"""
Retry decorator for calls to flaky upstream services.
"""

import asyncio
import functools
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from shared.logging import get_logger


@dataclass(frozen=True)
class RetryConfig:
    """How often and how patiently to retry.

    ``backoff_strategy`` is ``"exponential"``, ``"linear"`` or ``"fixed"``.
    Jitter adds up to 10% either way to spread out retry storms.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    backoff_strategy: str = "exponential"


class RetryError(Exception):
    """All attempts failed; ``last_exception`` is the final failure."""

    def __init__(self, message: str, last_exception: BaseException, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to sleep after failed attempt number ``attempt`` (1-based)."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * config.exponential_base ** (attempt - 1)
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay
    delay = min(delay, config.max_delay)

    if config.jitter:
        delay += random.uniform(-0.1, 0.1) * delay
    return max(0.0, delay)


def retry_on_exception(
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    config: Optional[RetryConfig] = None,
) -> Callable:
    """Retry an async function while it raises one of ``exceptions``.

    Other exceptions propagate on the first attempt. Once the attempts are
    exhausted the last failure is wrapped in ``RetryError``.
    """
    config = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        logger = get_logger(f"hotels.retry.{func.__name__}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            attempt = 1
            while True:
                try:
                    result = await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= config.max_attempts:
                        logger.error("Giving up after retries", attempts=attempt, error=str(e))
                        raise RetryError(
                            f"{func.__name__} failed after {attempt} attempts",
                            last_exception=e,
                            attempts=attempt,
                        ) from e
                    delay = backoff_delay(attempt, config)
                    logger.warning("Attempt failed, retrying", attempt=attempt, delay=round(delay, 3), error=str(e))
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue

                if attempt > 1:
                    logger.info("Succeeded after retry", attempt=attempt)
                return result

        return wrapper

    return decorator
