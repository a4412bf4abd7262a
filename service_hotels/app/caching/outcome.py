"""
How a cached handler run completed.

``Success`` carries the value to cache and share. ``Failure`` carries the
raised exception or the error ``Response`` the handler returned; neither is
ever cached. ``TimedOut`` is what a pending operation settles with when its
safety timer fires before the handler finished.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from starlette.responses import Response

from shared.errors import ProcessingTimeoutError


class ErrorResult(Exception):
    """Raised to followers when the leader's handler returned an error response."""

    def __init__(self, response: Any):
        self.response = response
        super().__init__(f"Handler returned error status {getattr(response, 'status_code', '?')}")


@dataclass(frozen=True)
class Success:
    value: Any

    def unwrap(self) -> Any:
        return self.value


@dataclass(frozen=True)
class Failure:
    """Handler raised ``error`` or returned the error ``response``."""

    error: Optional[BaseException] = None
    response: Any = None

    def as_exception(self) -> BaseException:
        return self.error if self.error is not None else ErrorResult(self.response)

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.response


@dataclass(frozen=True)
class TimedOut:
    key: str
    timeout_ms: float

    def as_exception(self) -> BaseException:
        return ProcessingTimeoutError(self.key, self.timeout_ms)

    def unwrap(self) -> Any:
        raise self.as_exception()


Outcome = Union[Success, Failure, TimedOut]


def is_error_result(result: Any) -> bool:
    return isinstance(result, Response) and result.status_code >= 400


async def invoke_handler(compute: Callable[[], Awaitable[Any]]) -> Outcome:
    """Run ``compute`` and capture how it completed."""
    try:
        result = await compute()
    except Exception as exc:
        return Failure(error=exc)
    if is_error_result(result):
        return Failure(response=result)
    return Success(result)
