"""
Shared error handling for the hotel backend services.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class HotelServiceException(Exception):
    """Base exception for hotel backend services."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class NotFoundError(HotelServiceException):
    """Requested resource does not exist."""

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details, status_code=404)


class CacheKeyNotFoundError(HotelServiceException):
    """Cache management request for a key that is not cached."""

    def __init__(self, key: str):
        super().__init__("CACHE_KEY_NOT_FOUND", "Key not found in cache", {"key": key}, status_code=404)


class UpstreamServiceError(HotelServiceException):
    """Upstream (third-party) service errors."""

    def __init__(self, service: str, message: str = "Upstream service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_SERVICE_ERROR", f"{service}: {message}", details, status_code=502)


class ProcessingTimeoutError(HotelServiceException):
    """Raised to followers still waiting when a pending operation outlives its safety window."""

    def __init__(self, key: str, timeout_ms: float):
        super().__init__(
            "PROCESSING_TIMEOUT",
            "Request processing timeout",
            {"key": key, "timeout_ms": timeout_ms},
            status_code=504,
        )


class CacheInvalidatedError(HotelServiceException):
    """A pending computation was dropped by an administrative clear.

    Only followers of that operation receive it, and they react by running
    the handler themselves, so no HTTP caller ever sees this error.
    """

    def __init__(self, key: str):
        super().__init__(
            "CACHE_INVALIDATED",
            "Pending request was invalidated",
            {"key": key},
            status_code=503,
        )
