"""
Shared error handling for the delivery gateway.
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


class GatewayException(Exception):
    """Base exception for gateway failures."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(GatewayException):
    """Validation-related errors."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class StoreUnavailable(GatewayException):
    """The remote cache backend could not be reached.

    The local backend never raises this.
    """

    status_code = 503

    def __init__(self, message: str = "Cache store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_UNAVAILABLE", message, details)


class RateLimitExceeded(GatewayException):
    """Policy rejection: the client used up its window."""

    status_code = 429

    def __init__(self, limit: int, current_count: int, window_seconds: int):
        self.limit = limit
        self.current_count = current_count
        self.window_seconds = window_seconds
        super().__init__(
            "RATE_LIMIT_EXCEEDED",
            "Rate limit exceeded",
            {
                "limit": limit,
                "current_count": current_count,
                "window_seconds": window_seconds,
            },
        )


class CredentialFetchFailed(GatewayException):
    """The OAuth token endpoint did not hand out a usable token."""

    status_code = 502

    def __init__(self, status: Optional[int], body: str, message: str = "OAuth token request failed"):
        self.status = status
        self.body = body
        super().__init__(
            "CREDENTIAL_FETCH_FAILED",
            message,
            {"upstream_status": status},
        )


class TransportExhausted(GatewayException):
    """The upstream call never produced a response after all retries."""

    status_code = 502

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            "TRANSPORT_EXHAUSTED",
            f"Upstream unreachable after {attempts} attempts",
            {"attempts": attempts, "error": str(last_error) if last_error else None},
        )
