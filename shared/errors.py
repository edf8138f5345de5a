"""
Shared error handling for the Crypto Dashboard API.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    code: str
    details: Dict[str, Any] = {}
    request_id: Optional[str] = None


class DashboardException(Exception):
    """Base exception for dashboard services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.message,
            code=self.code,
            details=self.details,
            request_id=request_id
        )


class ValidationError(DashboardException):
    """Malformed or missing request parameters."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ServiceError(DashboardException):
    """Service-related errors."""

    status_code = 500

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)


class ExternalServiceError(DashboardException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        self.service = service
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class UpstreamFetchError(ExternalServiceError):
    """The market data provider failed (transport, non-2xx or malformed payload)."""

    def __init__(self, message: str = "Upstream fetch failed", details: Optional[Dict[str, Any]] = None,
                 service: str = "coingecko"):
        super().__init__(service, message, details)
        self.code = "UPSTREAM_FETCH_ERROR"


class StoreUnavailableError(DashboardException):
    """Any failure communicating with the shared key-value store."""

    status_code = 503

    def __init__(self, operation: str, message: str = "Store unavailable", details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__("STORE_UNAVAILABLE", f"{operation}: {message}", details)


class RateLimitError(DashboardException):
    """Raised by endpoint guards when a client exceeded its window.

    ``decision`` is the limiter's decision: it exposes ``message``, ``limit``,
    ``retry_after`` and ``headers()``.
    """

    status_code = 429

    def __init__(self, decision: Any):
        self.decision = decision
        super().__init__(
            "RATE_LIMIT_ERROR",
            decision.message,
            {"retry_after": decision.retry_after, "limit": decision.limit}
        )

    def to_body(self) -> Dict[str, Any]:
        """Body returned to clients on denial."""
        return {"error": self.message, "retryAfter": self.decision.retry_after}
