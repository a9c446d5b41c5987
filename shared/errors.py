"""
Shared error handling for the Access Gateway.

Every failure surfaced to a caller is a ``GatewayException`` carrying a
stable machine-readable ``code``. ``to_response`` renders the standard
envelope ``{"status": "error", "message": ..., "data": {"code": ..., ...}}``.
"""

from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    """Standard response envelope shared by success and error responses."""

    status: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


def success_response(message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    """Build a success envelope ready for JSON serialization."""
    if data is None:
        data = {}
    return {"status": "success", "message": message, "data": data}


class GatewayException(Exception):
    """Base exception for Access Gateway errors."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.headers = headers or {}
        super().__init__(message)

    def to_response(self) -> ApiResponse:
        """Convert to the error envelope."""
        return ApiResponse(
            status="error",
            message=self.message,
            data={"code": self.code, **self.details},
        )


class AuthenticationError(GatewayException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", code: str = "AUTHENTICATION_ERROR",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(code, message, details)


class MissingTokenError(AuthenticationError):
    """Authorization header absent or not of the form ``Bearer <token>``."""

    def __init__(self, message: str = "Authorization token required"):
        super().__init__(message, "MISSING_TOKEN")


class MalformedTokenError(AuthenticationError):
    """Signature invalid, algorithm not allowed or token undecodable."""

    def __init__(self, message: str = "Invalid token format"):
        super().__init__(message, "MALFORMED_TOKEN")


class ExpiredTokenError(AuthenticationError):
    """Token signature is valid but its expiry is in the past."""

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message, "EXPIRED_TOKEN")


class InvalidTokenPayloadError(AuthenticationError):
    """Token verified but required claims are missing."""

    def __init__(self, missing: Sequence[str] = (), message: str = "Invalid token payload"):
        details = {"missing": list(missing)} if missing else None
        super().__init__(message, "INVALID_TOKEN", details)


class InvalidCredentialsError(AuthenticationError):
    """Email/password rejected by the identity store."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message, "INVALID_CREDENTIALS")


class AuthorizationError(GatewayException):
    """Authenticated caller lacks the role required by the endpoint."""

    status_code = 403

    def __init__(self, required: Sequence[str], current: Optional[str],
                 message: str = "Insufficient permissions to access this resource"):
        self.required = list(required)
        self.current = current
        super().__init__(
            "INSUFFICIENT_PERMISSIONS",
            message,
            {"required": self.required, "current": current},
        )


class ValidationError(GatewayException):
    """Aggregated request validation errors."""

    status_code = 400

    def __init__(self, errors: List[str], message: str = "Validation failed"):
        self.errors = list(errors)
        super().__init__("VALIDATION_ERROR", message, {"errors": self.errors})


class RateLimitError(GatewayException):
    """Request budget for the tier exceeded."""

    status_code = 429

    def __init__(self, limit: int, window: int, retry_after: int,
                 message: str = "Too many requests, please try again later",
                 headers: Optional[Dict[str, str]] = None):
        self.limit = limit
        self.window = window
        self.retry_after = retry_after
        super().__init__(
            "RATE_LIMIT_EXCEEDED",
            message,
            {"retryAfter": retry_after, "limit": limit, "window": window},
            headers=headers,
        )


class TransitionError(GatewayException):
    """Requested status change is not an edge of the lifecycle graph."""

    status_code = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            "INVALID_STATUS_TRANSITION",
            f"Cannot change status from {current} to {requested}",
            {"current": current, "requested": requested},
        )


class ConflictError(GatewayException):
    """Resource conflicts with existing state (e.g. duplicate names)."""

    status_code = 409

    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(code, message)


class UpstreamError(GatewayException):
    """Remote identity/data store failure."""

    status_code = 502

    def __init__(self, message: str = "Upstream service error", code: str = "UPSTREAM_ERROR",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(code, message, details)


class NotFoundError(UpstreamError):
    """Remote store reported the requested record does not exist."""

    status_code = 404

    def __init__(self, resource: str = "Resource"):
        self.resource = resource
        super().__init__(f"{resource} not found", "NOT_FOUND")


class RetryExhaustedError(GatewayException):
    """Outbound call still failing after every permitted attempt."""

    status_code = 503

    def __init__(self, attempts: int, last_error: BaseException,
                 message: str = "Upstream service unavailable"):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__("RETRY_EXHAUSTED", message, {"attempts": attempts})


class InternalError(GatewayException):
    """Programming error detected at runtime; never caused by user input."""

    status_code = 500

    def __init__(self, message: str = "Internal server error", code: str = "INTERNAL_ERROR"):
        super().__init__(code, message)
