"""
Error taxonomy shared by the gateways, the orchestrator and the HTTP/WebSocket
surfaces.

Every error carries a machine-readable ``code``, the HTTP status it maps to,
and optional ``details``. Messages are written to be safe to show to users.
"""

from typing import Any, Dict, Optional


class DeFiCopilotError(Exception):
    """Base class for all application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigurationError(DeFiCopilotError):
    """Required configuration is missing or invalid."""

    code = "CONFIGURATION_ERROR"


# =============================================================================
# Upstream (collaborator) errors
# =============================================================================


class ResponseValidationError(DeFiCopilotError):
    """An upstream response did not match the expected schema."""

    code = "INVALID_RESPONSE"
    status_code = 502


class RateLimitExceeded(DeFiCopilotError):
    """Too many requests, either locally or as reported upstream."""

    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, message: str, retry_after: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        self.details.setdefault("retry_after", retry_after)

    def __str__(self) -> str:
        return f"{self.message} (retry after {self.retry_after}s)"


class UpstreamUnauthorized(DeFiCopilotError):
    """The upstream API refused our credentials."""

    code = "UNAUTHORIZED"
    status_code = 403


class UpstreamAPIError(DeFiCopilotError):
    """Non-2xx upstream response that has no more specific mapping."""

    code = "API_ERROR"
    status_code = 502

    def __init__(self, message: str, *, upstream_status: Optional[int] = None, body: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.upstream_status = upstream_status
        self.body = body
        if upstream_status is not None:
            self.details.setdefault("upstream_status", upstream_status)


class UpstreamTimeout(DeFiCopilotError):
    """An external call exceeded its deadline."""

    code = "TIMEOUT"
    status_code = 504


# =============================================================================
# Routing and session errors
# =============================================================================


class UnsupportedOperation(DeFiCopilotError):
    """The classified agent/action pair has no handler."""

    code = "UNSUPPORTED"
    status_code = 400


class IntentParseError(DeFiCopilotError):
    """The language model produced something that is not a valid intent."""

    code = "INTENT_PARSE_ERROR"
    status_code = 422


class AuthenticationRequired(DeFiCopilotError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = 401


class AuthenticationFailed(DeFiCopilotError):
    code = "AUTHENTICATION_FAILED"
    status_code = 401


class NotFoundError(DeFiCopilotError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(DeFiCopilotError):
    code = "CONFLICT"
    status_code = 400


class ConnectionBusy(DeFiCopilotError):
    """A connection already has a request in flight."""

    code = "busy"
    status_code = 409


__all__ = [
    "DeFiCopilotError",
    "ConfigurationError",
    "ResponseValidationError",
    "RateLimitExceeded",
    "UpstreamUnauthorized",
    "UpstreamAPIError",
    "UpstreamTimeout",
    "UnsupportedOperation",
    "IntentParseError",
    "AuthenticationRequired",
    "AuthenticationFailed",
    "NotFoundError",
    "ConflictError",
    "ConnectionBusy",
]
