"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


SESSION_EXPIRED_MESSAGE = "Session expired. Please sign in again."


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    url: str
    response_message: str
    retry_after: float
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class ConfigurationAppError(AppError):
    """Raised at startup when required configuration is missing.

    Never retried; callers should treat it as fatal.
    """


@dataclass
class ApiError(AppError):
    """Failed exchange with the downstream API.

    Attributes:
        status: HTTP status of the final response, or 0 when the transport
            could not complete the exchange (DNS, refused connection, timeout).
        is_session_expired: True only when the credential expired and the
            refresh attempt failed; callers should force re-authentication
            instead of showing ``message``.
        original_error: Underlying transport exception, if any.
    """

    status: int = 0
    is_session_expired: bool = False
    original_error: BaseException | None = None

    @property
    def is_network_error(self) -> bool:
        return self.status == 0

    @classmethod
    def network(cls, exc: BaseException) -> "ApiError":
        message = str(exc) or "Failed to connect to server"
        return cls(
            code="network_error",
            message=f"Network error: {message}",
            status=0,
            original_error=exc,
        )

    @classmethod
    def session_expired(cls, response_message: str | None = None) -> "ApiError":
        details: ErrorDetails = {"http_status": 401}
        if response_message:
            details["response_message"] = response_message
        return cls(
            code="session_expired",
            message=SESSION_EXPIRED_MESSAGE,
            details=details,
            status=401,
            is_session_expired=True,
        )

    @classmethod
    def from_response(cls, status: int, message: str) -> "ApiError":
        return cls(
            code="unauthorized" if status == 401 else "request_failed",
            message=message,
            details={"http_status": status},
            status=status,
        )
