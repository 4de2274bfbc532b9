"""Global exception handlers for consistent error responses.

Design:
- ApiError → the downstream status (502 for transport failures)
- ConfigurationAppError → 500
- ValidationAppError → 400, AuthenticationAppError → 403
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.errors import (
    ApiError,
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
)
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


def status_for_error(exc: AppError) -> int:
    """Map an application error to the HTTP status returned to the caller."""
    if isinstance(exc, ApiError):
        if 400 <= exc.status < 600:
            return exc.status
        return 502  # network failure or unexpected downstream status
    if isinstance(exc, ConfigurationAppError):
        return 500
    if isinstance(exc, AuthenticationAppError):
        return 403
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render AppError subclasses as ``{"error": {...}}`` JSON.

    Session-expired errors carry ``session_expired: true`` so the dashboard
    can send the user to sign-in instead of showing the message.
    """
    status_code = status_for_error(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if isinstance(exc, ApiError) and exc.is_session_expired:
        error_content["session_expired"] = True
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error_content})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for unexpected errors; never leaks internals to the client."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
