"""Sign-in and token refresh against the downstream auth API."""

from __future__ import annotations

import logging
import re

import httpx

from app.adapters.api_client.client import DEFAULT_HEADERS, ApiClient
from app.adapters.api_client.responses import parse_error_message
from app.adapters.api_client.token_store import SessionTokens
from app.core.config import settings
from app.core.errors import ApiError, ValidationAppError
from app.schemas.auth import (
    AuthResponse,
    EmailVerificationResponse,
    RefreshTokenResponse,
    SigninRequest,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 50


def validate_signin_request(payload: SigninRequest) -> None:
    """Check credential format before spending a downstream call.

    Raises:
        ValidationAppError: With a user-facing message for the first problem.
    """

    if not payload.email or not payload.password:
        raise ValidationAppError(code="signin_missing_fields", message="Email and password are required")
    if not EMAIL_PATTERN.match(payload.email):
        raise ValidationAppError(code="signin_invalid_email", message="Invalid email address")
    if len(payload.password) < PASSWORD_MIN_LENGTH:
        raise ValidationAppError(
            code="signin_password_too_short",
            message=f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
        )
    if len(payload.password) > PASSWORD_MAX_LENGTH:
        raise ValidationAppError(
            code="signin_password_too_long",
            message=f"Password must be less than {PASSWORD_MAX_LENGTH} characters",
        )


async def refresh_session_tokens(
    http: httpx.AsyncClient,
    base_url: str,
    refresh_token: str,
) -> SessionTokens:
    """Exchange a refresh token for a new token pair.

    Called directly rather than through :class:`ApiClient` so that a 401 from
    the refresh endpoint can never recurse into another refresh.

    Raises:
        ApiError: On transport failure, non-2xx status or a malformed body.
    """

    url = f"{base_url}{settings.api.refresh_token_path}"
    try:
        response = await http.post(
            url,
            json={"refresh_token": refresh_token},
            headers=DEFAULT_HEADERS,
        )
    except httpx.TransportError as exc:
        raise ApiError.network(exc) from exc

    if not response.is_success:
        raise ApiError.from_response(response.status_code, parse_error_message(response))

    try:
        data = RefreshTokenResponse.model_validate(response.json())
    except ValueError as exc:
        raise ApiError(
            code="invalid_refresh_response",
            message="Refresh endpoint returned an unexpected body",
            details={"http_status": response.status_code},
            status=response.status_code,
        ) from exc

    return SessionTokens(access_token=data.access_token, refresh_token=data.refresh_token)


class AuthService:
    """Downstream auth operations performed through the request client."""

    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def signin(self, payload: SigninRequest) -> AuthResponse | EmailVerificationResponse:
        """Authenticate credentials downstream.

        Returns:
            AuthResponse with tokens, or EmailVerificationResponse when the
            account still needs its email confirmed.

        Raises:
            ApiError: Rejected credentials (4xx), downstream or network failure.
        """

        body = await self._client.post(settings.api.signin_path, json=payload.model_dump())

        try:
            if isinstance(body, dict) and body.get("requires_verification"):
                return EmailVerificationResponse.model_validate(body)
            return AuthResponse.model_validate(body)
        except ValueError as exc:
            logger.error("auth.signin_unexpected_body", extra={"error_message": str(exc)})
            raise ApiError(
                code="invalid_signin_response",
                message="Sign-in service returned an unexpected response",
                status=502,
            ) from exc
