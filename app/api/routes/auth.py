"""Session endpoints: sign-in (rate limited), token refresh and logout."""

from __future__ import annotations

import logging
import time
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.adapters.api_client.factory import create_server_client, create_trusted_resolver
from app.adapters.api_client.token_store import CookieTokenStore, InMemoryTokenStore, SessionTokens
from app.adapters.rate_limit.login_limiter import LoginRateLimiter
from app.core.errors import ApiError, ValidationAppError
from app.core.http_client import get_http_client
from app.core.logging import hash_identifier
from app.core.rate_limit import get_client_identifier, get_login_rate_limiter
from app.schemas.auth import ActionResult, AuthResponse, SigninRequest, SigninResult
from app.services.auth_service import AuthService, validate_signin_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

HttpClient = Annotated[httpx.AsyncClient, Depends(get_http_client)]
RateLimiter = Annotated[LoginRateLimiter, Depends(get_login_rate_limiter)]


def _signin_response(result: SigninResult, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(by_alias=True, exclude_none=True),
    )


@router.post("/signin", response_model=SigninResult)
async def signin(
    payload: SigninRequest,
    request: Request,
    http: HttpClient,
    limiter: RateLimiter,
) -> JSONResponse:
    """Sign in with email and password.

    The client's recent failures are checked before the downstream call; a
    blocked client gets 429 without its credentials ever leaving the BFF.
    Failed attempts are recorded, and a successful sign-in clears the count
    and sets the session cookies.

    Returns:
        JSONResponse: SigninResult body (200, 400, 401/4xx or 429).
    """
    started = time.perf_counter()
    client_id = get_client_identifier(request.headers)
    client_hash = hash_identifier(client_id)

    try:
        validate_signin_request(payload)
    except ValidationAppError as exc:
        return _signin_response(SigninResult(success=False, error=exc.message), 400)

    decision = await limiter.check_rate_limit(client_id)
    if not decision.allowed:
        minutes = decision.minutes_until_reset(int(time.time() * 1000))
        logger.warning(
            "auth.signin_rate_limited",
            extra={"client_hash": client_hash, "reset_time": decision.reset_time},
        )
        return _signin_response(
            SigninResult(
                success=False,
                error=f"Too many login attempts. Please try again in {minutes} minute(s).",
                rate_limited=True,
                remaining_attempts=0,
            ),
            429,
        )

    # Sign-in is unauthenticated; never forward a stale session token with it
    service = AuthService(create_server_client(InMemoryTokenStore(), http))
    token_store = CookieTokenStore(request.cookies)

    try:
        outcome = await service.signin(payload)
    except ApiError as exc:
        if not 400 <= exc.status < 500:
            raise
        await limiter.record_failed_attempt(client_id)
        remaining = (await limiter.check_rate_limit(client_id)).remaining
        logger.warning(
            "auth.signin_failed",
            extra={
                "client_hash": client_hash,
                "status": exc.status,
                "remaining_attempts": remaining,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return _signin_response(
            SigninResult(success=False, error=exc.message, remaining_attempts=remaining),
            exc.status,
        )

    await limiter.clear_rate_limit(client_id)

    if isinstance(outcome, AuthResponse):
        await token_store.save(
            SessionTokens(access_token=outcome.access_token, refresh_token=outcome.refresh_token)
        )
        token_store.set_user(outcome.user.model_dump())
        data = {"user": outcome.user.model_dump()}
    else:
        data = outcome.model_dump(exclude={"pending_authentication_token"})

    logger.info(
        "auth.signin_succeeded",
        extra={
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "requires_verification": not isinstance(outcome, AuthResponse),
        },
    )

    response = _signin_response(SigninResult(success=True, data=data), 200)
    token_store.apply(response)
    return response


@router.post("/refresh", response_model=ActionResult)
async def refresh(request: Request, http: HttpClient) -> JSONResponse:
    """Exchange the refresh-token cookie for new session cookies.

    Delegated clients call this when the proxy reports an expired token.
    On failure the session cookies are cleared and 401 is returned.
    """
    token_store = CookieTokenStore(request.cookies)
    resolver = create_trusted_resolver(token_store, http)

    if await resolver.refresh():
        response = JSONResponse(content=ActionResult(success=True).model_dump(exclude_none=True))
    else:
        response = JSONResponse(
            status_code=401,
            content=ActionResult(success=False, error="Refresh failed").model_dump(exclude_none=True),
        )

    token_store.apply(response)
    return response


@router.post("/logout", response_model=ActionResult)
async def logout(request: Request) -> JSONResponse:
    """Clear the session cookies."""
    token_store = CookieTokenStore(request.cookies)
    await token_store.clear()

    response = JSONResponse(content=ActionResult(success=True).model_dump(exclude_none=True))
    token_store.apply(response)
    return response
