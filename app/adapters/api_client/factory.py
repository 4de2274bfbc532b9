"""Factory functions building request clients per execution context."""

from __future__ import annotations

import httpx

from app.adapters.api_client.client import ApiClient
from app.adapters.api_client.credentials import (
    DelegatedCredentialResolver,
    TrustedCredentialResolver,
)
from app.adapters.api_client.token_store import SessionTokens, TokenStore
from app.core.config import settings
from app.core.errors import ConfigurationAppError
from app.services.auth_service import refresh_session_tokens


def resolve_api_base_url() -> str:
    """Return the downstream base URL without trailing slashes.

    ``API_BASE_URL`` wins over ``API_PUBLIC_BASE_URL``.

    Raises:
        ConfigurationAppError: If neither is configured.
    """

    for candidate in (settings.api.base_url, settings.api.public_base_url):
        if candidate and candidate.strip():
            return candidate.strip().rstrip("/")

    raise ConfigurationAppError(
        code="api_base_url_missing",
        message="API base URL is not configured. Set API_BASE_URL or API_PUBLIC_BASE_URL.",
    )


def create_trusted_resolver(token_store: TokenStore, http: httpx.AsyncClient) -> TrustedCredentialResolver:
    base_url = resolve_api_base_url()

    async def refresh_tokens(refresh_token: str) -> SessionTokens:
        return await refresh_session_tokens(http, base_url, refresh_token)

    return TrustedCredentialResolver(token_store, refresh_tokens)


def create_server_client(token_store: TokenStore, http: httpx.AsyncClient) -> ApiClient:
    """Client for server-side code holding the session tokens.

    Args:
        token_store: Where the current request's tokens live.
        http: Shared transport (must not persist cookies between users).
    """

    return ApiClient(
        resolve_api_base_url(),
        create_trusted_resolver(token_store, http),
        http,
    )


def create_delegated_client(bff_base_url: str, http: httpx.AsyncClient) -> ApiClient:
    """Client for callers that only hold BFF session cookies.

    Requests go through the BFF proxy, which attaches the access token.

    Args:
        bff_base_url: Origin of this BFF service.
        http: Transport carrying the caller's session cookies.

    Raises:
        ConfigurationAppError: If bff_base_url is empty.
    """

    if not bff_base_url or not bff_base_url.strip():
        raise ConfigurationAppError(
            code="bff_base_url_missing",
            message="Delegated client requires the BFF base URL",
        )
    base_url = bff_base_url.strip().rstrip("/")
    resolver = DelegatedCredentialResolver(http, f"{base_url}{settings.api.bff_refresh_path}")
    return ApiClient(base_url, resolver, http, proxy_path=settings.api.bff_proxy_path)
