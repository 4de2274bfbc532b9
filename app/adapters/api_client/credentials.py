"""Credential resolvers, one per execution context.

The request client is built with exactly one resolver and asks it for the
current credential before every dispatch and for a refresh on expiry.

- :class:`TrustedCredentialResolver` runs where tokens are held server-side.
  It attaches the access token itself and refreshes by calling the downstream
  refresh operation with the stored refresh token.
- :class:`DelegatedCredentialResolver` runs where tokens are not available
  (requests go through the BFF proxy, which injects the token). It attaches
  nothing and refreshes by POSTing to the BFF refresh endpoint, relying on
  the cookies the transport already carries.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

import httpx

from app.adapters.api_client.token_store import SessionTokens, TokenStore
from app.core.errors import ApiError

logger = logging.getLogger(__name__)

RefreshTokensFn = Callable[[str], Awaitable[SessionTokens]]


class CredentialResolver(ABC):
    """Source of the outbound bearer credential."""

    @abstractmethod
    async def current_credential(self) -> str | None:
        """Return the credential to attach now, or None to attach nothing.

        Must read the backing store on every call; a refresh may have
        replaced the credential since the last read.
        """
        raise NotImplementedError

    @abstractmethod
    async def refresh(self) -> bool:
        """Obtain a new credential. Returns True when one is now available."""
        raise NotImplementedError


class TrustedCredentialResolver(CredentialResolver):
    """Attach server-held access tokens; refresh with the refresh token."""

    def __init__(self, token_store: TokenStore, refresh_tokens: RefreshTokensFn) -> None:
        """Initialize the resolver.

        Args:
            token_store: Server-held storage for the token pair.
            refresh_tokens: Exchanges a refresh token for a new pair; raises
                ApiError when the downstream refuses.
        """
        self._store = token_store
        self._refresh_tokens = refresh_tokens

    async def current_credential(self) -> str | None:
        return await self._store.get_access_token()

    async def refresh(self) -> bool:
        refresh_token = await self._store.get_refresh_token()
        if not refresh_token:
            logger.info("api_client.refresh_unavailable", extra={"reason": "no_refresh_token"})
            await self._store.clear()
            return False

        refreshed = False
        try:
            tokens = await self._refresh_tokens(refresh_token)
            await self._store.save(tokens)
            refreshed = True
        except ApiError as exc:
            logger.warning(
                "api_client.refresh_rejected",
                extra={"status": exc.status, "error_message": exc.message},
            )
        finally:
            # Never keep presenting a credential the server has rejected
            if not refreshed:
                await self._store.clear()
        return refreshed


class DelegatedCredentialResolver(CredentialResolver):
    """Leave credentials to the fronting proxy; refresh through its endpoint."""

    def __init__(self, http: httpx.AsyncClient, refresh_url: str) -> None:
        self._http = http
        self._refresh_url = refresh_url

    async def current_credential(self) -> str | None:
        return None

    async def refresh(self) -> bool:
        try:
            response = await self._http.post(self._refresh_url)
        except httpx.TransportError as exc:
            logger.warning(
                "api_client.refresh_unreachable",
                extra={"error_type": type(exc).__name__, "error_message": str(exc)},
            )
            return False

        if not response.is_success:
            logger.info("api_client.refresh_rejected", extra={"status": response.status_code})
            return False
        return True
