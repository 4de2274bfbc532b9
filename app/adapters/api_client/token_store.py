"""Server-held session token storage.

The trusted context keeps the short-lived access token and the long-lived
refresh token out of reach of the browser. Stores are read on every request
dispatch and replaced wholesale by a successful refresh.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping

from fastapi import Response

from app.core.config import CookieSettings, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionTokens:
    """Access/refresh token pair.

    ``refresh_token`` is optional on refresh responses; when absent the
    previously stored refresh token stays in place.
    """

    access_token: str
    refresh_token: str | None = None


class TokenStore(ABC):
    """Interface for server-held credentials."""

    @abstractmethod
    async def get_access_token(self) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def get_refresh_token(self) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def save(self, tokens: SessionTokens) -> None:
        """Replace the stored pair in one step."""
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> None:
        """Forget all credentials so later reads observe no credential."""
        raise NotImplementedError


class InMemoryTokenStore(TokenStore):
    """Process-local token holder (scripts, workers, tests)."""

    def __init__(self, tokens: SessionTokens | None = None) -> None:
        self._access_token = tokens.access_token if tokens else None
        self._refresh_token = tokens.refresh_token if tokens else None

    async def get_access_token(self) -> str | None:
        return self._access_token

    async def get_refresh_token(self) -> str | None:
        return self._refresh_token

    async def save(self, tokens: SessionTokens) -> None:
        self._access_token, self._refresh_token = (
            tokens.access_token,
            tokens.refresh_token or self._refresh_token,
        )

    async def clear(self) -> None:
        self._access_token = None
        self._refresh_token = None


class CookieTokenStore(TokenStore):
    """Tokens carried in httpOnly cookies of the current HTTP request.

    Writes are kept in an overlay so that reads later in the same request see
    the refreshed values; :meth:`apply` turns the overlay into ``Set-Cookie``
    headers on the outgoing response.

    Cookies:
        - access token: httpOnly, lives as long as the session; the JWT's own
          expiry is enforced downstream and surfaces as a 401 expiry signal
        - refresh token: httpOnly
        - user: readable by page scripts, JSON encoded, for display only
    """

    def __init__(
        self,
        request_cookies: Mapping[str, str],
        cookie_settings: CookieSettings | None = None,
    ) -> None:
        self._cookies = request_cookies
        self._cfg = cookie_settings or settings.cookies
        # cookie name -> new value, or None for deletion
        self._pending: dict[str, str | None] = {}

    def _read(self, name: str) -> str | None:
        if name in self._pending:
            return self._pending[name]
        return self._cookies.get(name) or None

    async def get_access_token(self) -> str | None:
        return self._read(self._cfg.access_token_name)

    async def get_refresh_token(self) -> str | None:
        return self._read(self._cfg.refresh_token_name)

    async def save(self, tokens: SessionTokens) -> None:
        updates = {self._cfg.access_token_name: tokens.access_token}
        if tokens.refresh_token:
            updates[self._cfg.refresh_token_name] = tokens.refresh_token
        self._pending.update(updates)

    async def clear(self) -> None:
        for name in (
            self._cfg.access_token_name,
            self._cfg.refresh_token_name,
            self._cfg.user_name,
        ):
            self._pending[name] = None

    def set_user(self, user: Mapping[str, Any]) -> None:
        self._pending[self._cfg.user_name] = json.dumps(dict(user), separators=(",", ":"))

    def get_user(self) -> dict[str, Any] | None:
        raw = self._read(self._cfg.user_name)
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except ValueError:
            logger.warning("auth.user_cookie_invalid")
            return None
        return user if isinstance(user, dict) else None

    def is_authenticated(self) -> bool:
        return bool(self._read(self._cfg.access_token_name))

    def apply(self, response: Response) -> None:
        """Write pending cookie changes onto ``response``."""

        for name, value in self._pending.items():
            if value is None:
                response.delete_cookie(name, path="/")
                continue
            response.set_cookie(
                name,
                value,
                max_age=self._cfg.max_age_seconds,
                path="/",
                secure=self._cfg.secure,
                httponly=name != self._cfg.user_name,
                samesite="lax",
            )
