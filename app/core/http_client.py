"""Shared httpx client for outbound calls to the downstream API.

Initialized in the application lifespan and reused across requests for
connection pooling. The client is shared between users, so its cookie jar
rejects every cookie; session state lives only in the BFF's own cookies.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import AsyncGenerator

import httpx

from app.core.config import HttpSettings, settings

_shared_http_client: httpx.AsyncClient | None = None


class _RejectAllCookies(DefaultCookiePolicy):
    def set_ok(self, cookie, request) -> bool:  # noqa: D401
        return False


def build_timeout(http_settings: HttpSettings) -> httpx.Timeout:
    return httpx.Timeout(
        connect=http_settings.connect_timeout,
        read=http_settings.read_timeout,
        write=http_settings.write_timeout,
        pool=http_settings.pool_timeout,
    )


def create_http_client(http_settings: HttpSettings | None = None, **kwargs) -> httpx.AsyncClient:
    """Create a cookie-less AsyncClient with configured timeouts and limits.

    Extra keyword arguments are passed to ``httpx.AsyncClient`` (tests use
    ``transport=``). The caller owns the client and must close it.
    """

    cfg = http_settings or settings.http
    kwargs.setdefault("timeout", build_timeout(cfg))
    kwargs.setdefault(
        "limits",
        httpx.Limits(
            max_connections=cfg.max_connections,
            max_keepalive_connections=cfg.max_keepalive_connections,
        ),
    )
    return httpx.AsyncClient(cookies=CookieJar(policy=_RejectAllCookies()), **kwargs)


def get_http_client() -> httpx.AsyncClient:
    """FastAPI dependency returning the shared client.

    Raises:
        RuntimeError: If called outside the application lifespan.
    """
    if _shared_http_client is None:
        raise RuntimeError("HTTP client not initialized. Ensure lifespan context is active.")
    return _shared_http_client


@asynccontextmanager
async def init_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create the shared client for the duration of the lifespan."""
    global _shared_http_client

    _shared_http_client = create_http_client()
    try:
        yield _shared_http_client
    finally:
        await _shared_http_client.aclose()
        _shared_http_client = None
