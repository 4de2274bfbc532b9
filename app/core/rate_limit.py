"""Sign-in rate limiter wiring for the HTTP layer.

This module connects the limiter adapter to configuration and requests:
- builds the key-value store (Redis or in-memory) from settings
- exposes a process-wide :class:`LoginRateLimiter`
- derives client identities from proxy-aware headers
"""

from __future__ import annotations

import logging
from typing import Mapping

from app.adapters.kv.base import AbstractKeyValueStore
from app.adapters.kv.in_memory import InMemoryKeyValueStore
from app.adapters.kv.redis_store import RedisKeyValueStore
from app.adapters.rate_limit.base import RateLimitPolicy
from app.adapters.rate_limit.login_limiter import LoginRateLimiter
from app.core.config import settings
from app.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"

# Checked in order; the first non-empty value wins
CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")


_store: AbstractKeyValueStore | None = None
_limiter: LoginRateLimiter | None = None
_limiter_config: tuple[int, int, int] | None = None


def get_client_identifier(headers: Mapping[str, str], namespace: str | None = None) -> str:
    """Build the limiter identity ``<namespace>:<ip>`` for a request.

    ``X-Forwarded-For`` may list several hops; the first one is the client.
    Requests without any usable header share the ``unknown`` identity.

    Args:
        headers: Request headers (case-insensitive mapping, e.g. Starlette's).
        namespace: Identity prefix; defaults to the configured namespace.

    Returns:
        str: Client identity string.
    """

    ip = ""
    for header in CLIENT_IP_HEADERS:
        value = headers.get(header) or ""
        if header == "x-forwarded-for":
            value = value.split(",")[0]
        ip = value.strip()
        if ip:
            break

    return f"{namespace or settings.rate_limit.namespace}:{ip or UNKNOWN_CLIENT}"


def build_store() -> AbstractKeyValueStore:
    """Create the store configured by ``REDIS_BACKEND`` / ``REDIS_URL``.

    Raises:
        ConfigurationAppError: If the Redis backend is selected without a URL,
            or the backend name is unknown.
    """

    backend = settings.redis.backend.lower()

    if backend == "memory":
        logger.warning(
            "rate_limit.memory_store",
            extra={"hint": "per-process state; use Redis with multiple workers"},
        )
        return InMemoryKeyValueStore()

    if backend == "redis":
        if not settings.redis.url:
            raise ConfigurationAppError(
                code="redis_url_missing",
                message="Redis backend requires REDIS_URL environment variable",
                details={"hint": "Set REDIS_URL or REDIS_BACKEND=memory for local development"},
            )
        return RedisKeyValueStore.from_url(settings.redis.url)

    raise ConfigurationAppError(
        code="kv_unknown_backend",
        message=f"Unknown key-value backend: '{backend}'. Supported backends: redis, memory",
    )


def get_store() -> AbstractKeyValueStore:
    global _store
    if _store is None:
        _store = build_store()
    return _store


def get_login_rate_limiter() -> LoginRateLimiter:
    """Return a process-wide limiter instance.

    The instance is cached in-module; if the policy settings change
    (primarily in tests) the limiter is rebuilt over the same store.
    """

    global _limiter, _limiter_config

    config = (
        settings.rate_limit.max_attempts,
        settings.rate_limit.window_seconds,
        settings.rate_limit.block_seconds,
    )

    if _limiter is None or _limiter_config != config:
        _limiter = LoginRateLimiter(
            get_store(),
            RateLimitPolicy(
                max_attempts=settings.rate_limit.max_attempts,
                window_seconds=settings.rate_limit.window_seconds,
                block_seconds=settings.rate_limit.block_seconds,
            ),
        )
        _limiter_config = config

    return _limiter


async def close_store() -> None:
    """Close the cached store on shutdown and forget cached instances."""

    global _store, _limiter, _limiter_config
    if _store is not None:
        await _store.close()
    _store = None
    _limiter = None
    _limiter_config = None
