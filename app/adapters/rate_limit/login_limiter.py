"""Store-backed sign-in rate limiter.

Reads and writes :class:`RateLimitEntry` values in a shared key-value store,
delegating every decision to the pure policy in ``base``.

Concurrency:
    ``record_failed_attempt`` is a read-modify-write. Two processes reading
    the same count may both write count + 1, undercounting by one. The window
    is minutes long, so this is accepted rather than guarded with a lock.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from app.adapters.kv.base import AbstractKeyValueStore
from app.adapters.rate_limit.base import (
    RateLimitEntry,
    RateLimitPolicy,
    RateLimitResult,
    evaluate,
    register_failure,
    ttl_seconds,
)
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)

KEY_PREFIX = "rate_limit:"


def rate_limit_key(identity: str) -> str:
    return f"{KEY_PREFIX}{identity}"


class LoginRateLimiter:
    """Track failed sign-in attempts per client identity.

    Entries are created lazily on the first recorded failure and carry a TTL
    equal to their remaining window or block, so the store expires them.
    """

    def __init__(
        self,
        store: AbstractKeyValueStore,
        policy: RateLimitPolicy | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Shared key-value store holding entries.
            policy: Attempt/window/block limits (defaults 5 / 15 min / 30 min).
            clock: Time source returning UNIX time in seconds.
        """
        self._store = store
        self.policy = policy or RateLimitPolicy()
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def _load(self, identity: str) -> RateLimitEntry | None:
        if not identity:
            raise ValueError("identity must be a non-empty string")
        data = await self._store.get(rate_limit_key(identity))
        if data is None:
            return None
        try:
            return RateLimitEntry.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.warning(
                "rate_limit.invalid_entry",
                extra={"identity_hash": hash_identifier(identity)},
            )
            return None

    async def check_rate_limit(self, identity: str) -> RateLimitResult:
        """Return the current decision without recording an attempt."""

        result = evaluate(self._now_ms(), await self._load(identity), self.policy)
        if not result.allowed:
            logger.warning(
                "rate_limit.blocked",
                extra={
                    "identity_hash": hash_identifier(identity),
                    "reset_time": result.reset_time,
                },
            )
        return result

    async def record_failed_attempt(self, identity: str) -> RateLimitEntry:
        """Count one failed attempt, starting a window or a block as needed."""

        now_ms = self._now_ms()
        entry = register_failure(now_ms, await self._load(identity), self.policy)
        await self._store.set(
            rate_limit_key(identity),
            entry.to_dict(),
            ttl_seconds=ttl_seconds(now_ms, entry),
        )

        if entry.count == self.policy.max_attempts:
            logger.warning(
                "rate_limit.block_started",
                extra={
                    "identity_hash": hash_identifier(identity),
                    "attempts": entry.count,
                    "block_s": self.policy.block_seconds,
                },
            )
        else:
            logger.info(
                "rate_limit.failure_recorded",
                extra={
                    "identity_hash": hash_identifier(identity),
                    "attempts": entry.count,
                    "max_attempts": self.policy.max_attempts,
                },
            )
        return entry

    async def clear_rate_limit(self, identity: str) -> None:
        """Forget attempts for ``identity`` (successful sign-in or manual unblock)."""

        await self._store.delete(rate_limit_key(identity))

    async def clear_all_rate_limits(self) -> int:
        """Delete every limiter entry. Administrative/testing use only.

        Returns:
            Number of entries removed.
        """

        keys = await self._store.scan(f"{KEY_PREFIX}*")
        if not keys:
            return 0
        removed = await self._store.delete(*keys)
        logger.info("rate_limit.cleared_all", extra={"removed": removed})
        return removed
