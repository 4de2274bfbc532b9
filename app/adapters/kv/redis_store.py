"""Redis-backed key-value store (redis.asyncio).

Values are stored as JSON strings with ``SET key value EX ttl`` so each write
is atomic per key and Redis expires entries on its own.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from redis.asyncio import Redis

from app.adapters.kv.base import AbstractKeyValueStore

logger = logging.getLogger(__name__)


class RedisKeyValueStore(AbstractKeyValueStore):
    """Store adapter over a ``redis.asyncio.Redis`` client.

    Redis errors propagate to the caller; the limiter does not fail open.
    """

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Any | None:
        raw = await self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("kv.corrupt_value", extra={"key": key})
            return None

    async def set(self, key: str, value: Any, *, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        await self._client.set(key, json.dumps(value), ex=ttl_seconds)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def scan(self, pattern: str) -> list[str]:
        # SCAN instead of KEYS so large keyspaces don't block the server
        return [key async for key in self._client.scan_iter(match=pattern)]

    async def close(self) -> None:
        await self._client.aclose()
