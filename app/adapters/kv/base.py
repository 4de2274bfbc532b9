"""Key-value store interface.

Values are JSON-compatible Python objects; adapters own the encoding. Every
write carries a TTL so the store reclaims entries without a sweep job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class AbstractKeyValueStore(ABC):
    """Minimal contract over a shared, network-accessible store."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the decoded value for ``key`` or None when absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any, *, ttl_seconds: int) -> None:
        """Store ``value`` under ``key``, expiring after ``ttl_seconds``.

        Raises:
            ValueError: If ttl_seconds is below 1.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        raise NotImplementedError

    @abstractmethod
    async def scan(self, pattern: str) -> list[str]:
        """Return keys matching a glob-style ``pattern`` (e.g. ``rate_limit:*``)."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections held by the adapter."""
        return None
