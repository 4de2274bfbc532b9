"""In-memory key-value store with per-key expiry.

Notes:
- Per-process only: running multiple workers gives each its own state, so
  the login limit is multiplied by the worker count. Use Redis in deployments.
- Thread-safe: uses a lock around shared state.
- Expired keys are dropped lazily on access.
"""

from __future__ import annotations

import copy
import fnmatch
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from app.adapters.kv.base import AbstractKeyValueStore


@dataclass
class _Item:
    value: Any
    expires_at: float


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """Dictionary-backed store honouring TTLs against an injectable clock."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._items: dict[str, _Item] = {}

    def _live_item(self, key: str, now: float) -> _Item | None:
        item = self._items.get(key)
        if item is None:
            return None
        if now >= item.expires_at:
            del self._items[key]
            return None
        return item

    async def get(self, key: str) -> Any | None:
        with self._lock:
            item = self._live_item(key, self._clock())
            # Copy so callers can't mutate stored state without a set()
            return copy.deepcopy(item.value) if item else None

    async def set(self, key: str, value: Any, *, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        with self._lock:
            self._items[key] = _Item(
                value=copy.deepcopy(value),
                expires_at=self._clock() + ttl_seconds,
            )

    async def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            now = self._clock()
            for key in keys:
                if self._live_item(key, now) is not None:
                    del self._items[key]
                    removed += 1
        return removed

    async def scan(self, pattern: str) -> list[str]:
        with self._lock:
            now = self._clock()
            return [
                key
                for key in list(self._items)
                if self._live_item(key, now) is not None and fnmatch.fnmatchcase(key, pattern)
            ]

    async def ttl(self, key: str) -> float | None:
        """Remaining lifetime of ``key`` in seconds (None when absent)."""
        with self._lock:
            now = self._clock()
            item = self._live_item(key, now)
            return item.expires_at - now if item else None
