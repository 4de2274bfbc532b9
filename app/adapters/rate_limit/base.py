"""Rate limit policy as pure functions.

All timestamps are UNIX epoch milliseconds. Nothing here touches a store,
so window and escalation rules are testable with plain values.

Window lifecycle for one identity:
- no entry, or ``now > reset_time``: the caller has a fresh allowance
- each failure increments ``count`` within the window
- the failure that brings ``count`` to ``max_attempts`` moves ``reset_time``
  to ``now + block``, measured from that failure
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class RateLimitPolicy:
    """Numeric limits; each is independently configurable.

    Attributes:
        max_attempts: Failed attempts allowed before blocking.
        window_seconds: Length of the attempt window.
        block_seconds: Block duration once the maximum is reached.
    """

    max_attempts: int = 5
    window_seconds: int = 15 * 60
    block_seconds: int = 30 * 60

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if self.block_seconds < 1:
            raise ValueError("block_seconds must be >= 1")

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000

    @property
    def block_ms(self) -> int:
        return self.block_seconds * 1000


@dataclass(frozen=True)
class RateLimitEntry:
    """Stored attempt counter for one client identity."""

    count: int
    reset_time: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RateLimitEntry":
        return cls(count=int(data["count"]), reset_time=int(data["reset_time"]))


@dataclass(frozen=True)
class RateLimitResult:
    """Decision for a sign-in attempt.

    Attributes:
        allowed: Whether the attempt may proceed.
        remaining: Failed attempts left in the window (0 when blocked).
        reset_time: Epoch milliseconds when the window or block ends.
    """

    allowed: bool
    remaining: int
    reset_time: int

    def minutes_until_reset(self, now_ms: int) -> int:
        return max(0, math.ceil((self.reset_time - now_ms) / 60_000))


def is_expired(now_ms: int, entry: RateLimitEntry | None) -> bool:
    return entry is None or now_ms > entry.reset_time


def evaluate(now_ms: int, entry: RateLimitEntry | None, policy: RateLimitPolicy) -> RateLimitResult:
    """Decide whether an identity may attempt sign-in.

    A missing or elapsed entry yields a full allowance with a prospective
    reset time; no entry is created for it.
    """

    if entry is None or is_expired(now_ms, entry):
        return RateLimitResult(
            allowed=True,
            remaining=policy.max_attempts,
            reset_time=now_ms + policy.window_ms,
        )

    remaining = max(0, policy.max_attempts - entry.count)
    return RateLimitResult(allowed=remaining > 0, remaining=remaining, reset_time=entry.reset_time)


def register_failure(now_ms: int, entry: RateLimitEntry | None, policy: RateLimitPolicy) -> RateLimitEntry:
    """Return the entry that results from one more failed attempt."""

    if entry is None or is_expired(now_ms, entry):
        entry = RateLimitEntry(count=0, reset_time=now_ms + policy.window_ms)

    count = entry.count + 1
    if count >= policy.max_attempts:
        return RateLimitEntry(count=count, reset_time=now_ms + policy.block_ms)
    return RateLimitEntry(count=count, reset_time=entry.reset_time)


def ttl_seconds(now_ms: int, entry: RateLimitEntry) -> int:
    """Store TTL matching the entry's remaining lifetime (at least one second)."""

    return max(1, math.ceil((entry.reset_time - now_ms) / 1000))
