"""Sign-in rate limiting.

``base`` holds the pure window/escalation policy over explicit
``(now, entry)`` pairs; ``login_limiter`` is the thin layer that reads and
writes entries in a shared key-value store.
"""

from app.adapters.rate_limit.base import RateLimitEntry, RateLimitPolicy, RateLimitResult
from app.adapters.rate_limit.login_limiter import LoginRateLimiter

__all__ = ["LoginRateLimiter", "RateLimitEntry", "RateLimitPolicy", "RateLimitResult"]
