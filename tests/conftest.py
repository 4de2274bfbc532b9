"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ``app`` import so settings are
built for the testing environment.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ["API_BASE_URL"] = "http://api.test"
os.environ["REDIS_BACKEND"] = "memory"
os.environ.setdefault("LOG_FORMAT", "plain")

from unittest.mock import Mock

import pytest

from app.adapters.kv.in_memory import InMemoryKeyValueStore
from app.adapters.rate_limit.base import RateLimitPolicy
from app.adapters.rate_limit.login_limiter import LoginRateLimiter

API_BASE_URL = "http://api.test"


@pytest.fixture
def clock() -> Mock:
    """Controllable UNIX clock (seconds) shared by store and limiter."""
    return Mock(return_value=1_700_000_000.0)


@pytest.fixture
def kv_store(clock: Mock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def limiter(kv_store: InMemoryKeyValueStore, clock: Mock) -> LoginRateLimiter:
    """Limiter with the reference policy: 5 attempts / 15 min / 30 min block."""
    return LoginRateLimiter(kv_store, RateLimitPolicy(), clock=clock)
