"""Development-only maintenance endpoints for the sign-in rate limiter.

Outside ``APP_ENV=development`` every route here answers 404.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.adapters.rate_limit.login_limiter import LoginRateLimiter
from app.core.config import settings
from app.core.rate_limit import get_login_rate_limiter
from app.schemas.auth import ActionResult

logger = logging.getLogger(__name__)


def require_development() -> None:
    if not settings.is_development:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")


router = APIRouter(
    prefix="/api/dev/rate-limits",
    tags=["Development"],
    dependencies=[Depends(require_development)],
)

RateLimiter = Annotated[LoginRateLimiter, Depends(get_login_rate_limiter)]


@router.delete("/{identity:path}", response_model=ActionResult, response_model_exclude_none=True)
async def clear_rate_limit(identity: str, limiter: RateLimiter) -> ActionResult:
    """Unblock one client identity, e.g. ``signin:203.0.113.7``."""
    await limiter.clear_rate_limit(identity)
    logger.info("rate_limit.cleared", extra={"scope": "single"})
    return ActionResult(success=True, message=f"Cleared: {identity}")


@router.delete("", response_model=ActionResult, response_model_exclude_none=True)
async def clear_all_rate_limits(limiter: RateLimiter) -> ActionResult:
    """Remove every stored rate limit entry."""
    count = await limiter.clear_all_rate_limits()
    return ActionResult(success=True, message=f"Cleared {count} rate limits")
