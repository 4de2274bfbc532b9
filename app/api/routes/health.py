from __future__ import annotations

from fastapi import APIRouter

from app.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe for load balancers.

    Does not touch Redis or the downstream API; a degraded dependency shows
    up as failing sign-ins, not as a restarted BFF.
    """

    return {"status": "ok", "environment": settings.app_env}
