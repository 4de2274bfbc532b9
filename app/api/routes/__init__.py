from __future__ import annotations

from app.api.routes.auth import router as auth_router
from app.api.routes.dev import router as dev_router
from app.api.routes.health import router as health_router
from app.api.routes.proxy import router as proxy_router

__all__ = ["auth_router", "dev_router", "health_router", "proxy_router"]
