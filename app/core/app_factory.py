"""Application factory for the BFF.

Centralizes app construction (lifespan resources, middleware, handlers,
routers) so tests can build isolated instances.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api.routes import auth_router, dev_router, health_router, proxy_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.http_client import init_http_client
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.rate_limit import close_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    async with init_http_client():
        try:
            yield
        finally:
            await close_store()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Booth Portal BFF",
        description=(
            "Backend for the photo-booth dashboard: cookie-based sessions, "
            "rate-limited sign-in, token refresh and an authenticated proxy "
            "to the booth API."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(proxy_router)
    app.include_router(dev_router)
    app.include_router(health_router)

    return app
