"""Forward delegated client requests to the downstream API.

Delegated clients never see the access token. They send requests here with
the downstream path in the ``path`` query parameter, and this route attaches
the token from the session cookie. Expiry headers are passed back untouched
so the client can run its refresh protocol against ``/api/auth/refresh``.
"""

from __future__ import annotations

import logging
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import ConfigurationAppError
from app.core.http_client import get_http_client
from app.adapters.api_client.factory import resolve_api_base_url

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Proxy"])

# Downstream response headers relayed to the caller besides Content-Type
RELAYED_HEADERS = ("www-authenticate", "x-token-expired", "retry-after")


@router.api_route("/api/proxy", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def proxy(
    request: Request,
    http: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    path: Annotated[str | None, Query()] = None,
) -> Response:
    """Relay one request downstream with the session's bearer token.

    Returns:
        Response: Downstream status, body and content type; 400 without
            ``path`` or when it would leave the API origin, 500 when the
            API address is unconfigured, 504 on timeout, 502 on other
            transport failures.
    """
    if not path:
        return JSONResponse(status_code=400, content={"error": "Missing path"})

    # Only origin-relative paths; "//host", ".host" or "@host" would retarget the token
    if not path.startswith("/") or path.startswith("//") or "\\" in path:
        logger.warning("proxy.path_rejected", extra={"reason": "not_origin_relative"})
        return JSONResponse(status_code=400, content={"error": "Invalid path"})

    try:
        base_url = resolve_api_base_url()
    except ConfigurationAppError as exc:
        logger.error("proxy.misconfigured", extra={"error_code": exc.code})
        return JSONResponse(status_code=500, content={"error": exc.message})

    base = httpx.URL(base_url)
    try:
        target = httpx.URL(f"{base_url}{path}")
    except httpx.InvalidURL:
        target = None
    origin = (base.scheme, base.host, base.port)
    if target is None or (target.scheme, target.host, target.port) != origin:
        logger.warning("proxy.path_rejected", extra={"reason": "host_mismatch"})
        return JSONResponse(status_code=400, content={"error": "Invalid path"})

    token = request.cookies.get(settings.cookies.access_token_name)
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    body = None if request.method == "GET" else (await request.body()) or None

    try:
        upstream = await http.request(
            request.method,
            target,
            headers=headers,
            content=body,
            timeout=settings.http.proxy_timeout,
        )
    except httpx.TimeoutException as exc:
        logger.error(
            "proxy.timeout",
            extra={"path": path, "method": request.method, "error_type": type(exc).__name__},
        )
        return JSONResponse(status_code=504, content={"error": "Request timeout"})
    except httpx.TransportError as exc:
        logger.error(
            "proxy.request_failed",
            extra={
                "path": path,
                "method": request.method,
                "error_type": type(exc).__name__,
                "error_message": str(exc),
            },
        )
        return JSONResponse(status_code=502, content={"error": "Failed to forward request to backend"})

    relayed = {name: upstream.headers[name] for name in RELAYED_HEADERS if name in upstream.headers}

    # 204 must not carry a body
    if upstream.status_code == 204:
        return Response(status_code=204, headers=relayed)

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=relayed,
        media_type=upstream.headers.get("content-type", "application/json"),
    )
