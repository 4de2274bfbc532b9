"""Authenticated client for the downstream booth API.

Request protocol:
1. Headers are defaults, then caller headers, then the credential header
   (always last, so callers cannot override it).
2. Transport failures raise ``ApiError(status=0)`` and are not retried.
3. A 401 carrying an expiry signal triggers one single-flight refresh.
   On success the original request is re-sent once with the new credential,
   and that response is final. On failure a session-expired ``ApiError``
   is raised. A request whose 401 arrives after another request already
   refreshed (the stored credential changed since dispatch) retries with the
   stored credential and starts no refresh.
4. A 401 without an expiry signal, and any other non-2xx, raise ``ApiError``
   with the message parsed from the body.
5. 204 returns ``NO_CONTENT``; other 2xx return the decoded JSON body.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from app.adapters.api_client.credentials import CredentialResolver
from app.adapters.api_client.refresh import RefreshCoordinator
from app.adapters.api_client.responses import (
    NO_CONTENT,
    NoContent,
    is_expired_by_header,
    parse_error_message,
)
from app.core.errors import ApiError, ConfigurationAppError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json"}


class ApiClient:
    """HTTP client that attaches credentials and recovers from token expiry.

    One instance serves one execution context: the credential resolver is
    fixed at construction. Requests made concurrently through the same
    instance share its refresh coordinator.
    """

    def __init__(
        self,
        base_url: str,
        resolver: CredentialResolver,
        http: httpx.AsyncClient,
        *,
        proxy_path: str | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Origin requests are sent to (downstream API, or the BFF
                when ``proxy_path`` is set).
            resolver: Credential strategy for this execution context.
            http: Transport; its own timeouts apply.
            proxy_path: When set, each request is sent to
                ``<base_url><proxy_path>?path=<encoded path>`` instead of
                ``<base_url><path>``.

        Raises:
            ConfigurationAppError: If base_url is empty.
        """
        if not base_url or not base_url.strip():
            raise ConfigurationAppError(
                code="api_base_url_missing",
                message="API base URL is not configured. Set API_BASE_URL or API_PUBLIC_BASE_URL.",
            )

        self.base_url = base_url.strip().rstrip("/")
        self._resolver = resolver
        self._http = http
        self._proxy_path = proxy_path
        self._coordinator = RefreshCoordinator(resolver.refresh)

    def _build_url(self, path: str, params: Mapping[str, Any] | None) -> tuple[str, Mapping[str, Any] | None]:
        if self._proxy_path is None:
            return f"{self.base_url}{path}", params

        # The proxy receives the downstream path (with its query) as one parameter
        if params:
            path = f"{path}?{httpx.QueryParams(params)}"
        return f"{self.base_url}{self._proxy_path}?path={quote(path, safe='')}", None

    async def _build_headers(
        self, headers: Mapping[str, str] | None
    ) -> tuple[dict[str, str], str | None]:
        merged = {**DEFAULT_HEADERS, **(headers or {})}
        credential = await self._resolver.current_credential()
        if credential:
            for name in [k for k in merged if k.lower() == "authorization"]:
                del merged[name]
            merged["Authorization"] = f"Bearer {credential}"
        return merged, credential

    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None,
        params: Mapping[str, Any] | None,
        json: Any,
        content: str | bytes | None,
    ) -> tuple[httpx.Response, str | None]:
        """Dispatch once; return the response and the credential it carried."""
        url, query = self._build_url(path, params)
        # Re-read the credential on every dispatch so retries use refreshed tokens
        request_headers, credential = await self._build_headers(headers)

        try:
            response = await self._http.request(
                method,
                url,
                headers=request_headers,
                params=query,
                json=json,
                content=content,
            )
        except httpx.TransportError as exc:
            logger.error(
                "api_client.network_error",
                extra={
                    "method": method,
                    "path": path,
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
            )
            raise ApiError.network(exc) from exc
        return response, credential

    async def _credential_replaced(self, sent_credential: str | None) -> bool:
        current = await self._resolver.current_credential()
        return current is not None and current != sent_credential

    async def request(
        self,
        path: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        content: str | bytes | None = None,
    ) -> Any | NoContent:
        """Send a request and return its decoded body.

        Args:
            path: Downstream path beginning with '/', e.g. '/api/v1/booths'.
            method: HTTP method.
            headers: Extra headers; they override defaults but never the
                credential header.
            params: Query parameters.
            json: JSON-serializable body.
            content: Raw body sent as-is (mutually exclusive with ``json``).

        Returns:
            Decoded JSON for 2xx responses (None for an empty body), or
            ``NO_CONTENT`` for 204.

        Raises:
            ApiError: On transport failure (status 0), session expiry that
                could not be refreshed (``is_session_expired``), or any
                other non-2xx response.
        """
        method = method.upper()

        async def send() -> tuple[httpx.Response, str | None]:
            return await self._send(
                method, path, headers=headers, params=params, json=json, content=content
            )

        response, sent_credential = await send()

        if response.status_code == 401 and is_expired_by_header(response.headers):
            if await self._credential_replaced(sent_credential):
                # The episode this 401 belongs to was already refreshed
                refreshed = True
            else:
                refreshed = await self._coordinator.ensure_refreshed()

            if refreshed:
                logger.info("api_client.retry_after_refresh", extra={"method": method, "path": path})
                response, _ = await send()
            else:
                logger.warning(
                    "api_client.session_expired",
                    extra={"method": method, "path": path},
                )
                raise ApiError.session_expired(parse_error_message(response))

        if not response.is_success:
            message = parse_error_message(response)
            logger.info(
                "api_client.request_failed",
                extra={
                    "method": method,
                    "path": path,
                    "status": response.status_code,
                    "error_message": message,
                },
            )
            raise ApiError.from_response(response.status_code, message)

        if response.status_code == 204:
            return NO_CONTENT

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                code="invalid_response",
                message="Downstream API returned a non-JSON response",
                details={"http_status": response.status_code},
                status=response.status_code,
            ) from exc

    async def get(self, path: str, **kwargs: Any) -> Any | NoContent:
        return await self.request(path, method="GET", **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any | NoContent:
        return await self.request(path, method="POST", **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any | NoContent:
        return await self.request(path, method="PUT", **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Any | NoContent:
        return await self.request(path, method="PATCH", **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any | NoContent:
        return await self.request(path, method="DELETE", **kwargs)
