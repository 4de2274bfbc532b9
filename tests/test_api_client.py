"""Tests for the authenticated request client and its refresh protocol."""

import asyncio

import httpx
import pytest
import respx

from app.adapters.api_client.client import ApiClient
from app.adapters.api_client.credentials import TrustedCredentialResolver
from app.adapters.api_client.factory import create_delegated_client
from app.adapters.api_client.responses import NO_CONTENT
from app.adapters.api_client.token_store import InMemoryTokenStore, SessionTokens
from app.core.errors import SESSION_EXPIRED_MESSAGE, ApiError, ConfigurationAppError

BASE = "http://api.test"
EXPIRED_HEADERS = {
    "WWW-Authenticate": 'Bearer realm="api", error="invalid_token", error_description="The access token expired"'
}


class FakeRefresher:
    """Stands in for the downstream refresh-token exchange."""

    def __init__(self, *, fail: bool = False, new_access: str = "new-access") -> None:
        self.calls: list[str] = []
        self.fail = fail
        self.new_access = new_access
        self.gate: asyncio.Event | None = None

    async def __call__(self, refresh_token: str) -> SessionTokens:
        self.calls.append(refresh_token)
        if self.gate is not None:
            await asyncio.wait_for(self.gate.wait(), timeout=2)
        if self.fail:
            raise ApiError.from_response(401, "Refresh token revoked")
        return SessionTokens(access_token=self.new_access, refresh_token="new-refresh")


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore(SessionTokens(access_token="old-access", refresh_token="old-refresh"))


@pytest.fixture
def refresher() -> FakeRefresher:
    return FakeRefresher()


@pytest.fixture
def http() -> httpx.AsyncClient:
    return httpx.AsyncClient()


@pytest.fixture
def client(token_store: InMemoryTokenStore, refresher: FakeRefresher, http: httpx.AsyncClient) -> ApiClient:
    return ApiClient(BASE, TrustedCredentialResolver(token_store, refresher), http)


def _bearer(request: httpx.Request) -> str | None:
    return request.headers.get("Authorization")


class TestBasicRequests:
    @pytest.mark.asyncio
    @respx.mock
    async def test_returns_parsed_json_with_bearer(self, client: ApiClient) -> None:
        route = respx.get(f"{BASE}/api/v1/booths").mock(return_value=httpx.Response(200, json=[{"id": "b1"}]))

        result = await client.get("/api/v1/booths")

        assert result == [{"id": "b1"}]
        request = route.calls.last.request
        assert _bearer(request) == "Bearer old-access"
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    @respx.mock
    async def test_204_returns_no_content_sentinel(self, client: ApiClient) -> None:
        respx.delete(f"{BASE}/api/v1/booths/b1").mock(return_value=httpx.Response(204))

        result = await client.delete("/api/v1/booths/b1")

        assert result is NO_CONTENT
        assert result != {}

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_object_is_not_no_content(self, client: ApiClient) -> None:
        respx.get(f"{BASE}/api/v1/settings").mock(return_value=httpx.Response(200, json={}))

        assert await client.get("/api/v1/settings") == {}

    @pytest.mark.asyncio
    @respx.mock
    async def test_body_is_passed_through(self, client: ApiClient) -> None:
        route = respx.post(f"{BASE}/api/v1/booths").mock(return_value=httpx.Response(201, json={"id": "b2"}))

        await client.post("/api/v1/booths", content=b'{"name":"Lobby"}')

        assert route.calls.last.request.content == b'{"name":"Lobby"}'

    @pytest.mark.asyncio
    @respx.mock
    async def test_caller_headers_override_defaults_but_not_credential(self, client: ApiClient) -> None:
        route = respx.get(f"{BASE}/api/v1/export").mock(return_value=httpx.Response(200, json={}))

        await client.get(
            "/api/v1/export",
            headers={"Content-Type": "text/csv", "authorization": "Bearer forged", "X-Trace": "1"},
        )

        request = route.calls.last.request
        assert request.headers["Content-Type"] == "text/csv"
        assert request.headers["X-Trace"] == "1"
        assert request.headers.get_list("Authorization") == ["Bearer old-access"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_credential_header_without_token(self, refresher: FakeRefresher, http: httpx.AsyncClient) -> None:
        client = ApiClient(BASE, TrustedCredentialResolver(InMemoryTokenStore(), refresher), http)
        route = respx.get(f"{BASE}/api/v1/public").mock(return_value=httpx.Response(200, json={}))

        await client.get("/api/v1/public")

        assert "Authorization" not in route.calls.last.request.headers

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_status_raises_with_parsed_message(self, client: ApiClient, refresher: FakeRefresher) -> None:
        respx.post(f"{BASE}/api/v1/booths").mock(
            return_value=httpx.Response(422, json={"detail": [{"msg": "Value error, name too short"}]})
        )

        with pytest.raises(ApiError) as exc_info:
            await client.post("/api/v1/booths", json={"name": "x"})

        assert exc_info.value.status == 422
        assert exc_info.value.message == "name too short"
        assert exc_info.value.is_session_expired is False
        assert refresher.calls == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error_is_status_zero_and_not_retried(self, client: ApiClient) -> None:
        route = respx.get(f"{BASE}/api/v1/booths").mock(side_effect=httpx.ConnectError("Connection refused"))

        with pytest.raises(ApiError) as exc_info:
            await client.get("/api/v1/booths")

        assert exc_info.value.status == 0
        assert exc_info.value.is_network_error is True
        assert exc_info.value.message.startswith("Network error:")
        assert isinstance(exc_info.value.original_error, httpx.ConnectError)
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_is_network_error(self, client: ApiClient) -> None:
        route = respx.get(f"{BASE}/api/v1/slow").mock(side_effect=httpx.ReadTimeout("timed out"))

        with pytest.raises(ApiError) as exc_info:
            await client.get("/api/v1/slow")

        assert exc_info.value.status == 0
        assert route.call_count == 1

    def test_missing_base_url_is_configuration_error(
        self, token_store: InMemoryTokenStore, refresher: FakeRefresher
    ) -> None:
        with pytest.raises(ConfigurationAppError):
            ApiClient("", TrustedCredentialResolver(token_store, refresher), httpx.AsyncClient())

    def test_trailing_slashes_are_removed(self, token_store: InMemoryTokenStore, refresher: FakeRefresher) -> None:
        client = ApiClient(f"{BASE}//", TrustedCredentialResolver(token_store, refresher), httpx.AsyncClient())
        assert client.base_url == BASE


class TestRefreshProtocol:
    @pytest.mark.asyncio
    @respx.mock
    async def test_expired_token_refreshes_and_retries_once(
        self, client: ApiClient, refresher: FakeRefresher, token_store: InMemoryTokenStore
    ) -> None:
        route = respx.get(f"{BASE}/api/v1/booths").mock(
            side_effect=[
                httpx.Response(401, headers=EXPIRED_HEADERS, json={"detail": "Token has expired"}),
                httpx.Response(200, json={"data": "success"}),
            ]
        )

        result = await client.get("/api/v1/booths")

        assert result == {"data": "success"}
        assert refresher.calls == ["old-refresh"]
        assert [_bearer(call.request) for call in route.calls] == ["Bearer old-access", "Bearer new-access"]
        assert await token_store.get_refresh_token() == "new-refresh"

    @pytest.mark.asyncio
    @respx.mock
    async def test_custom_expiry_header_triggers_refresh(self, client: ApiClient, refresher: FakeRefresher) -> None:
        respx.get(f"{BASE}/api/v1/me").mock(
            side_effect=[
                httpx.Response(401, headers={"X-Token-Expired": "true"}),
                httpx.Response(200, json={"id": "u1"}),
            ]
        )

        assert await client.get("/api/v1/me") == {"id": "u1"}
        assert len(refresher.calls) == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_401_without_expiry_signal_never_refreshes(self, client: ApiClient, refresher: FakeRefresher) -> None:
        route = respx.post(f"{BASE}/api/v1/auth/signin").mock(
            return_value=httpx.Response(
                401,
                headers={"WWW-Authenticate": 'Bearer realm="api", error="invalid_token"'},
                json={"detail": "Invalid credentials"},
            )
        )

        with pytest.raises(ApiError) as exc_info:
            await client.post("/api/v1/auth/signin", json={})

        assert exc_info.value.status == 401
        assert exc_info.value.message == "Invalid credentials"
        assert exc_info.value.is_session_expired is False
        assert refresher.calls == []
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_retry_returning_401_is_final(self, client: ApiClient, refresher: FakeRefresher) -> None:
        route = respx.get(f"{BASE}/api/v1/booths").mock(
            side_effect=[
                httpx.Response(401, headers=EXPIRED_HEADERS),
                httpx.Response(401, headers=EXPIRED_HEADERS, json={"detail": "Still expired"}),
            ]
        )

        with pytest.raises(ApiError) as exc_info:
            await client.get("/api/v1/booths")

        assert exc_info.value.status == 401
        assert exc_info.value.is_session_expired is False
        assert exc_info.value.message == "Still expired"
        assert len(refresher.calls) == 1
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed_refresh_raises_session_expired_and_clears_tokens(
        self, token_store: InMemoryTokenStore, http: httpx.AsyncClient
    ) -> None:
        refresher = FakeRefresher(fail=True)
        client = ApiClient(BASE, TrustedCredentialResolver(token_store, refresher), http)
        route = respx.get(f"{BASE}/api/v1/booths").mock(
            return_value=httpx.Response(401, headers=EXPIRED_HEADERS, json={"detail": "Token has expired"})
        )

        with pytest.raises(ApiError) as exc_info:
            await client.get("/api/v1/booths")

        error = exc_info.value
        assert error.status == 401
        assert error.is_session_expired is True
        assert error.message == SESSION_EXPIRED_MESSAGE
        assert error.details["response_message"] == "Token has expired"
        assert route.call_count == 1
        assert await token_store.get_access_token() is None
        assert await token_store.get_refresh_token() is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_refresh_token_is_session_expired(self, refresher: FakeRefresher, http: httpx.AsyncClient) -> None:
        store = InMemoryTokenStore(SessionTokens(access_token="old-access"))
        client = ApiClient(BASE, TrustedCredentialResolver(store, refresher), http)
        respx.get(f"{BASE}/api/v1/booths").mock(return_value=httpx.Response(401, headers=EXPIRED_HEADERS))

        with pytest.raises(ApiError) as exc_info:
            await client.get("/api/v1/booths")

        assert exc_info.value.is_session_expired is True
        assert refresher.calls == []
        assert await store.get_access_token() is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_concurrent_expiries_share_one_refresh(self, client: ApiClient, refresher: FakeRefresher) -> None:
        concurrency = 5
        expired_responses = 0
        all_expired = asyncio.Event()
        refresher.gate = all_expired

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal expired_responses
            if _bearer(request) == "Bearer new-access":
                return httpx.Response(200, json={"ok": True})
            expired_responses += 1
            if expired_responses == concurrency:
                all_expired.set()
            return httpx.Response(401, headers=EXPIRED_HEADERS)

        route = respx.get(f"{BASE}/api/v1/booths").mock(side_effect=handler)

        results = await asyncio.gather(*(client.get("/api/v1/booths") for _ in range(concurrency)))

        assert results == [{"ok": True}] * concurrency
        assert len(refresher.calls) == 1
        retries = [call.request for call in route.calls][concurrency:]
        assert len(retries) == concurrency
        assert all(_bearer(request) == "Bearer new-access" for request in retries)

    @pytest.mark.asyncio
    @respx.mock
    async def test_later_episode_triggers_new_refresh(
        self, client: ApiClient, refresher: FakeRefresher, token_store: InMemoryTokenStore
    ) -> None:
        respx.get(f"{BASE}/api/v1/booths").mock(
            side_effect=[
                httpx.Response(401, headers=EXPIRED_HEADERS),
                httpx.Response(200, json={"n": 1}),
                httpx.Response(401, headers=EXPIRED_HEADERS),
                httpx.Response(200, json={"n": 2}),
            ]
        )

        assert await client.get("/api/v1/booths") == {"n": 1}
        assert await client.get("/api/v1/booths") == {"n": 2}
        assert refresher.calls == ["old-refresh", "new-refresh"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_late_expiry_reuses_finished_refresh(
        self, client: ApiClient, refresher: FakeRefresher, token_store: InMemoryTokenStore
    ) -> None:
        slow_sent = asyncio.Event()
        release_slow = asyncio.Event()

        async def slow_handler(request: httpx.Request) -> httpx.Response:
            if _bearer(request) == "Bearer new-access":
                return httpx.Response(200, json={"route": "slow"})
            slow_sent.set()
            await asyncio.wait_for(release_slow.wait(), timeout=2)
            return httpx.Response(401, headers=EXPIRED_HEADERS)

        def fast_handler(request: httpx.Request) -> httpx.Response:
            if _bearer(request) == "Bearer new-access":
                return httpx.Response(200, json={"route": "fast"})
            return httpx.Response(401, headers=EXPIRED_HEADERS)

        respx.get(f"{BASE}/api/v1/slow").mock(side_effect=slow_handler)
        respx.get(f"{BASE}/api/v1/fast").mock(side_effect=fast_handler)

        slow = asyncio.ensure_future(client.get("/api/v1/slow"))
        await asyncio.wait_for(slow_sent.wait(), timeout=2)

        # The fast request expires, refreshes and finishes while the slow one is in flight
        assert await client.get("/api/v1/fast") == {"route": "fast"}
        assert refresher.calls == ["old-refresh"]

        release_slow.set()

        assert await slow == {"route": "slow"}
        assert refresher.calls == ["old-refresh"]
        assert await token_store.get_refresh_token() == "new-refresh"


class TestDelegatedClient:
    BFF = "http://bff.test"

    @pytest.fixture
    def delegated(self, http: httpx.AsyncClient) -> ApiClient:
        return create_delegated_client(self.BFF, http)

    @pytest.mark.asyncio
    @respx.mock
    async def test_requests_go_through_proxy_without_credential(self, delegated: ApiClient) -> None:
        route = respx.get(f"{self.BFF}/api/proxy").mock(return_value=httpx.Response(200, json={"items": []}))

        result = await delegated.get("/api/v1/booths", params={"page": 2})

        assert result == {"items": []}
        request = route.calls.last.request
        assert request.url.params["path"] == "/api/v1/booths?page=2"
        assert "Authorization" not in request.headers

    @pytest.mark.asyncio
    @respx.mock
    async def test_expiry_refreshes_through_bff_endpoint(self, delegated: ApiClient) -> None:
        refresh = respx.post(f"{self.BFF}/api/auth/refresh").mock(
            return_value=httpx.Response(200, json={"success": True})
        )
        proxy = respx.get(f"{self.BFF}/api/proxy").mock(
            side_effect=[
                httpx.Response(401, headers={"X-Token-Expired": "true"}),
                httpx.Response(200, json={"id": "b1"}),
            ]
        )

        assert await delegated.get("/api/v1/booths/b1") == {"id": "b1"}
        assert refresh.call_count == 1
        assert proxy.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_rejected_bff_refresh_is_session_expired(self, delegated: ApiClient) -> None:
        respx.post(f"{self.BFF}/api/auth/refresh").mock(
            return_value=httpx.Response(401, json={"success": False, "error": "Refresh failed"})
        )
        proxy = respx.get(f"{self.BFF}/api/proxy").mock(return_value=httpx.Response(401, headers=EXPIRED_HEADERS))

        with pytest.raises(ApiError) as exc_info:
            await delegated.get("/api/v1/booths")

        assert exc_info.value.is_session_expired is True
        assert proxy.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_unreachable_bff_refresh_is_session_expired(self, delegated: ApiClient) -> None:
        respx.post(f"{self.BFF}/api/auth/refresh").mock(side_effect=httpx.ConnectError("refused"))
        respx.get(f"{self.BFF}/api/proxy").mock(return_value=httpx.Response(401, headers=EXPIRED_HEADERS))

        with pytest.raises(ApiError) as exc_info:
            await delegated.get("/api/v1/booths")

        assert exc_info.value.is_session_expired is True

    def test_requires_bff_base_url(self, http: httpx.AsyncClient) -> None:
        with pytest.raises(ConfigurationAppError):
            create_delegated_client(" ", http)
