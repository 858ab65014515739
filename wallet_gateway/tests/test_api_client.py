"""
Unit tests for ApiGatewayClient.
"""

import asyncio

import httpx
import pytest
from prometheus_client import CollectorRegistry

from shared.errors import AuthenticationExpired, InvalidResponse, RequestFailed, TransportFailure, WalletClientError
from shared.metrics import ClientMetrics
from shared.test_helpers import MockBackend, bearer, mock_config, request_json

from wallet_gateway.app.api.client import ApiGatewayClient, Backend, parse_model, parse_models
from wallet_gateway.app.auth.store import InMemoryCredentialStore
from wallet_gateway.app.models import AuthTokens, Wallet


class TestApiGatewayClient:
    """Test cases for ApiGatewayClient."""

    @pytest.fixture
    def backend(self):
        """Scripted auth and wallet backends."""
        return MockBackend()

    @pytest.fixture
    def store(self):
        """Store holding a signed-in session."""
        return InMemoryCredentialStore(AuthTokens(access_token="old-access", refresh_token="refresh-1"))

    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    @pytest.fixture
    def gateway(self, backend, store, registry):
        """Create ApiGatewayClient instance wired to the mock backends."""
        return ApiGatewayClient(
            store,
            mock_config(),
            transport=backend.transport,
            metrics=ClientMetrics(registry)
        )

    @pytest.mark.asyncio
    async def test_success_body_forwarded_unchanged(self, gateway, backend):
        """Test a 2xx body is returned exactly as sent."""
        payload = {"id": "wallet-1", "balance": 10.5, "nested": {"items": [1, 2, 3]}}
        backend.wallet("GET", "/wallets/user", (200, payload))

        result = await gateway.get(Backend.WALLET, "/wallets/user")

        assert result == payload
        assert len(backend.requests) == 1

    @pytest.mark.asyncio
    async def test_bearer_token_attached(self, gateway, backend):
        """Test the stored access token is sent as a bearer credential."""
        backend.wallet("GET", "/beneficiaries", (200, []))

        await gateway.get(Backend.WALLET, "/beneficiaries")

        assert bearer(backend.requests[0]) == "old-access"

    @pytest.mark.asyncio
    async def test_no_authorization_header_without_token(self, backend):
        """Test anonymous requests carry no Authorization header."""
        gateway = ApiGatewayClient(InMemoryCredentialStore(), mock_config(), transport=backend.transport)
        backend.auth("POST", "/auth/login", (200, {"accessToken": "a", "refreshToken": "r"}))

        await gateway.post(Backend.AUTH, "/auth/login", json={"email": "x@y.z", "password": "p"}, allow_refresh=False)

        assert "Authorization" not in backend.requests[0].headers

    @pytest.mark.asyncio
    async def test_requests_use_backend_base_urls(self, gateway, backend):
        """Test each backend target resolves against its own base URL."""
        backend.auth("GET", "/auth/me", (200, {"id": "user-1"}))
        backend.wallet("GET", "/wallets/user", (200, {"id": "wallet-1"}))

        await gateway.get(Backend.AUTH, "/auth/me")
        await gateway.get(Backend.WALLET, "/wallets/user")

        assert str(backend.requests[0].url) == "http://auth.test/api/v1/auth/me"
        assert str(backend.requests[1].url) == "http://wallet.test/api/v1/wallets/user"

    @pytest.mark.asyncio
    async def test_empty_body_returns_none(self, gateway, backend):
        """Test a 2xx without content yields None."""
        backend.auth("POST", "/auth/logout", httpx.Response(204))

        assert await gateway.post(Backend.AUTH, "/auth/logout") is None

    @pytest.mark.asyncio
    async def test_401_refreshes_once_and_retries_with_new_token(self, gateway, backend, store):
        """Test one 401 leads to exactly one refresh and one retry."""
        backend.wallet("GET", "/wallets/user", (401, {"message": "Unauthorized"}), (200, {"id": "wallet-1"}))
        backend.auth("POST", "/auth/refresh", (200, {"accessToken": "new-access"}))

        result = await gateway.get(Backend.WALLET, "/wallets/user")

        assert result == {"id": "wallet-1"}
        refreshes = backend.calls("POST", "/auth/refresh")
        attempts = backend.calls("GET", "/wallets/user")
        assert len(refreshes) == 1
        assert request_json(refreshes[0]) == {"token": "refresh-1"}
        assert "Authorization" not in refreshes[0].headers
        assert [bearer(r) for r in attempts] == ["old-access", "new-access"]
        assert await store.get_access_token() == "new-access"
        assert await store.get_refresh_token() == "refresh-1"

    @pytest.mark.asyncio
    async def test_retry_preserves_body_params_and_target(self, gateway, backend):
        """Test the retry re-sends the original body to the same backend."""
        body = {"toUserId": "user-2", "amount": 25.0, "description": "Lunch"}
        backend.wallet("POST", "/transactions/transfer", (401, {}), (201, {"id": "txn-9"}))
        backend.auth("POST", "/auth/refresh", (200, {"accessToken": "new-access"}))

        await gateway.post(Backend.WALLET, "/transactions/transfer", json=body, params={"source": "app"})

        first, retry = backend.calls("POST", "/transactions/transfer")
        assert request_json(first) == request_json(retry) == body
        assert retry.url.params["source"] == "app"
        assert retry.url.host == first.url.host == "wallet.test"

    @pytest.mark.asyncio
    async def test_rotated_refresh_token_persisted(self, gateway, backend, store):
        """Test a refresh response carrying a new refresh token replaces the old one."""
        backend.wallet("GET", "/wallets/user", (401, {}), (200, {}))
        backend.auth("POST", "/auth/refresh", (200, {"accessToken": "new-access", "refreshToken": "refresh-2"}))

        await gateway.get(Backend.WALLET, "/wallets/user")

        assert await store.get_refresh_token() == "refresh-2"

    @pytest.mark.asyncio
    async def test_401_twice_never_attempts_third_time(self, gateway, backend, store):
        """Test original + retry both 401 ends the session without a second refresh."""
        backend.wallet("GET", "/wallets/user", (401, {"message": "Unauthorized"}))
        backend.auth("POST", "/auth/refresh", (200, {"accessToken": "new-access"}))

        with pytest.raises(AuthenticationExpired):
            await gateway.get(Backend.WALLET, "/wallets/user")

        assert len(backend.calls("GET", "/wallets/user")) == 2
        assert len(backend.calls("POST", "/auth/refresh")) == 1
        assert await store.get_access_token() is None
        assert await store.get_refresh_token() is None

    @pytest.mark.asyncio
    async def test_refresh_failure_clears_credentials(self, gateway, backend, store):
        """Test a rejected refresh empties the store and raises AuthenticationExpired."""
        backend.wallet("GET", "/wallets/user", (401, {}))
        backend.auth("POST", "/auth/refresh", (401, {"message": "Refresh token revoked"}))

        with pytest.raises(AuthenticationExpired) as exc_info:
            await gateway.get(Backend.WALLET, "/wallets/user")

        assert exc_info.value.code == "AUTHENTICATION_EXPIRED"
        assert await store.get_access_token() is None
        assert await store.get_refresh_token() is None
        assert len(backend.calls("GET", "/wallets/user")) == 1

    @pytest.mark.asyncio
    async def test_refresh_without_access_token_in_response_fails(self, gateway, backend, store):
        """Test a 2xx refresh response lacking accessToken is a failed refresh."""
        backend.wallet("GET", "/wallets/user", (401, {}))
        backend.auth("POST", "/auth/refresh", (200, {"unexpected": True}))

        with pytest.raises(AuthenticationExpired):
            await gateway.get(Backend.WALLET, "/wallets/user")

        assert await store.get_access_token() is None

    @pytest.mark.asyncio
    async def test_missing_refresh_token_expires_without_network_call(self, backend):
        """Test a 401 with no stored refresh token skips the refresh call."""
        store = InMemoryCredentialStore()
        await store.set_access_token("orphan-access")
        gateway = ApiGatewayClient(store, mock_config(), transport=backend.transport)
        backend.wallet("GET", "/wallets/user", (401, {}))

        with pytest.raises(AuthenticationExpired):
            await gateway.get(Backend.WALLET, "/wallets/user")

        assert backend.calls("POST", "/auth/refresh") == []
        assert await store.get_access_token() is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 403, 404, 422, 500, 503])
    async def test_non_401_failures_never_refresh(self, gateway, backend, status_code):
        """Test other error statuses surface as RequestFailed without a refresh."""
        backend.wallet("POST", "/wallets/set-pin", (status_code, {"message": "Nope"}))

        with pytest.raises(RequestFailed) as exc_info:
            await gateway.post(Backend.WALLET, "/wallets/set-pin", json={"pin": "1234"})

        assert exc_info.value.status_code == status_code
        assert exc_info.value.message == "Nope"
        assert backend.calls("POST", "/auth/refresh") == []
        assert len(backend.calls("POST", "/wallets/set-pin")) == 1

    @pytest.mark.asyncio
    async def test_retry_failing_with_other_status_is_request_failed(self, gateway, backend, store):
        """Test a retry answered with 500 reports the server error and keeps credentials."""
        backend.wallet("GET", "/transactions/history", (401, {}), (500, {"message": "Database down"}))
        backend.auth("POST", "/auth/refresh", (200, {"accessToken": "new-access"}))

        with pytest.raises(RequestFailed) as exc_info:
            await gateway.get(Backend.WALLET, "/transactions/history")

        assert exc_info.value.status_code == 500
        assert await store.get_access_token() == "new-access"

    @pytest.mark.asyncio
    async def test_login_401_is_request_failed(self, gateway, backend, store):
        """Test requests sent with refresh disabled report 401 verbatim."""
        backend.auth("POST", "/auth/login", (401, {"message": "Invalid credentials"}))

        with pytest.raises(RequestFailed) as exc_info:
            await gateway.post(Backend.AUTH, "/auth/login", json={}, allow_refresh=False)

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Invalid credentials"
        assert backend.calls("POST", "/auth/refresh") == []
        assert await store.get_access_token() == "old-access"

    @pytest.mark.asyncio
    async def test_error_message_list_joined_and_field_errors_kept(self, gateway, backend):
        """Test validation messages and field errors from the backend are surfaced."""
        backend.auth("POST", "/auth/register", (400, {
            "message": ["email must be an email", "password is too short"],
            "errors": {"email": ["invalid"]},
        }))

        with pytest.raises(RequestFailed) as exc_info:
            await gateway.post(Backend.AUTH, "/auth/register", json={}, allow_refresh=False)

        assert exc_info.value.message == "email must be an email, password is too short"
        assert exc_info.value.errors == {"email": ["invalid"]}
        assert exc_info.value.details["status_code"] == 400

    @pytest.mark.asyncio
    async def test_error_without_json_body_uses_reason_phrase(self, gateway, backend):
        """Test a plain-text error falls back to the HTTP reason phrase."""
        backend.wallet("GET", "/wallets/user", httpx.Response(502, text="<html>bad gateway</html>"))

        with pytest.raises(RequestFailed) as exc_info:
            await gateway.get(Backend.WALLET, "/wallets/user")

        assert exc_info.value.message == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_timeout_is_transport_failure(self, gateway, backend, store):
        """Test a timeout raises TransportFailure and is never retried."""
        backend.wallet("GET", "/wallets/user", httpx.ReadTimeout("timed out"))

        with pytest.raises(TransportFailure) as exc_info:
            await gateway.get(Backend.WALLET, "/wallets/user")

        assert exc_info.value.reason == "timeout"
        assert len(backend.requests) == 1
        assert await store.get_access_token() == "old-access"

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_failure(self, gateway, backend):
        """Test connectivity errors raise TransportFailure with reason network."""
        backend.wallet("GET", "/wallets/user", httpx.ConnectError("connection refused"))

        with pytest.raises(TransportFailure) as exc_info:
            await gateway.get(Backend.WALLET, "/wallets/user")

        assert exc_info.value.reason == "network"
        assert exc_info.value.code == "TRANSPORT_FAILURE"

    @pytest.mark.asyncio
    async def test_refresh_transport_failure_keeps_credentials(self, gateway, backend, store):
        """Test a network failure during refresh does not end the session."""
        backend.wallet("GET", "/wallets/user", (401, {}))
        backend.auth("POST", "/auth/refresh", httpx.ConnectError("connection refused"))

        with pytest.raises(TransportFailure):
            await gateway.get(Backend.WALLET, "/wallets/user")

        assert await store.get_access_token() == "old-access"
        assert await store.get_refresh_token() == "refresh-1"

    @pytest.mark.asyncio
    async def test_concurrent_401s_share_single_refresh(self, gateway, backend, store):
        """Test simultaneous 401s trigger one refresh that all callers reuse."""
        def wallet_user(request):
            if bearer(request) == "new-access":
                return (200, {"id": "wallet-1"})
            return (401, {})

        async def slow_refresh(request):
            await asyncio.sleep(0.01)
            return (200, {"accessToken": "new-access"})

        backend.wallet("GET", "/wallets/user", wallet_user)
        backend.wallet("GET", "/beneficiaries", lambda r: (200, []) if bearer(r) == "new-access" else (401, {}))
        backend.auth("POST", "/auth/refresh", slow_refresh)

        results = await asyncio.gather(
            gateway.get(Backend.WALLET, "/wallets/user"),
            gateway.get(Backend.WALLET, "/beneficiaries"),
            gateway.get(Backend.WALLET, "/wallets/user"),
        )

        assert results == [{"id": "wallet-1"}, [], {"id": "wallet-1"}]
        assert len(backend.calls("POST", "/auth/refresh")) == 1
        assert await store.get_access_token() == "new-access"

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_shared_refresh(self, gateway, backend, store):
        """Test cancelling one caller mid-refresh leaves the refresh running for the others."""
        refresh_started = asyncio.Event()
        release_refresh = asyncio.Event()

        async def slow_refresh(request):
            refresh_started.set()
            await release_refresh.wait()
            return (200, {"accessToken": "new-access"})

        backend.wallet(
            "GET", "/wallets/user",
            lambda r: (200, {"id": "wallet-1"}) if bearer(r) == "new-access" else (401, {})
        )
        backend.auth("POST", "/auth/refresh", slow_refresh)

        first = asyncio.create_task(gateway.get(Backend.WALLET, "/wallets/user"))
        second = asyncio.create_task(gateway.get(Backend.WALLET, "/wallets/user"))
        await asyncio.wait_for(refresh_started.wait(), timeout=1)

        first.cancel()
        release_refresh.set()
        result = await second

        with pytest.raises(asyncio.CancelledError):
            await first
        assert result == {"id": "wallet-1"}
        assert len(backend.calls("POST", "/auth/refresh")) == 1
        assert await store.get_access_token() == "new-access"

    @pytest.mark.asyncio
    async def test_401_for_replaced_token_reuses_stored_token(self, gateway, backend, store):
        """Test a 401 for a token already replaced in the store retries without refreshing."""
        async def wallet_user(request):
            if bearer(request) == "old-access":
                # Another caller rotates the token while this request is in flight.
                await store.set_access_token("rotated-access")
                return (401, {})
            return (200, {"id": "wallet-1"})

        backend.wallet("GET", "/wallets/user", wallet_user)
        backend.auth("POST", "/auth/refresh", (200, {"accessToken": "unused"}))

        result = await gateway.get(Backend.WALLET, "/wallets/user")

        assert result == {"id": "wallet-1"}
        assert backend.calls("POST", "/auth/refresh") == []
        assert [bearer(r) for r in backend.calls("GET", "/wallets/user")] == ["old-access", "rotated-access"]

    @pytest.mark.asyncio
    async def test_sequential_expiries_refresh_each_time(self, gateway, backend, store):
        """Test a later expiry after a completed refresh starts a new refresh."""
        backend.wallet(
            "GET", "/wallets/user",
            (401, {}), (200, {"n": 1}),
            (401, {}), (200, {"n": 2})
        )
        backend.auth(
            "POST", "/auth/refresh",
            (200, {"accessToken": "access-2"}),
            (200, {"accessToken": "access-3"})
        )

        assert await gateway.get(Backend.WALLET, "/wallets/user") == {"n": 1}
        assert await gateway.get(Backend.WALLET, "/wallets/user") == {"n": 2}

        assert len(backend.calls("POST", "/auth/refresh")) == 2
        assert await store.get_access_token() == "access-3"

    @pytest.mark.asyncio
    async def test_metrics_recorded_per_attempt_and_refresh(self, gateway, backend, registry):
        """Test request and refresh counters track every attempt."""
        backend.wallet("GET", "/wallets/user", (401, {}), (200, {}))
        backend.auth("POST", "/auth/refresh", (200, {"accessToken": "new-access"}))

        await gateway.get(Backend.WALLET, "/wallets/user")

        def sample(name, labels):
            return registry.get_sample_value(name, labels) or 0

        assert sample("wallet_client_requests_total", {"backend": "wallet", "method": "GET", "outcome": "4xx"}) == 1
        assert sample("wallet_client_requests_total", {"backend": "wallet", "method": "GET", "outcome": "2xx"}) == 1
        assert sample("wallet_client_requests_total", {"backend": "auth", "method": "POST", "outcome": "2xx"}) == 1
        assert sample("wallet_client_token_refresh_total", {"result": "success"}) == 1

    @pytest.mark.asyncio
    async def test_context_manager_closes_clients(self, backend, store):
        """Test leaving the async context closes both pooled clients."""
        async with ApiGatewayClient(store, mock_config(), transport=backend.transport) as gateway:
            pass

        assert all(client.is_closed for client in gateway._clients.values())


class TestResponseParsing:
    """Test cases for parse_model and parse_models."""

    def test_parse_model(self):
        wallet = parse_model(Wallet, {"id": "wallet-1", "balance": 12.5}, "/wallets/user")

        assert wallet.balance == 12.5

    def test_mismatched_body_raises_invalid_response(self):
        """Test a body that fails validation becomes a typed client error."""
        with pytest.raises(InvalidResponse) as exc_info:
            parse_model(Wallet, {"balance": "lots"}, "/wallets/user")

        assert isinstance(exc_info.value, WalletClientError)
        assert exc_info.value.code == "INVALID_RESPONSE"
        assert exc_info.value.details["path"] == "/wallets/user"
        assert {e["loc"][0] for e in exc_info.value.details["errors"]} == {"id", "balance"}

    def test_parse_models_empty_body(self):
        assert parse_models(Wallet, None, "/wallets") == []

    def test_parse_models_requires_list(self):
        """Test an object where a list is expected is rejected."""
        with pytest.raises(InvalidResponse):
            parse_models(Wallet, {"id": "wallet-1"}, "/wallets")
