"""
Authenticated gateway client for the auth and wallet backends.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypeVar

import httpx
import pydantic

from shared.config import ClientConfig
from shared.errors import AuthenticationExpired, InvalidResponse, RequestFailed, TransportFailure
from shared.logging import elapsed_ms, get_logger
from shared.metrics import ClientMetrics, get_client_metrics

from ..auth.store import CredentialStore

REFRESH_PATH = "/auth/refresh"
FIRST_ATTEMPT = 1
RETRY_ATTEMPT = 2

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


class Backend(str, Enum):
    """Logical backend a request is addressed to."""

    AUTH = "auth"
    WALLET = "wallet"


@dataclass(frozen=True)
class RequestDescriptor:
    """One logical call; re-sent unchanged when retried after a refresh."""

    backend: Backend
    method: str
    path: str
    body: Any = None
    params: Optional[Mapping[str, Any]] = None
    allow_refresh: bool = True


class ApiGatewayClient:
    """
    Issue requests against the auth and wallet backends with bearer tokens.

    A 401 on the first attempt triggers one token refresh and one retry of the
    same request against the same backend. Concurrent callers that hit a 401
    share a single in-flight refresh.
    """

    def __init__(
        self,
        store: CredentialStore,
        config: Optional[ClientConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[ClientMetrics] = None
    ):
        self.config = config or ClientConfig()
        self.store = store
        self.logger = get_logger("wallet_gateway.api")

        if metrics is None and self.config.enable_metrics:
            metrics = get_client_metrics()
        self.metrics = metrics

        self._clients: Dict[Backend, httpx.AsyncClient] = {
            Backend.AUTH: self._build_client(self.config.auth_service_url, transport),
            Backend.WALLET: self._build_client(self.config.wallet_service_url, transport),
        }
        self._refresh_task: Optional[asyncio.Task] = None

    def _build_client(self, base_url: str, transport: Optional[httpx.AsyncBaseTransport]) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(self.config.request_timeout_seconds),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": self.config.user_agent,
            },
            transport=transport,
        )

    async def request(
        self,
        backend: Backend,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        allow_refresh: bool = True
    ) -> Any:
        """Send a request and return the parsed response body."""
        descriptor = RequestDescriptor(
            backend=Backend(backend),
            method=method.upper(),
            path=path,
            body=json,
            params=params,
            allow_refresh=allow_refresh,
        )
        token = await self.store.get_access_token()
        return await self._send(descriptor, FIRST_ATTEMPT, token)

    async def get(self, backend: Backend, path: str, **kwargs) -> Any:
        return await self.request(backend, "GET", path, **kwargs)

    async def post(self, backend: Backend, path: str, **kwargs) -> Any:
        return await self.request(backend, "POST", path, **kwargs)

    async def put(self, backend: Backend, path: str, **kwargs) -> Any:
        return await self.request(backend, "PUT", path, **kwargs)

    async def patch(self, backend: Backend, path: str, **kwargs) -> Any:
        return await self.request(backend, "PATCH", path, **kwargs)

    async def delete(self, backend: Backend, path: str, **kwargs) -> Any:
        return await self.request(backend, "DELETE", path, **kwargs)

    async def _send(self, descriptor: RequestDescriptor, attempt: int, token: Optional[str]) -> Any:
        response = await self._dispatch(descriptor, token, attempt)

        if response.is_success:
            return _parse_body(response)

        if response.status_code == 401 and descriptor.allow_refresh:
            if attempt == FIRST_ATTEMPT:
                self.logger.info(
                    "Access token rejected, refreshing",
                    backend=descriptor.backend.value,
                    path=descriptor.path
                )
                fresh_token = await self._refresh_access_token(token)
                return await self._send(descriptor, RETRY_ATTEMPT, fresh_token)

            self.logger.warning(
                "Request still unauthorized after refresh",
                backend=descriptor.backend.value,
                path=descriptor.path
            )
            await self.store.clear_auth()
            message, _ = _extract_error(response)
            raise AuthenticationExpired(
                "Session expired",
                details={"status_code": 401, "path": descriptor.path, "backend_message": message}
            )

        message, errors = _extract_error(response)
        self.logger.warning(
            "Backend request failed",
            backend=descriptor.backend.value,
            method=descriptor.method,
            path=descriptor.path,
            status_code=response.status_code,
            message=message
        )
        raise RequestFailed(response.status_code, message, errors)

    async def _dispatch(self, descriptor: RequestDescriptor, token: Optional[str], attempt: int) -> httpx.Response:
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        client = self._clients[descriptor.backend]
        started = time.perf_counter()
        try:
            response = await client.request(
                descriptor.method,
                descriptor.path,
                json=descriptor.body,
                params=descriptor.params,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            self._record_request(descriptor, "timeout", started)
            self.logger.error(
                "Backend timeout",
                backend=descriptor.backend.value,
                path=descriptor.path,
                attempt=attempt
            )
            raise TransportFailure(
                f"{descriptor.backend.value} service timeout",
                reason="timeout",
                details={"path": descriptor.path}
            ) from e
        except httpx.RequestError as e:
            self._record_request(descriptor, "network", started)
            self.logger.error(
                "Backend request error",
                backend=descriptor.backend.value,
                path=descriptor.path,
                attempt=attempt,
                error=str(e)
            )
            raise TransportFailure(
                f"{descriptor.backend.value} service unavailable",
                reason="network",
                details={"path": descriptor.path}
            ) from e

        self._record_request(descriptor, f"{response.status_code // 100}xx", started)
        self.logger.debug(
            "Backend response",
            backend=descriptor.backend.value,
            method=descriptor.method,
            path=descriptor.path,
            status_code=response.status_code,
            attempt=attempt,
            elapsed_ms=elapsed_ms(started)
        )
        return response

    async def _refresh_access_token(self, rejected_token: Optional[str]) -> str:
        """Return a fresh access token, joining any refresh already in flight."""
        current = await self.store.get_access_token()
        if current and current != rejected_token:
            # Another caller already rotated the token.
            return current

        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._perform_refresh())
            self._refresh_task.add_done_callback(_consume_task_result)

        return await asyncio.shield(self._refresh_task)

    async def _perform_refresh(self) -> str:
        refresh_token = await self.store.get_refresh_token()
        if not refresh_token:
            self.logger.warning("No refresh token stored, session expired")
            await self.store.clear_auth()
            self._record_refresh("rejected")
            raise AuthenticationExpired("Session expired")

        descriptor = RequestDescriptor(
            backend=Backend.AUTH,
            method="POST",
            path=REFRESH_PATH,
            body={"token": refresh_token},
            allow_refresh=False,
        )
        try:
            response = await self._dispatch(descriptor, None, FIRST_ATTEMPT)
        except TransportFailure:
            self._record_refresh("transport_error")
            raise

        data = _parse_body(response) if response.is_success else None
        access_token = data.get("accessToken") if isinstance(data, dict) else None
        if not access_token:
            self.logger.warning("Token refresh rejected", status_code=response.status_code)
            await self.store.clear_auth()
            self._record_refresh("rejected")
            raise AuthenticationExpired(
                "Session expired",
                details={"status_code": response.status_code, "path": REFRESH_PATH}
            )

        await self.store.set_access_token(access_token)
        rotated = data.get("refreshToken")
        if rotated:
            await self.store.set_refresh_token(rotated)

        self._record_refresh("success")
        self.logger.info("Access token refreshed", refresh_token_rotated=bool(rotated))
        return access_token

    def _record_request(self, descriptor: RequestDescriptor, outcome: str, started: float):
        if self.metrics is not None:
            self.metrics.record_request(
                descriptor.backend.value,
                descriptor.method,
                outcome,
                time.perf_counter() - started
            )

    def _record_refresh(self, result: str):
        if self.metrics is not None:
            self.metrics.record_refresh(result)

    async def aclose(self):
        """Close the pooled connections of both backends."""
        for client in self._clients.values():
            await client.aclose()

    async def __aenter__(self) -> "ApiGatewayClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _extract_error(response: httpx.Response) -> Tuple[str, Optional[Dict[str, List[str]]]]:
    """Pull the backend's message and field errors out of an error response."""
    fallback = response.reason_phrase or f"Request failed with status {response.status_code}"
    data = _parse_body(response)
    if not isinstance(data, dict):
        return fallback, None

    message = data.get("message") or data.get("error")
    if isinstance(message, list):
        message = ", ".join(str(item) for item in message)
    errors = data.get("errors") if isinstance(data.get("errors"), dict) else None
    return (str(message) if message else fallback), errors


def _consume_task_result(task: asyncio.Task):
    # Mark the exception retrieved even when every waiter was cancelled.
    if not task.cancelled():
        task.exception()


def parse_model(model: Type[ModelT], data: Any, path: str) -> ModelT:
    """Validate a response body against ``model``, raising ``InvalidResponse`` on mismatch."""
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise InvalidResponse(
            f"Unexpected response from {path}",
            details={"path": path, "errors": e.errors(include_url=False, include_context=False)}
        ) from e


def parse_models(model: Type[ModelT], data: Any, path: str) -> List[ModelT]:
    """Validate a list response; an empty body is an empty list."""
    if data is None:
        return []
    if not isinstance(data, list):
        raise InvalidResponse(
            f"Unexpected response from {path}",
            details={"path": path, "errors": [{"msg": "Expected a list", "type": type(data).__name__}]}
        )
    return [parse_model(model, item, path) for item in data]
