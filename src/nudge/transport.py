"""HTTP transport used by executors."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import httpx
from loguru import logger

from nudge.config import Settings
from nudge.errors import ConfigurationError, RequestError, structured_error
from nudge.types import RequestSpec, TransportResponse

type TokenProvider = Callable[[], str | None | Awaitable[str | None]]

DEFAULT_HEADERS = {"Content-Type": "application/json"}


class Transport(Protocol):
    """Minimal async contract for request transports."""

    async def send(self, request: RequestSpec) -> TransportResponse: ...


class HttpTransport:
    """httpx-backed transport that attaches bearer auth when a token is available."""

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: TokenProvider | None = None,
        timeout_seconds: float = 30.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=DEFAULT_HEADERS,
            timeout=timeout_seconds,
            transport=http_transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> HttpTransport:
        if not settings.api_base_url.strip():
            raise ConfigurationError("api_base_url must not be empty")
        token = settings.api_token
        provider = kwargs.pop("token_provider", None)
        if provider is None and token:
            provider = lambda: token  # noqa: E731
        return cls(
            settings.api_base_url,
            token_provider=provider,
            timeout_seconds=settings.request_timeout_seconds,
            **kwargs,
        )

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, request: RequestSpec) -> TransportResponse:
        headers = dict(request.headers)
        token = await self._resolve_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.request(
                request.method,
                request.target,
                headers=headers,
                json=request.body if request.method != "GET" else None,
            )
        except httpx.HTTPError as exc:
            logger.warning("transport.error target={} error={!s}", request.target, exc)
            raise RequestError(str(exc)) from exc

        body = _decode_body(response)
        if response.is_success:
            return TransportResponse(response.status_code, body)

        if response.status_code == 401:
            logger.warning("transport.unauthorized target={} user might need to login again", request.target)
        raise RequestError(
            _failure_message(response.status_code, body),
            status=response.status_code,
            body=body,
        )

    async def _resolve_token(self) -> str | None:
        if self._token_provider is None:
            return None
        try:
            token = self._token_provider()
            if inspect.isawaitable(token):
                token = await token
        except Exception:
            logger.exception("transport.auth.error")
            return None
        return token


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _failure_message(status: int, body: Any) -> str:
    return structured_error(body) or f"Request failed with status code {status}"
