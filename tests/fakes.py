"""Test doubles shared across the suite."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any

from nudge.errors import RequestError
from nudge.types import RequestSpec, TransportResponse

WINDOWS_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def ok(body: Any, status: int = 200) -> TransportResponse:
    return TransportResponse(status, body)


def fail(status: int, body: Any = None, message: str | None = None) -> RequestError:
    return RequestError(message or f"Request failed with status code {status}", status=status, body=body)


class FakeTransport:
    """Replays queued outcomes; a queued future holds the call in flight until resolved."""

    def __init__(self, *outcomes: Any) -> None:
        self.requests: list[RequestSpec] = []
        self._outcomes: deque[Any] = deque(outcomes)

    def queue(self, *outcomes: Any) -> None:
        self._outcomes.extend(outcomes)

    def hold(self) -> asyncio.Future[Any]:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._outcomes.append(future)
        return future

    async def send(self, request: RequestSpec) -> TransportResponse:
        self.requests.append(request)
        outcome = self._outcomes.popleft()
        if isinstance(outcome, asyncio.Future):
            outcome = await outcome
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FixedTimezone:
    def __init__(self, name: str = "Europe/London") -> None:
        self.name = name
        self.calls = 0

    def timezone(self) -> str:
        self.calls += 1
        return self.name
