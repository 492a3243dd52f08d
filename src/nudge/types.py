"""Request and response shapes shared by transports and executors."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

type Method = Literal["GET", "POST"]
type Headers = dict[str, str]


@dataclass(frozen=True)
class RequestState[T]:
    """Observable state of one executor."""

    data: T | None = None
    loading: bool = False
    error: str | None = None


IDLE: RequestState[Any] = RequestState()


@dataclass(frozen=True)
class RequestSpec:
    """One outbound call as handed to a transport."""

    target: str
    method: Method = "GET"
    headers: Headers = field(default_factory=dict)
    body: Any = None

    def merged(self, overrides: Mapping[str, Any] | None) -> RequestSpec:
        """Return a copy with per-call overrides applied on top of this base."""
        if not overrides:
            return RequestSpec(self.target, self.method, dict(self.headers), self.body)
        headers = {**self.headers, **(overrides.get("headers") or {})}
        return RequestSpec(
            target=overrides.get("target", self.target),
            method=overrides.get("method", self.method),
            headers=headers,
            body=overrides.get("body", self.body),
        )


@dataclass(frozen=True)
class TransportResponse:
    """Successful response returned by a transport."""

    status: int
    body: Any = None
