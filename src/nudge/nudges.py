"""Chat API client for the nudge endpoint."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from nudge.enrichment import EnrichmentCache, default_cache
from nudge.errors import ExecutionError
from nudge.executor import StateListener, SubmitExecutor
from nudge.transport import Transport

DEFAULT_NUDGE_TARGET = "/nudges"


class SuggestedAction(BaseModel):
    text: str
    type: Literal["link", "button", "suggestion"]
    url: str | None = None


class NudgeResponse(BaseModel):
    """Successful reply of the nudge endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    nudge: str
    confidence: float | None = None
    suggested_actions: list[SuggestedAction] = Field(default_factory=list, alias="suggestedActions")


class NudgeClient:
    """Sends chat messages with enrichment context through a ``SubmitExecutor``."""

    def __init__(
        self,
        transport: Transport,
        *,
        cache: EnrichmentCache | None = None,
        target: str = DEFAULT_NUDGE_TARGET,
    ) -> None:
        self._cache = cache or default_cache()
        self._executor: SubmitExecutor[Any] = SubmitExecutor(transport, target)

    @property
    def loading(self) -> bool:
        return self._executor.loading

    @property
    def error(self) -> str | None:
        return self._executor.error

    def subscribe(self, listener: StateListener[Any]) -> Callable[[], None]:
        return self._executor.subscribe(listener)

    async def build_payload(self, message: str, context: Mapping[str, Any] | None = None) -> dict[str, Any]:
        snapshot = await self._cache.resolve()
        return {"message": message, "context": {**(context or {}), **snapshot.as_context()}}

    async def send(self, message: str, context: Mapping[str, Any] | None = None) -> NudgeResponse:
        payload = await self.build_payload(message, context)
        body = await self._executor.submit(payload)
        try:
            return NudgeResponse.model_validate(body)
        except ValidationError as exc:
            raise ExecutionError("Received an invalid nudge response") from exc
