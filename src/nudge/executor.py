"""Request executors with observable lifecycle state."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any, cast

from blinker import Signal
from loguru import logger

from nudge.errors import ExecutionError, error_message
from nudge.logging_utils import request_scope
from nudge.transport import Transport
from nudge.types import IDLE, Headers, Method, RequestSpec, RequestState

type StateListener[T] = Callable[[RequestState[T]], None]


class RequestExecutor[T]:
    """Wraps one configured HTTP call and tracks its latest settle.

    Only the most recent ``execute`` is observed. A newer call or a ``reset()``
    bumps the generation, and any older call that settles afterwards is
    ignored by the state (its own caller still receives the result).
    """

    def __init__(
        self,
        transport: Transport,
        target: str,
        *,
        method: Method = "GET",
        headers: Headers | None = None,
        on_success: Callable[[T], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        if not target:
            raise ValueError("target must be non-empty")
        self._transport = transport
        self._base = RequestSpec(target=target, method=method, headers=dict(headers or {}))
        self._on_success = on_success
        self._on_error = on_error
        self._state: RequestState[T] = cast("RequestState[T]", IDLE)
        self._generation = 0
        self._changed = Signal("nudge.executor.state")

    @property
    def target(self) -> str:
        return self._base.target

    @property
    def state(self) -> RequestState[T]:
        return self._state

    @property
    def data(self) -> T | None:
        return self._state.data

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> str | None:
        return self._state.error

    def subscribe(self, listener: StateListener[T]) -> Callable[[], None]:
        """Call ``listener`` with the new state on every transition."""

        def _receiver(sender: Any, *, state: RequestState[T]) -> None:
            listener(state)

        self._changed.connect(_receiver, weak=False)
        return lambda: self._changed.disconnect(_receiver)

    def reset(self) -> None:
        self._generation += 1
        self._set_state(cast("RequestState[T]", IDLE))

    async def execute(self, overrides: Mapping[str, Any] | None = None) -> T:
        request = self._base.merged(overrides)
        if not request.target:
            raise ValueError("target must be non-empty")

        self._generation += 1
        generation = self._generation
        self._set_state(RequestState(data=None, loading=True, error=None))

        with request_scope(request.target):
            logger.debug("executor.start method={} target={}", request.method, request.target)
            try:
                response = await self._transport.send(request)
            except asyncio.CancelledError:
                if self._is_current(generation):
                    self._set_state(RequestState(data=None, loading=False, error=None))
                raise
            except Exception as exc:
                message = error_message(exc)
                if self._is_current(generation):
                    logger.info("executor.settle target={} status=failure error={}", request.target, message)
                    self._set_state(RequestState(data=None, loading=False, error=message))
                    self._notify_callback(self._on_error, message)
                else:
                    logger.debug("executor.stale target={} status=failure", request.target)
                raise ExecutionError(message) from exc

            data = cast(T, response.body)
            if self._is_current(generation):
                logger.debug("executor.settle target={} status=success", request.target)
                self._set_state(RequestState(data=data, loading=False, error=None))
                self._notify_callback(self._on_success, data)
            else:
                logger.debug("executor.stale target={} status=success", request.target)
            return data

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _set_state(self, state: RequestState[T]) -> None:
        self._state = state
        for receiver in self._changed.receivers_for(self):
            try:
                receiver(self, state=state)
            except Exception:
                logger.exception("executor.listener.error target={}", self.target)

    def _notify_callback(self, callback: Callable[[Any], None] | None, value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception:
            logger.exception("executor.callback.error target={}", self.target)


class AutoFetchExecutor[T](RequestExecutor[T]):
    """GET executor that fetches once when activated."""

    def __init__(self, transport: Transport, target: str, *, auto_fetch: bool = True, **kwargs: Any) -> None:
        kwargs.pop("method", None)
        super().__init__(transport, target, method="GET", **kwargs)
        self.auto_fetch = auto_fetch
        self._activated = False
        self._task: asyncio.Task[None] | None = None

    def activate(self) -> asyncio.Task[None] | None:
        """Schedule the automatic fetch; must be called from a running loop."""
        if self._activated:
            return self._task
        self._activated = True
        if not self.auto_fetch:
            return None
        self._task = asyncio.get_running_loop().create_task(self._auto_fetch())
        return self._task

    async def refetch(self) -> T:
        return await self.execute({"method": "GET"})

    async def close(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _auto_fetch(self) -> None:
        try:
            await self.refetch()
        except ExecutionError as exc:
            logger.debug("executor.autofetch.failed target={} error={}", self.target, exc.message)
        except Exception:
            logger.exception("executor.autofetch.error target={}", self.target)


class SubmitExecutor[T](RequestExecutor[T]):
    """POST executor driven explicitly by ``submit``."""

    def __init__(self, transport: Transport, target: str, **kwargs: Any) -> None:
        kwargs.pop("method", None)
        super().__init__(transport, target, method="POST", **kwargs)

    async def submit(self, payload: Any = None) -> T:
        return await self.execute({"method": "POST", "body": payload})
