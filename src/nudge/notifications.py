"""Transient, auto-expiring notice shown by the chat surface."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from blinker import Signal

DEFAULT_NOTICE_SECONDS = 5.0


class Notice:
    """One visible message at a time, cleared after ``duration`` seconds.

    Showing a newer message cancels the armed timer and starts a fresh one.
    """

    def __init__(self, duration: float = DEFAULT_NOTICE_SECONDS) -> None:
        self.duration = duration
        self._message: str | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._changed = Signal("nudge.notice")

    @property
    def message(self) -> str | None:
        return self._message

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def subscribe(self, listener: Callable[[str | None], None]) -> Callable[[], None]:
        def _receiver(sender: Any, *, message: str | None) -> None:
            listener(message)

        self._changed.connect(_receiver, weak=False)
        return lambda: self._changed.disconnect(_receiver)

    def show(self, message: str) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(self.duration, self._expire)
        self._set(message)

    def dismiss(self) -> None:
        self._cancel_timer()
        self._set(None)

    def close(self) -> None:
        self._cancel_timer()

    def _expire(self) -> None:
        self._timer = None
        self._set(None)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set(self, message: str | None) -> None:
        if message == self._message:
            return
        self._message = message
        self._changed.send(self, message=message)
