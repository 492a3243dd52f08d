"""Ordered chat message records with optimistic status and manual retry."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from blinker import Signal
from loguru import logger

from nudge.errors import ExecutionError, InvalidTransition, error_message
from nudge.notifications import Notice
from nudge.nudges import NudgeClient

type Origin = Literal["local", "remote"]
type Status = Literal["pending", "settled", "failed"]

FAILED_SUFFIX = " (Failed to send)"
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"settled", "failed"}),
    "failed": frozenset({"pending"}),
    "settled": frozenset(),
}


@dataclass
class MessageRecord:
    """One chat message; identity is stable across retries.

    ``text`` is what the user composed. The failure suffix only exists in
    ``display_text`` and is never written back.
    """

    id: str
    origin: Origin
    text: str
    status: Status = "pending"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def display_text(self) -> str:
        if self.status == "failed":
            return f"{self.text}{FAILED_SUFFIX}"
        return self.text

    @property
    def retryable(self) -> bool:
        return self.status == "failed" and self.origin == "local"

    def transition(self, status: Status) -> None:
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(self.id, self.status, status)
        self.status = status


class MessageIds:
    """Millisecond timestamp ids, bumped so they never repeat within a ledger."""

    def __init__(self, clock: Callable[[], int] = time.time_ns) -> None:
        self._clock = clock
        self._last = 0

    def _next(self) -> int:
        value = max(self._clock() // 1_000_000, self._last + 1)
        self._last = value
        return value

    def local(self) -> str:
        return str(self._next())

    def remote(self) -> str:
        return f"bot-{self._next()}"


class MessageRetryLedger:
    """Drives chat sends and keeps the message list consistent with their outcome.

    Records are appended in creation order and never reordered. A failed send
    keeps its record (and id); ``retry`` resends that same record in place.
    """

    def __init__(
        self,
        client: NudgeClient,
        *,
        notice: Notice | None = None,
        greeting: str | None = None,
        ids: MessageIds | None = None,
    ) -> None:
        self._client = client
        self.notice = notice or Notice()
        self._ids = ids or MessageIds()
        self._records: list[MessageRecord] = []
        self._index: dict[str, MessageRecord] = {}
        self._changed = Signal("nudge.ledger")
        if greeting:
            self._append(MessageRecord(id=self._ids.remote(), origin="remote", text=greeting, status="settled"))

    @property
    def records(self) -> tuple[MessageRecord, ...]:
        return tuple(self._records)

    def get(self, record_id: str) -> MessageRecord | None:
        return self._index.get(record_id)

    def subscribe(self, listener: Callable[[tuple[MessageRecord, ...]], None]) -> Callable[[], None]:
        def _receiver(sender: Any, *, records: tuple[MessageRecord, ...]) -> None:
            listener(records)

        self._changed.connect(_receiver, weak=False)
        return lambda: self._changed.disconnect(_receiver)

    async def send(self, text: str) -> MessageRecord:
        if not text.strip():
            raise ValueError("message text must not be blank")
        record = MessageRecord(id=self._ids.local(), origin="local", text=text)
        self._append(record)
        await self._deliver(record)
        return record

    async def retry(self, record_id: str) -> MessageRecord | None:
        record = self.get(record_id)
        if record is None:
            logger.debug("ledger.retry.unknown id={}", record_id)
            return None
        if not record.retryable:
            logger.debug("ledger.retry.ignored id={} status={}", record_id, record.status)
            return record

        record.transition("pending")
        self._notify()
        await self._deliver(record)
        return record

    def close(self) -> None:
        self.notice.close()

    async def _deliver(self, record: MessageRecord) -> None:
        logger.info("ledger.send id={} attempt=start", record.id)
        try:
            response = await self._client.send(record.text)
        except asyncio.CancelledError:
            record.transition("failed")
            self._notify()
            raise
        except ExecutionError as exc:
            self._fail(record, exc.message)
            return
        except Exception as exc:
            logger.exception("ledger.send.error id={}", record.id)
            self._fail(record, error_message(exc))
            return

        record.transition("settled")
        self._append(MessageRecord(id=self._ids.remote(), origin="remote", text=response.nudge, status="settled"))
        self.notice.dismiss()
        logger.info("ledger.send id={} attempt=settled", record.id)

    def _fail(self, record: MessageRecord, message: str) -> None:
        record.transition("failed")
        self._notify()
        self.notice.show(message)
        logger.info("ledger.send id={} attempt=failed error={}", record.id, message)

    def _append(self, record: MessageRecord) -> None:
        self._records.append(record)
        self._index[record.id] = record
        self._notify()

    def _notify(self) -> None:
        self._changed.send(self, records=self.records)
