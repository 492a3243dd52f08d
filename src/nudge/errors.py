"""Application-level exception types and error normalization for Nudge."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred"


class NudgeError(Exception):
    """Base exception for Nudge."""


class ConfigurationError(NudgeError):
    """Raised when settings cannot produce a usable client."""


class RequestError(NudgeError):
    """Raised by a transport when a call fails or returns a non-2xx status."""

    def __init__(self, message: str, *, status: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class ExecutionError(NudgeError):
    """Normalized failure re-raised by executors after their state settles."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidTransition(NudgeError):
    """Raised when a message record is moved to a status it cannot reach."""

    def __init__(self, record_id: str, current: str, target: str) -> None:
        super().__init__(f"Message {record_id!r} cannot move from {current} to {target}")
        self.record_id = record_id
        self.current = current
        self.target = target


def structured_error(body: Any) -> str | None:
    """Return the string ``error`` field of a failure body, if there is one."""

    if isinstance(body, Mapping):
        value = body.get("error")
        if isinstance(value, str) and value:
            return value
    return None


def error_message(exc: BaseException | None) -> str:
    """Normalize any failure into a non-empty, human-readable message.

    Precedence is fixed: a structured ``error`` field in the response body,
    then the exception's own message, then ``DEFAULT_ERROR_MESSAGE``.
    """

    if exc is None:
        return DEFAULT_ERROR_MESSAGE
    message = structured_error(getattr(exc, "body", None))
    if message is not None:
        return message
    text = str(exc).strip()
    if text:
        return text
    return DEFAULT_ERROR_MESSAGE
