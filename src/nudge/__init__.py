"""Nudge - async request lifecycle primitives for the Nudge Coach client."""

from .enrichment import EnrichmentCache, EnrichmentSnapshot
from .errors import DEFAULT_ERROR_MESSAGE, ExecutionError, NudgeError, RequestError, error_message
from .executor import AutoFetchExecutor, RequestExecutor, SubmitExecutor
from .ledger import MessageRecord, MessageRetryLedger
from .notifications import Notice
from .nudges import NudgeClient, NudgeResponse
from .transport import HttpTransport, Transport
from .types import RequestSpec, RequestState, TransportResponse

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_ERROR_MESSAGE",
    "AutoFetchExecutor",
    "EnrichmentCache",
    "EnrichmentSnapshot",
    "ExecutionError",
    "HttpTransport",
    "MessageRecord",
    "MessageRetryLedger",
    "Notice",
    "NudgeClient",
    "NudgeError",
    "NudgeResponse",
    "RequestError",
    "RequestExecutor",
    "RequestSpec",
    "RequestState",
    "SubmitExecutor",
    "Transport",
    "TransportResponse",
    "error_message",
]
