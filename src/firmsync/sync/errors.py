"""
Typed failures raised inside a sync attempt.

The message text of each error is part of the public contract: it is what
lands in SyncResult.errors and in persisted sync logs, and status UIs match
on it. Keep the strings stable.
"""
from enum import Enum


class SyncErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    NO_TOKENS = "no_tokens"
    NO_ADAPTER = "no_adapter"
    INVALID_FORMAT = "invalid_format"
    EMPTY_DATA = "empty_data"
    TIMEOUT = "timeout"
    ADAPTER_FAILURE = "adapter_failure"


class SyncError(Exception):
    kind: SyncErrorKind = SyncErrorKind.ADAPTER_FAILURE
    message: str = "Unknown error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.message)


class RateLimitExceeded(SyncError):
    kind = SyncErrorKind.RATE_LIMITED
    message = "Rate limit exceeded"


class NoTokensFound(SyncError):
    kind = SyncErrorKind.NO_TOKENS
    message = "No tokens found"


class NoAdapterForProvider(SyncError):
    kind = SyncErrorKind.NO_ADAPTER
    message = "No adapter for provider"


class InvalidDataFormat(SyncError):
    kind = SyncErrorKind.INVALID_FORMAT
    message = "Invalid data format"


class NoDataToSync(SyncError):
    kind = SyncErrorKind.EMPTY_DATA
    message = "No data to sync"


class PullTimeout(SyncError):
    kind = SyncErrorKind.TIMEOUT

    def __init__(self, seconds: float):
        super().__init__(f"Provider pull timed out after {seconds:g}s")


def error_kind(exc: BaseException) -> SyncErrorKind:
    """Classify any exception raised during an attempt."""
    if isinstance(exc, SyncError):
        return exc.kind
    return SyncErrorKind.ADAPTER_FAILURE


def error_message(exc: BaseException) -> str:
    """Message recorded for an attempt; never empty."""
    return str(exc) or "Unknown error"
