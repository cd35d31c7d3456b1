"""
SyncService: orchestrates one provider sync for one tenant.

Flow for a single attempt:
  1. Rate-limit check for (tenant, provider)
  2. Fetch the tenant's tokens
  3. Look up the provider adapter
  4. Pull raw data (bounded by pull_timeout)
  5. Validate: must be a non-empty list
  6. Transform → forward to the record sink (if any)

A failed attempt is retried with linear backoff (backoff_ms * attempt)
until max_retries attempts have been made. Every error kind is retried the
same way unless it is listed in `non_retryable`.

Exactly one SyncLogEntry is written per sync_provider() call, after the
final attempt: intermediate failures appear only in that entry's `errors`.
sync_provider() never raises; failures are reported through the result,
the sync log, and the audit logger.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional, Protocol

from firmsync.audit import AuditLogger
from firmsync.clock import utcnow
from firmsync.oauth.manager import OAuthManager
from firmsync.oauth.tokens import OAuthTokenStorage
from firmsync.sync.errors import (
    InvalidDataFormat,
    NoAdapterForProvider,
    NoDataToSync,
    NoTokensFound,
    PullTimeout,
    RateLimitExceeded,
    SyncErrorKind,
    error_kind,
    error_message,
)
from firmsync.sync.log_storage import (
    STATUS_ERROR,
    STATUS_SUCCESS,
    SyncLogEntry,
    SyncLogStorage,
)
from firmsync.sync.rate_limiter import RateLimiter
from firmsync.sync.transformer import DataTransformer

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BACKOFF_MS = 500


@dataclass
class SyncResult:
    success: bool
    records_synced: int
    errors: List[str] = field(default_factory=list)
    conflicts: int = 0  # conflict detection not implemented; always 0
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime = field(default_factory=utcnow)


class RecordSink(Protocol):
    """Downstream consumer of transformed records (DB, queue, AI agent)."""

    async def forward(
        self, tenant_id: str, provider: str, records: List[Dict[str, Any]]
    ) -> None: ...


class SyncService:
    """Runs provider syncs with bounded retries and one log row per call."""

    def __init__(
        self,
        oauth_manager: OAuthManager,
        token_storage: OAuthTokenStorage,
        log_storage: SyncLogStorage,
        audit_logger: AuditLogger,
        rate_limiter: Optional[RateLimiter] = None,
        transformer: Optional[DataTransformer] = None,
        sink: Optional[RecordSink] = None,
        max_retries: int = MAX_RETRIES,
        backoff_ms: int = BACKOFF_MS,
        pull_timeout: Optional[float] = None,
        non_retryable: Iterable[SyncErrorKind] = (),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            oauth_manager: Source of provider adapters.
            token_storage: Source of per-tenant OAuth tokens.
            log_storage: Where terminal outcomes are recorded.
            audit_logger: Receives an error event for every failed sync.
            rate_limiter: Defaults to a fresh RateLimiter (10 req / 60 s).
            transformer: Defaults to a DataTransformer with no custom transforms.
            sink: Optional consumer of transformed records.
            max_retries: Total attempts per call, >= 1.
            backoff_ms: Base delay; attempt n waits backoff_ms * n before retrying.
            pull_timeout: Seconds allowed for adapter.pull_data(); None disables.
            non_retryable: Error kinds that end the call on first occurrence.
            sleep / clock: Injected for tests.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.oauth_manager = oauth_manager
        self.token_storage = token_storage
        self.log_storage = log_storage
        self.audit_logger = audit_logger
        self.rate_limiter = rate_limiter or RateLimiter()
        self.transformer = transformer or DataTransformer()
        self.sink = sink
        self.max_retries = max_retries
        self.backoff_ms = backoff_ms
        self.pull_timeout = pull_timeout
        self.non_retryable: FrozenSet[SyncErrorKind] = frozenset(non_retryable)
        self._sleep = sleep
        self._clock = clock

    async def sync_provider(
        self, tenant_id: str, provider: str, real_time: bool = False
    ) -> SyncResult:
        """
        Sync one provider for one tenant.

        Args:
            tenant_id: Firm identifier.
            provider: Provider key, e.g. "quickbooks".
            real_time: Passed through to the adapter's pull_data().

        Returns:
            SyncResult; success=False once retries are exhausted.
        """
        started_at = self._clock()
        records_synced = 0
        errors: List[str] = []
        attempts = 0

        while True:
            attempts += 1
            try:
                transformed = await self._pull_and_transform(tenant_id, provider, real_time)
                if self.sink is not None:
                    await self.sink.forward(tenant_id, provider, transformed)
                records_synced = len(transformed)
                break
            except Exception as exc:
                message = error_message(exc)
                errors.append(message)
                if attempts >= self.max_retries or error_kind(exc) in self.non_retryable:
                    return self._finish_failed(
                        tenant_id, provider, started_at, records_synced, errors
                    )
                logger.warning(
                    "Sync %s:%s attempt %d/%d failed: %s",
                    tenant_id, provider, attempts, self.max_retries, message,
                )
                await self._sleep(self.backoff_ms * attempts / 1000)

        finished_at = self._clock()
        self._write_log(SyncLogEntry(
            tenant_id=tenant_id,
            provider=provider,
            status=STATUS_SUCCESS,
            records_synced=records_synced,
            conflicts=0,
            started_at=started_at,
            finished_at=finished_at,
        ))
        logger.info(
            "Synced %d %s records for tenant %s (attempt %d)",
            records_synced, provider, tenant_id, attempts,
        )
        return SyncResult(
            success=True,
            records_synced=records_synced,
            errors=[],
            conflicts=0,
            started_at=started_at,
            finished_at=finished_at,
        )

    async def trigger_real_time_sync(self, tenant_id: str, provider: str) -> SyncResult:
        return await self.sync_provider(tenant_id, provider, real_time=True)

    def get_sync_status(self, tenant_id: str, provider: str) -> Optional[SyncLogEntry]:
        """Latest completed sync for the pair, or None if it never ran."""
        return self.log_storage.get_latest_status(tenant_id, provider)

    def get_sync_logs(self, tenant_id: str, provider: str) -> List[SyncLogEntry]:
        return self.log_storage.get_logs(tenant_id, provider)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _pull_and_transform(
        self, tenant_id: str, provider: str, real_time: bool
    ) -> List[Dict[str, Any]]:
        """One attempt up to (not including) forwarding. Raises on any failure."""
        if not self.rate_limiter.allow(tenant_id, provider):
            raise RateLimitExceeded()

        tokens = self.token_storage.get_tokens(tenant_id, provider)
        if tokens is None:
            raise NoTokensFound()

        adapter = self.oauth_manager.get_provider_adapter(provider)
        if adapter is None:
            raise NoAdapterForProvider()

        pull = adapter.pull_data(tokens, real_time=real_time)
        if self.pull_timeout is None:
            raw_data = await pull
        else:
            try:
                raw_data = await asyncio.wait_for(pull, timeout=self.pull_timeout)
            except asyncio.TimeoutError:
                raise PullTimeout(self.pull_timeout)

        if not isinstance(raw_data, list):
            raise InvalidDataFormat()
        if not raw_data:
            raise NoDataToSync()

        return self.transformer.transform(raw_data, provider)

    def _finish_failed(
        self,
        tenant_id: str,
        provider: str,
        started_at: datetime,
        records_synced: int,
        errors: List[str],
    ) -> SyncResult:
        finished_at = self._clock()
        self._write_log(SyncLogEntry(
            tenant_id=tenant_id,
            provider=provider,
            status=STATUS_ERROR,
            records_synced=records_synced,
            conflicts=0,
            started_at=started_at,
            finished_at=finished_at,
            errors=tuple(errors),
        ))
        self.audit_logger.log_error(
            "sync_service",
            {"tenant_id": tenant_id, "provider": provider, "error": errors[-1]},
        )
        return SyncResult(
            success=False,
            records_synced=records_synced,
            errors=list(errors),
            conflicts=0,
            started_at=started_at,
            finished_at=finished_at,
        )

    def _write_log(self, entry: SyncLogEntry) -> None:
        # sync_provider() must not raise on a log-write failure
        try:
            self.log_storage.log_sync(entry)
        except Exception:
            logger.exception(
                "Failed to record %s sync log for %s:%s",
                entry.status, entry.tenant_id, entry.provider,
            )
