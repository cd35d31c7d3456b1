"""
Tests for SyncService: the bounded-retry orchestrator.

The provider adapter is an AsyncMock; tokens, logs and rate limiting use the
in-memory backends. The backoff sleep is an AsyncMock so no test waits.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from firmsync.oauth.manager import OAuthManager
from firmsync.oauth.tokens import InMemoryTokenStorage, Tokens
from firmsync.sync.errors import SyncErrorKind
from firmsync.sync.log_storage import InMemorySyncLogStorage
from firmsync.sync.rate_limiter import RateLimiter
from firmsync.sync.service import MAX_RETRIES, SyncService

RECORDS = [{"id": 1}, {"id": 2}, {"id": 3}]


def make_adapter(name="quickbooks", pull_data=None):
    adapter = MagicMock()
    adapter.name = name
    adapter.pull_data = pull_data or AsyncMock(return_value=RECORDS)
    adapter.refresh = AsyncMock()
    return adapter


@pytest.fixture
def token_storage():
    storage = InMemoryTokenStorage()
    storage.save_tokens("firm-42", "quickbooks", Tokens(access_token="abc"))
    return storage


@pytest.fixture
def adapter():
    return make_adapter()


@pytest.fixture
def log_storage():
    return InMemorySyncLogStorage()


@pytest.fixture
def audit():
    return MagicMock()


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def service(token_storage, adapter, log_storage, audit, sleep, clock):
    manager = OAuthManager(token_storage, adapters=[adapter])
    return SyncService(
        oauth_manager=manager,
        token_storage=token_storage,
        log_storage=log_storage,
        audit_logger=audit,
        rate_limiter=RateLimiter(clock=clock),
        sleep=sleep,
        clock=clock,
    )


# ─── Success path ────────────────────────────────────────────────────────────

class TestSyncSuccess:
    @pytest.mark.asyncio
    async def test_end_to_end_happy_path(self, service):
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.success is True
        assert result.records_synced == 3
        assert result.errors == []
        assert result.conflicts == 0

    @pytest.mark.asyncio
    async def test_status_reports_success_after_sync(self, service):
        await service.sync_provider("firm-42", "quickbooks")
        status = service.get_sync_status("firm-42", "quickbooks")
        assert status is not None
        assert status.status == "success"
        assert status.records_synced == 3
        assert status.errors == ()

    @pytest.mark.asyncio
    async def test_exactly_one_log_entry(self, service, log_storage):
        await service.sync_provider("firm-42", "quickbooks")
        assert len(log_storage.get_logs("firm-42", "quickbooks")) == 1

    @pytest.mark.asyncio
    async def test_finished_not_before_started(self, service, clock):
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.finished_at >= result.started_at

    @pytest.mark.asyncio
    async def test_adapter_called_with_tokens_and_realtime_flag(self, service, adapter):
        await service.sync_provider("firm-42", "quickbooks", real_time=True)
        args, kwargs = adapter.pull_data.call_args
        assert args[0].access_token == "abc"
        assert kwargs == {"real_time": True}

    @pytest.mark.asyncio
    async def test_trigger_real_time_sync_sets_flag(self, service, adapter):
        result = await service.trigger_real_time_sync("firm-42", "quickbooks")
        assert result.success is True
        assert adapter.pull_data.call_args.kwargs["real_time"] is True

    @pytest.mark.asyncio
    async def test_scheduled_default_is_not_real_time(self, service, adapter):
        await service.sync_provider("firm-42", "quickbooks")
        assert adapter.pull_data.call_args.kwargs["real_time"] is False

    @pytest.mark.asyncio
    async def test_scalar_records_sync_in_one_attempt(self, service, adapter, sleep):
        adapter.pull_data.return_value = [1, "x"]
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.success is True
        assert result.records_synced == 2
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sink_receives_tagged_records(self, token_storage, adapter, log_storage, audit, sleep):
        sink = MagicMock()
        sink.forward = AsyncMock()
        service = SyncService(
            OAuthManager(token_storage, adapters=[adapter]),
            token_storage, log_storage, audit, sink=sink, sleep=sleep,
        )
        await service.sync_provider("firm-42", "quickbooks")
        tenant, provider, records = sink.forward.await_args.args
        assert (tenant, provider) == ("firm-42", "quickbooks")
        assert records == [{"id": i, "provider": "quickbooks"} for i in (1, 2, 3)]

    @pytest.mark.asyncio
    async def test_recovers_on_second_attempt(self, service, adapter, log_storage, sleep):
        adapter.pull_data.side_effect = [Exception("503 Service Unavailable"), RECORDS]
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.success is True
        assert result.errors == []
        assert adapter.pull_data.await_count == 2
        sleep.assert_awaited_once_with(0.5)
        logs = log_storage.get_logs("firm-42", "quickbooks")
        assert [entry.status for entry in logs] == ["success"]


# ─── Retry / failure path ────────────────────────────────────────────────────

class TestSyncFailure:
    @pytest.mark.asyncio
    async def test_always_throwing_adapter_exhausts_retries(self, service, adapter, log_storage):
        adapter.pull_data.side_effect = Exception("API down")
        result = await service.sync_provider("firm-42", "quickbooks")

        assert result.success is False
        assert adapter.pull_data.await_count == MAX_RETRIES
        logs = log_storage.get_logs("firm-42", "quickbooks")
        assert len(logs) == 1
        assert logs[0].status == "error"
        assert len(logs[0].errors) == MAX_RETRIES

    @pytest.mark.asyncio
    async def test_errors_in_attempt_order(self, service, adapter):
        adapter.pull_data.side_effect = [Exception("one"), Exception("two"), Exception("three")]
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.errors == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_linear_backoff(self, service, adapter, sleep):
        adapter.pull_data.side_effect = Exception("API down")
        await service.sync_provider("firm-42", "quickbooks")
        delays = [c.args[0] for c in sleep.await_args_list]
        assert delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_empty_data_is_retried_then_fails(self, service, adapter):
        adapter.pull_data.return_value = []
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.success is False
        assert result.errors == ["No data to sync"] * MAX_RETRIES

    @pytest.mark.asyncio
    async def test_non_list_payload_is_invalid_format(self, service, adapter):
        adapter.pull_data.return_value = {"data": RECORDS}
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.errors[0] == "Invalid data format"

    @pytest.mark.asyncio
    async def test_missing_tokens(self, service):
        result = await service.sync_provider("firm-7", "quickbooks")
        assert result.success is False
        assert set(result.errors) == {"No tokens found"}

    @pytest.mark.asyncio
    async def test_unknown_provider_has_no_adapter(self, service, token_storage):
        token_storage.save_tokens("firm-42", "dropbox", Tokens(access_token="x"))
        result = await service.sync_provider("firm-42", "dropbox")
        assert result.errors == ["No adapter for provider"] * MAX_RETRIES

    @pytest.mark.asyncio
    async def test_rate_limited_attempts_fail(self, token_storage, adapter, log_storage, audit, sleep, clock):
        limiter = RateLimiter(max_requests=1, clock=clock)
        limiter.allow("firm-42", "quickbooks")  # use up the window
        service = SyncService(
            OAuthManager(token_storage, adapters=[adapter]),
            token_storage, log_storage, audit,
            rate_limiter=limiter, sleep=sleep, clock=clock,
        )
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.errors == ["Rate limit exceeded"] * MAX_RETRIES
        adapter.pull_data.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_exception_message_becomes_unknown_error(self, service, adapter):
        adapter.pull_data.side_effect = RuntimeError()
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.errors[0] == "Unknown error"

    @pytest.mark.asyncio
    async def test_failure_is_audited_once(self, service, adapter, audit):
        adapter.pull_data.side_effect = Exception("API down")
        await service.sync_provider("firm-42", "quickbooks")
        audit.log_error.assert_called_once_with(
            "sync_service",
            {"tenant_id": "firm-42", "provider": "quickbooks", "error": "API down"},
        )

    @pytest.mark.asyncio
    async def test_success_is_not_audited(self, service, audit):
        await service.sync_provider("firm-42", "quickbooks")
        audit.log_error.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_sync_records_zero_conflicts(self, service, adapter):
        adapter.pull_data.side_effect = Exception("API down")
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.conflicts == 0
        assert result.records_synced == 0

    @pytest.mark.asyncio
    async def test_log_storage_failure_does_not_raise(self, service, log_storage):
        log_storage.log_sync = MagicMock(side_effect=RuntimeError("disk full"))
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.success is True

    @pytest.mark.asyncio
    async def test_sink_failure_is_retried(self, token_storage, adapter, log_storage, audit, sleep):
        sink = MagicMock()
        sink.forward = AsyncMock(side_effect=Exception("queue unavailable"))
        service = SyncService(
            OAuthManager(token_storage, adapters=[adapter]),
            token_storage, log_storage, audit, sink=sink, sleep=sleep,
        )
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.success is False
        assert sink.forward.await_count == MAX_RETRIES


# ─── Options ─────────────────────────────────────────────────────────────────

class TestSyncOptions:
    @pytest.mark.asyncio
    async def test_non_retryable_kind_fails_fast(self, token_storage, adapter, log_storage, audit, sleep):
        adapter.pull_data.return_value = []
        service = SyncService(
            OAuthManager(token_storage, adapters=[adapter]),
            token_storage, log_storage, audit,
            non_retryable={SyncErrorKind.EMPTY_DATA},
            sleep=sleep,
        )
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.errors == ["No data to sync"]
        assert adapter.pull_data.await_count == 1
        sleep.assert_not_awaited()
        assert len(log_storage.get_logs("firm-42", "quickbooks")) == 1

    @pytest.mark.asyncio
    async def test_non_retryable_does_not_affect_other_kinds(self, token_storage, adapter, log_storage, audit, sleep):
        adapter.pull_data.side_effect = Exception("API down")
        service = SyncService(
            OAuthManager(token_storage, adapters=[adapter]),
            token_storage, log_storage, audit,
            non_retryable={SyncErrorKind.EMPTY_DATA},
            sleep=sleep,
        )
        result = await service.sync_provider("firm-42", "quickbooks")
        assert len(result.errors) == MAX_RETRIES

    @pytest.mark.asyncio
    async def test_pull_timeout(self, token_storage, log_storage, audit, sleep):
        async def hang(tokens, real_time=False):
            await asyncio.sleep(10)

        adapter = make_adapter(pull_data=hang)
        service = SyncService(
            OAuthManager(token_storage, adapters=[adapter]),
            token_storage, log_storage, audit,
            max_retries=1, pull_timeout=0.01, sleep=sleep,
        )
        result = await service.sync_provider("firm-42", "quickbooks")
        assert result.success is False
        assert result.errors == ["Provider pull timed out after 0.01s"]

    @pytest.mark.asyncio
    async def test_custom_max_retries(self, token_storage, adapter, log_storage, audit, sleep):
        adapter.pull_data.side_effect = Exception("API down")
        service = SyncService(
            OAuthManager(token_storage, adapters=[adapter]),
            token_storage, log_storage, audit,
            max_retries=5, sleep=sleep,
        )
        result = await service.sync_provider("firm-42", "quickbooks")
        assert len(result.errors) == 5
        assert sleep.await_count == 4

    def test_max_retries_must_be_positive(self, token_storage, log_storage, audit):
        with pytest.raises(ValueError):
            SyncService(OAuthManager(token_storage), token_storage, log_storage, audit, max_retries=0)

    @pytest.mark.asyncio
    async def test_get_sync_logs_scoped_to_pair(self, service, token_storage, adapter):
        token_storage.save_tokens("firm-9", "quickbooks", Tokens(access_token="z"))
        await service.sync_provider("firm-42", "quickbooks")
        await service.sync_provider("firm-42", "quickbooks")
        await service.sync_provider("firm-9", "quickbooks")
        assert len(service.get_sync_logs("firm-42", "quickbooks")) == 2
        assert len(service.get_sync_logs("firm-9", "quickbooks")) == 1
        assert service.get_sync_status("firm-9", "google") is None
