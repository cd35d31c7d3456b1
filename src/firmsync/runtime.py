"""
Process-wide wiring of the integration sync collaborators.

build_runtime() assembles storage backends, the OAuth manager, the sync
service and engine, and the health check from Settings. API routes and
scheduler jobs receive the Runtime explicitly (routes through the
get_runtime dependency) rather than reaching for module globals.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from firmsync.audit import AuditLogger
from firmsync.config import Settings, get_settings
from firmsync.db.engine import get_engine
from firmsync.health.check import IntegrationHealthCheck, SQLHealthCache
from firmsync.oauth.adapters import RestProviderAdapter
from firmsync.oauth.manager import OAuthManager
from firmsync.oauth.tokens import OAuthTokenStorage, SQLTokenStorage
from firmsync.sync.engine import SyncEngine
from firmsync.sync.log_storage import SQLSyncLogStorage
from firmsync.sync.rate_limiter import RateLimiter
from firmsync.sync.service import SyncService


@dataclass
class Runtime:
    settings: Settings
    token_storage: OAuthTokenStorage
    oauth_manager: OAuthManager
    audit_logger: AuditLogger
    sync_service: SyncService
    sync_engine: SyncEngine
    health_check: IntegrationHealthCheck


def build_runtime(
    engine=None,
    settings: Optional[Settings] = None,
    scheduler: Optional[AsyncIOScheduler] = None,
) -> Runtime:
    """
    Args:
        engine: SQLAlchemy engine; defaults to the configured singleton.
        settings: Defaults to get_settings().
        scheduler: Scheduler that SyncEngine registers cron jobs on.
            Defaults to a new, unstarted AsyncIOScheduler.
    """
    settings = settings or get_settings()
    engine = engine if engine is not None else get_engine()
    scheduler = scheduler or AsyncIOScheduler()

    token_storage = SQLTokenStorage(engine)
    oauth_manager = OAuthManager(
        token_storage,
        adapters=[
            RestProviderAdapter.from_config(name, cfg)
            for name, cfg in settings.providers.items()
        ],
    )
    audit_logger = AuditLogger(engine)

    sync_service = SyncService(
        oauth_manager=oauth_manager,
        token_storage=token_storage,
        log_storage=SQLSyncLogStorage(engine),
        audit_logger=audit_logger,
        rate_limiter=RateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window=timedelta(seconds=settings.rate_limit_window_seconds),
        ),
        max_retries=settings.sync_max_retries,
        backoff_ms=settings.sync_backoff_ms,
        pull_timeout=settings.sync_pull_timeout_seconds or None,
    )

    health_check = IntegrationHealthCheck(
        oauth_manager=oauth_manager,
        token_storage=token_storage,
        audit_logger=audit_logger,
        cache=SQLHealthCache(engine),
        cache_ttl=timedelta(seconds=settings.health_cache_ttl_seconds),
    )

    return Runtime(
        settings=settings,
        token_storage=token_storage,
        oauth_manager=oauth_manager,
        audit_logger=audit_logger,
        sync_service=sync_service,
        sync_engine=SyncEngine(sync_service, scheduler),
        health_check=health_check,
    )


_runtime: Optional[Runtime] = None


def get_runtime() -> Runtime:
    """Return the process runtime, building it on first call (FastAPI dependency)."""
    global _runtime
    if _runtime is None:
        _runtime = build_runtime()
    return _runtime
