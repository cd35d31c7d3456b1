"""
Integration health checks per (tenant, provider).

A check inspects the stored tokens: missing tokens are an error, expired
tokens trigger one refresh attempt, anything else is healthy. Results are
cached for `cache_ttl`; a cache hit is returned unchanged and does not
extend the entry's lifetime.

Failures are isolated: an unexpected exception in one check is audited and
reported as an `error` result, and cache backend errors are logged and
bypassed, so check_all_integrations() always covers every connected provider.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from sqlmodel import Session, select

from firmsync.audit import AuditLogger
from firmsync.clock import utcnow
from firmsync.models.health import HealthCheckRecord
from firmsync.oauth.manager import OAuthManager
from firmsync.oauth.tokens import OAuthTokenStorage

logger = logging.getLogger(__name__)

CACHE_TTL = timedelta(minutes=5)

STATUS_HEALTHY = "healthy"
STATUS_EXPIRED = "expired"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class HealthCheckResult:
    provider: str
    status: str  # "healthy", "expired", "error"
    last_checked: datetime
    error: Optional[str] = None


# ── Cache backends ────────────────────────────────────────────────────────────

class HealthCache(Protocol):
    def get(self, tenant_id: str, provider: str) -> Optional[Tuple[HealthCheckResult, datetime]]: ...

    def set(self, tenant_id: str, provider: str, result: HealthCheckResult, cached_at: datetime) -> None: ...

    def clear(self) -> None: ...


class InMemoryHealthCache:
    def __init__(self):
        self._entries: Dict[str, Tuple[HealthCheckResult, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: str, provider: str) -> Optional[Tuple[HealthCheckResult, datetime]]:
        with self._lock:
            return self._entries.get(f"{tenant_id}:{provider}")

    def set(self, tenant_id: str, provider: str, result: HealthCheckResult, cached_at: datetime) -> None:
        with self._lock:
            self._entries[f"{tenant_id}:{provider}"] = (result, cached_at)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class SQLHealthCache:
    """HealthCheckRecord-backed cache; survives process restarts."""

    def __init__(self, engine):
        self.engine = engine

    def get(self, tenant_id: str, provider: str) -> Optional[Tuple[HealthCheckResult, datetime]]:
        with Session(self.engine) as s:
            row = self._find(s, tenant_id, provider)
            if row is None:
                return None
            result = HealthCheckResult(
                provider=row.provider,
                status=row.status,
                last_checked=row.last_checked,
                error=row.error,
            )
            return result, row.cached_at

    def set(self, tenant_id: str, provider: str, result: HealthCheckResult, cached_at: datetime) -> None:
        with Session(self.engine) as s:
            row = self._find(s, tenant_id, provider)
            if row is None:
                row = HealthCheckRecord(
                    tenant_id=tenant_id,
                    provider=provider,
                    status=result.status,
                    last_checked=result.last_checked,
                    cached_at=cached_at,
                )
            row.status = result.status
            row.last_checked = result.last_checked
            row.error = result.error
            row.cached_at = cached_at
            s.add(row)
            s.commit()

    def clear(self) -> None:
        with Session(self.engine) as s:
            for row in s.exec(select(HealthCheckRecord)).all():
                s.delete(row)
            s.commit()

    @staticmethod
    def _find(s: Session, tenant_id: str, provider: str) -> Optional[HealthCheckRecord]:
        return s.exec(
            select(HealthCheckRecord).where(
                HealthCheckRecord.tenant_id == tenant_id,
                HealthCheckRecord.provider == provider,
            )
        ).first()


# ── Health check ──────────────────────────────────────────────────────────────

class IntegrationHealthCheck:
    def __init__(
        self,
        oauth_manager: OAuthManager,
        token_storage: OAuthTokenStorage,
        audit_logger: AuditLogger,
        cache: Optional[HealthCache] = None,
        cache_ttl: timedelta = CACHE_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.oauth_manager = oauth_manager
        self.token_storage = token_storage
        self.audit_logger = audit_logger
        self.cache = cache if cache is not None else InMemoryHealthCache()
        self.cache_ttl = cache_ttl
        self._clock = clock

    async def check_integration_health(self, tenant_id: str, provider: str) -> HealthCheckResult:
        """
        Return the cached result if fresh, otherwise compute and cache a new one.

        Unexpected failures during the check become status="error". A cache
        read failure is treated as a miss and a cache write failure is logged,
        so the computed result is still returned.
        """
        try:
            cached = self.cache.get(tenant_id, provider)
        except Exception:
            logger.exception("Health cache read failed for %s (%s)", provider, tenant_id)
            cached = None
        if cached is not None:
            result, cached_at = cached
            if self._clock() - cached_at < self.cache_ttl:
                return result

        try:
            result = await self._compute(tenant_id, provider)
        except Exception as exc:
            message = str(exc) or "Unknown error"
            logger.error("Health check error for %s (%s): %s", provider, tenant_id, message)
            self.audit_logger.log_error(
                "integration_health_check",
                {"tenant_id": tenant_id, "provider": provider, "error": message},
            )
            result = HealthCheckResult(
                provider=provider,
                status=STATUS_ERROR,
                last_checked=self._clock(),
                error=message,
            )

        try:
            self.cache.set(tenant_id, provider, result, self._clock())
        except Exception:
            logger.exception("Health cache write failed for %s (%s)", provider, tenant_id)
        return result

    async def check_all_integrations(self, tenant_id: str) -> List[HealthCheckResult]:
        """Check every provider the tenant has connected, in status order."""
        status = self.oauth_manager.get_integration_status(tenant_id)
        results = []
        for provider, connected in status.items():
            if connected:
                results.append(await self.check_integration_health(tenant_id, provider))
        return results

    def clear_cache(self) -> None:
        self.cache.clear()

    async def _compute(self, tenant_id: str, provider: str) -> HealthCheckResult:
        tokens = self.token_storage.get_tokens(tenant_id, provider)
        if tokens is None:
            return HealthCheckResult(
                provider=provider,
                status=STATUS_ERROR,
                last_checked=self._clock(),
                error="No tokens found",
            )

        expires_at = tokens.expires_at()
        if expires_at is not None and self._clock() >= expires_at:
            try:
                await self.oauth_manager.refresh_tokens(tenant_id, provider)
            except Exception as exc:
                logger.warning("Token refresh failed for %s (%s): %s", provider, tenant_id, exc)
                return HealthCheckResult(
                    provider=provider,
                    status=STATUS_EXPIRED,
                    last_checked=self._clock(),
                    error="Token expired and refresh failed",
                )

        return HealthCheckResult(
            provider=provider,
            status=STATUS_HEALTHY,
            last_checked=self._clock(),
        )
