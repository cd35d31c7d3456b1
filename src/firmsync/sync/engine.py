"""
SyncEngine: recurring and on-demand entry points into SyncService.

Scheduled syncs are APScheduler cron jobs, one per (tenant, provider),
with job id "sync:{tenant_id}:{provider}". Re-scheduling a pair replaces
its job.

Overlap policy: skip if in flight. When a scheduled firing finds the same
pair already running (a slow scheduled run or a real-time trigger), the
firing is logged and dropped. Real-time triggers always run.
"""
import logging
from collections import Counter
from typing import Counter as CounterType, List, Tuple

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from firmsync.sync.service import SyncResult, SyncService

logger = logging.getLogger(__name__)


def sync_job_id(tenant_id: str, provider: str) -> str:
    return f"sync:{tenant_id}:{provider}"


class SyncEngine:
    def __init__(self, sync_service: SyncService, scheduler: AsyncIOScheduler):
        """
        Args:
            sync_service: Performs the actual syncs.
            scheduler: APScheduler instance the cron jobs are added to.
                The engine never starts or stops it.
        """
        self.sync_service = sync_service
        self.scheduler = scheduler
        self._in_flight: CounterType[Tuple[str, str]] = Counter()

    def schedule_sync(self, tenant_id: str, provider: str, cron_expression: str) -> None:
        """
        Register a recurring sync using a standard 5-field crontab expression.

        Raises:
            ValueError: if cron_expression is not a valid crontab expression.
        """
        trigger = CronTrigger.from_crontab(cron_expression)
        # replace_existing is not applied to jobs added before scheduler.start()
        self.unschedule_sync(tenant_id, provider)
        self.scheduler.add_job(
            self._run_scheduled,
            trigger=trigger,
            id=sync_job_id(tenant_id, provider),
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            kwargs={"tenant_id": tenant_id, "provider": provider},
        )
        logger.info("Scheduled %s sync for %s: %s", provider, tenant_id, cron_expression)

    def unschedule_sync(self, tenant_id: str, provider: str) -> bool:
        """Remove a scheduled sync. Returns False if none was registered."""
        try:
            self.scheduler.remove_job(sync_job_id(tenant_id, provider))
        except JobLookupError:
            return False
        return True

    def scheduled_syncs(self) -> List[str]:
        return sorted(
            job.id for job in self.scheduler.get_jobs() if job.id.startswith("sync:")
        )

    def is_in_flight(self, tenant_id: str, provider: str) -> bool:
        return self._in_flight[(tenant_id, provider)] > 0

    async def trigger_real_time_sync(self, tenant_id: str, provider: str) -> SyncResult:
        key = (tenant_id, provider)
        self._in_flight[key] += 1
        try:
            return await self.sync_service.trigger_real_time_sync(tenant_id, provider)
        finally:
            self._release(key)

    async def _run_scheduled(self, tenant_id: str, provider: str) -> None:
        """Job body for one cron firing."""
        key = (tenant_id, provider)
        if self._in_flight[key] > 0:
            logger.info("Skipping scheduled %s sync for %s: already in flight", provider, tenant_id)
            return

        self._in_flight[key] += 1
        try:
            result = await self.sync_service.sync_provider(tenant_id, provider, real_time=False)
        finally:
            self._release(key)

        if result.success:
            logger.info("Scheduled %s sync for %s: %d records", provider, tenant_id, result.records_synced)
        else:
            logger.warning("Scheduled %s sync for %s failed: %s", provider, tenant_id, result.errors)

    def _release(self, key: Tuple[str, str]) -> None:
        self._in_flight[key] -= 1
        if self._in_flight[key] <= 0:
            del self._in_flight[key]
