"""
APScheduler jobs for background integration work.

  - One cron job per configured (tenant, provider) sync (Settings.sync_schedules)
  - A daily health check across every tenant with stored tokens; any
    non-healthy integration is audited as a warning

The scheduler runs inside the `python -m firmsync` process (wired in
__main__.py); the API process only serves on-demand triggers.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from firmsync.health.check import STATUS_HEALTHY
from firmsync.runtime import Runtime

logger = logging.getLogger(__name__)


def build_scheduler(runtime: Runtime) -> AsyncIOScheduler:
    """
    Configure the runtime's scheduler with all background jobs.

    Args:
        runtime: Wired collaborators; its SyncEngine owns the scheduler.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = runtime.settings
    scheduler = runtime.sync_engine.scheduler

    scheduler.add_job(
        integration_health_check,
        trigger="cron",
        hour=settings.health_check_hour,
        minute=0,
        id="integration_health_check",
        replace_existing=True,
        kwargs={"runtime": runtime},
    )

    for schedule in settings.sync_schedules:
        try:
            runtime.sync_engine.schedule_sync(
                schedule["tenant_id"], schedule["provider"], schedule["cron"]
            )
        except (KeyError, ValueError) as exc:
            logger.error("Ignoring invalid sync schedule %s: %s", schedule, exc)

    return scheduler


async def integration_health_check(runtime: Runtime) -> int:
    """
    Check every tenant's integrations and audit the unhealthy ones.

    Returns:
        Number of non-healthy integrations found. Per-tenant failures are
        logged and do not stop the sweep.
    """
    tenants = runtime.token_storage.list_tenants()
    logger.info("Integration health check starting for %d tenants", len(tenants))

    unhealthy = 0
    for tenant_id in tenants:
        try:
            results = await runtime.health_check.check_all_integrations(tenant_id)
        except Exception as exc:
            logger.error("Health check failed for tenant %s: %s", tenant_id, exc)
            continue

        for result in results:
            if result.status == STATUS_HEALTHY:
                continue
            unhealthy += 1
            runtime.audit_logger.log_warning(
                "integration_health",
                {
                    "tenant_id": tenant_id,
                    "provider": result.provider,
                    "status": result.status,
                    "error": result.error,
                },
            )

    logger.info("Integration health check finished: %d unhealthy", unhealthy)
    return unhealthy
