"""
Main entrypoint: runs the integration scheduler in one process.

FastAPI runs separately under uvicorn (for status queries and on-demand syncs).

Usage:
    python -m firmsync                 # starts scheduler (scheduled syncs + daily health check)
    python -m firmsync health-check    # one-shot health check across all tenants
    uvicorn firmsync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_health_check() -> int:
    from firmsync.runtime import build_runtime
    from firmsync.scheduler.jobs import integration_health_check

    runtime = build_runtime()
    try:
        await integration_health_check(runtime)
    except Exception:
        logger.exception("Health check failed")
        return 1
    logger.info("Health check completed successfully")
    return 0


async def _run_scheduler() -> None:
    from firmsync.runtime import build_runtime
    from firmsync.scheduler.jobs import build_scheduler

    runtime = build_runtime()
    scheduler = build_scheduler(runtime)
    scheduler.start()
    logger.info(
        "Scheduler started (%d scheduled syncs, health check at %02d:00 UTC)",
        len(runtime.sync_engine.scheduled_syncs()),
        runtime.settings.health_check_hour,
    )

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


if __name__ == "__main__":
    # Dispatch on first argument: `python -m firmsync health-check` or just `python -m firmsync`
    if len(sys.argv) > 1 and sys.argv[1] == "health-check":
        sys.exit(asyncio.run(_run_health_check()))
    else:
        asyncio.run(_run_scheduler())
