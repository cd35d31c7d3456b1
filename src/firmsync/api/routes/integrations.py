"""Integration sync status, trigger and health routes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from firmsync.health.check import HealthCheckResult
from firmsync.runtime import Runtime, get_runtime
from firmsync.sync.log_storage import SyncLogEntry
from firmsync.sync.service import SyncResult

router = APIRouter()


class SyncStatusResponse(BaseModel):
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    records_synced: Optional[int] = None
    conflicts: Optional[int] = None
    errors: List[str] = []


class SyncResultResponse(BaseModel):
    success: bool
    records_synced: int
    errors: List[str]
    conflicts: int
    started_at: datetime
    finished_at: datetime


class HealthResponse(BaseModel):
    provider: str
    status: str
    last_checked: datetime
    error: Optional[str] = None


def _status_response(entry: SyncLogEntry) -> SyncStatusResponse:
    return SyncStatusResponse(
        status=entry.status,
        started_at=entry.started_at,
        finished_at=entry.finished_at,
        records_synced=entry.records_synced,
        conflicts=entry.conflicts,
        errors=list(entry.errors),
    )


def _health_response(result: HealthCheckResult) -> HealthResponse:
    return HealthResponse(
        provider=result.provider,
        status=result.status,
        last_checked=result.last_checked,
        error=result.error,
    )


@router.get("/health", response_model=List[HealthResponse])
async def all_integrations_health(
    tenant_id: str = Query(...),
    runtime: Runtime = Depends(get_runtime),
):
    """Health of every integration the tenant has connected."""
    results = await runtime.health_check.check_all_integrations(tenant_id)
    return [_health_response(r) for r in results]


@router.get("/{provider}/status", response_model=SyncStatusResponse)
def sync_status(
    provider: str,
    tenant_id: str = Query(...),
    runtime: Runtime = Depends(get_runtime),
):
    """Return the outcome of the most recent sync for this provider."""
    entry = runtime.sync_service.get_sync_status(tenant_id, provider)
    if entry is None:
        return SyncStatusResponse(status="never_run")
    return _status_response(entry)


@router.get("/{provider}/logs", response_model=List[SyncStatusResponse])
def sync_logs(
    provider: str,
    tenant_id: str = Query(...),
    runtime: Runtime = Depends(get_runtime),
):
    """Full sync history for this provider, oldest first."""
    return [_status_response(e) for e in runtime.sync_service.get_sync_logs(tenant_id, provider)]


@router.post("/{provider}/sync", response_model=SyncResultResponse)
async def trigger_sync(
    provider: str,
    tenant_id: str = Query(...),
    runtime: Runtime = Depends(get_runtime),
):
    """
    Run a real-time sync and return its result.

    Failures are reported in the body (success=false), not as HTTP errors.
    """
    result: SyncResult = await runtime.sync_engine.trigger_real_time_sync(tenant_id, provider)
    return SyncResultResponse(
        success=result.success,
        records_synced=result.records_synced,
        errors=result.errors,
        conflicts=result.conflicts,
        started_at=result.started_at,
        finished_at=result.finished_at,
    )


@router.get("/{provider}/health", response_model=HealthResponse)
async def integration_health(
    provider: str,
    tenant_id: str = Query(...),
    runtime: Runtime = Depends(get_runtime),
):
    result = await runtime.health_check.check_integration_health(tenant_id, provider)
    return _health_response(result)
