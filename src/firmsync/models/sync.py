"""Sync audit log model."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from firmsync.clock import utcnow


class SyncLog(SQLModel, table=True):
    """One row per completed sync attempt (append-only)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: str = Field(index=True)
    provider: str = Field(index=True)
    status: str  # "success", "error"
    records_synced: int = 0
    conflicts: int = 0
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime = Field(default_factory=utcnow)
    errors_json: str = "[]"  # JSON list of error messages, attempt order
