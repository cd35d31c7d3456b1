"""Audit events raised by the sync pipeline and health checks."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from firmsync.clock import utcnow


class AuditEvent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    level: str  # "error", "warning"
    context: str = Field(index=True)  # e.g. "sync_service", "integration_health_check"
    tenant_id: Optional[str] = Field(default=None, index=True)
    provider: Optional[str] = None
    details_json: str = "{}"
    created_at: datetime = Field(default_factory=utcnow)
