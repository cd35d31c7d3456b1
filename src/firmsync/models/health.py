"""Persisted health-check cache rows."""
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class HealthCheckRecord(SQLModel, table=True):
    """Latest cached health result for a (tenant, provider) pair."""

    __table_args__ = (UniqueConstraint("tenant_id", "provider"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: str = Field(index=True)
    provider: str
    status: str  # "healthy", "expired", "error"
    last_checked: datetime
    error: Optional[str] = None
    cached_at: datetime
