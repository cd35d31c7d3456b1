"""Stored OAuth credentials, one row per (tenant, provider)."""
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from firmsync.clock import utcnow


class OAuthToken(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("tenant_id", "provider"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: str = Field(index=True)
    provider: str
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: Optional[int] = None  # seconds, relative to created_at
    created_at: Optional[datetime] = Field(default_factory=utcnow)
