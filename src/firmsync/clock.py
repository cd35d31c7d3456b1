"""Naive-UTC clock shared by the models and the sync pipeline."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo (SQLite round-trips naive datetimes)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
