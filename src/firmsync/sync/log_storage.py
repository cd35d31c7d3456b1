"""
Append-only storage for completed sync attempts.

SyncLogStorage is the single source of truth for "what happened on the
last sync". Entries are never updated or deleted. Two backends:

  - InMemorySyncLogStorage: process-local list.
  - SQLSyncLogStorage: SyncLog rows via SQLModel; survives restarts.

Ordering is insertion order in both backends (the SQL backend relies on
the autoincrement primary key, not on timestamps).
"""
import json
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Tuple

from sqlmodel import Session, select

from firmsync.models.sync import SyncLog

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class SyncLogEntry:
    tenant_id: str
    provider: str
    status: str
    records_synced: int
    conflicts: int
    started_at: datetime
    finished_at: datetime
    errors: Tuple[str, ...] = ()


class SyncLogStorage(Protocol):
    def log_sync(self, entry: SyncLogEntry) -> None: ...

    def get_latest_status(self, tenant_id: str, provider: str) -> Optional[SyncLogEntry]: ...

    def get_logs(self, tenant_id: str, provider: str) -> List[SyncLogEntry]: ...


class InMemorySyncLogStorage:
    def __init__(self):
        self._entries: List[SyncLogEntry] = []
        self._lock = threading.Lock()

    def log_sync(self, entry: SyncLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def get_latest_status(self, tenant_id: str, provider: str) -> Optional[SyncLogEntry]:
        with self._lock:
            for entry in reversed(self._entries):
                if entry.tenant_id == tenant_id and entry.provider == provider:
                    return entry
        return None

    def get_logs(self, tenant_id: str, provider: str) -> List[SyncLogEntry]:
        with self._lock:
            return [
                e for e in self._entries
                if e.tenant_id == tenant_id and e.provider == provider
            ]


class SQLSyncLogStorage:
    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    def log_sync(self, entry: SyncLogEntry) -> None:
        row = SyncLog(
            tenant_id=entry.tenant_id,
            provider=entry.provider,
            status=entry.status,
            records_synced=entry.records_synced,
            conflicts=entry.conflicts,
            started_at=entry.started_at,
            finished_at=entry.finished_at,
            errors_json=json.dumps(list(entry.errors)),
        )
        with Session(self.engine) as s:
            s.add(row)
            s.commit()

    def get_latest_status(self, tenant_id: str, provider: str) -> Optional[SyncLogEntry]:
        with Session(self.engine) as s:
            row = s.exec(
                self._query(tenant_id, provider).order_by(SyncLog.id.desc())
            ).first()
            return _row_to_entry(row) if row else None

    def get_logs(self, tenant_id: str, provider: str) -> List[SyncLogEntry]:
        with Session(self.engine) as s:
            rows = s.exec(
                self._query(tenant_id, provider).order_by(SyncLog.id)
            ).all()
            return [_row_to_entry(r) for r in rows]

    @staticmethod
    def _query(tenant_id: str, provider: str):
        return select(SyncLog).where(
            SyncLog.tenant_id == tenant_id,
            SyncLog.provider == provider,
        )


def _row_to_entry(row: SyncLog) -> SyncLogEntry:
    return SyncLogEntry(
        tenant_id=row.tenant_id,
        provider=row.provider,
        status=row.status,
        records_synced=row.records_synced,
        conflicts=row.conflicts,
        started_at=row.started_at,
        finished_at=row.finished_at,
        errors=tuple(json.loads(row.errors_json or "[]")),
    )
