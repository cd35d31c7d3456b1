"""
OAuth token storage.

Tokens are keyed by (tenant_id, provider). Two backends share the
OAuthTokenStorage protocol:

  - InMemoryTokenStorage: dict-backed, used in tests and local runs.
  - SQLTokenStorage: persists OAuthToken rows through SQLModel.

Both return fresh Tokens values; callers never hold a reference into the
backend's internal state. Saving stamps `created_at` with the storage clock
when the caller leaves it unset, so `expires_in` is measured from the save.
"""
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from sqlmodel import Session, select

from firmsync.clock import utcnow
from firmsync.models.tokens import OAuthToken


@dataclass(frozen=True)
class Tokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None  # seconds
    created_at: Optional[datetime] = None
    token_type: str = "Bearer"

    def expires_at(self) -> Optional[datetime]:
        """Absolute expiry, or None when it cannot be determined.

        An expires_in of 0 means the provider gave no lifetime.
        """
        if not self.expires_in or self.created_at is None:
            return None
        return self.created_at + timedelta(seconds=self.expires_in)


class OAuthTokenStorage(Protocol):
    def get_tokens(self, tenant_id: str, provider: str) -> Optional[Tokens]: ...

    def save_tokens(self, tenant_id: str, provider: str, tokens: Tokens) -> None: ...

    def delete_tokens(self, tenant_id: str, provider: str) -> None: ...

    def list_providers(self, tenant_id: str) -> List[str]: ...

    def list_tenants(self) -> List[str]: ...


class InMemoryTokenStorage:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._tokens: Dict[Tuple[str, str], Tokens] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get_tokens(self, tenant_id: str, provider: str) -> Optional[Tokens]:
        with self._lock:
            return self._tokens.get((tenant_id, provider))

    def save_tokens(self, tenant_id: str, provider: str, tokens: Tokens) -> None:
        with self._lock:
            self._tokens[(tenant_id, provider)] = replace(
                tokens, created_at=tokens.created_at or self._clock()
            )

    def delete_tokens(self, tenant_id: str, provider: str) -> None:
        with self._lock:
            self._tokens.pop((tenant_id, provider), None)

    def list_providers(self, tenant_id: str) -> List[str]:
        with self._lock:
            return sorted(p for (t, p) in self._tokens if t == tenant_id)

    def list_tenants(self) -> List[str]:
        with self._lock:
            return sorted({t for (t, _) in self._tokens})


class SQLTokenStorage:
    def __init__(self, engine, clock: Callable[[], datetime] = utcnow):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            clock: Stamps created_at on saves that leave it unset.
        """
        self.engine = engine
        self._clock = clock

    def get_tokens(self, tenant_id: str, provider: str) -> Optional[Tokens]:
        with Session(self.engine) as s:
            row = self._find(s, tenant_id, provider)
            return _row_to_tokens(row) if row else None

    def save_tokens(self, tenant_id: str, provider: str, tokens: Tokens) -> None:
        """Insert or replace the tokens for (tenant_id, provider)."""
        with Session(self.engine) as s:
            row = self._find(s, tenant_id, provider)
            if row is None:
                row = OAuthToken(
                    tenant_id=tenant_id,
                    provider=provider,
                    access_token=tokens.access_token,
                )
            row.access_token = tokens.access_token
            row.refresh_token = tokens.refresh_token
            row.expires_in = tokens.expires_in
            row.token_type = tokens.token_type
            row.created_at = tokens.created_at or self._clock()
            s.add(row)
            s.commit()

    def delete_tokens(self, tenant_id: str, provider: str) -> None:
        with Session(self.engine) as s:
            row = self._find(s, tenant_id, provider)
            if row is not None:
                s.delete(row)
                s.commit()

    def list_providers(self, tenant_id: str) -> List[str]:
        with Session(self.engine) as s:
            rows = s.exec(
                select(OAuthToken.provider)
                .where(OAuthToken.tenant_id == tenant_id)
                .order_by(OAuthToken.provider)
            ).all()
        return list(rows)

    def list_tenants(self) -> List[str]:
        with Session(self.engine) as s:
            rows = s.exec(
                select(OAuthToken.tenant_id).distinct().order_by(OAuthToken.tenant_id)
            ).all()
        return list(rows)

    @staticmethod
    def _find(s: Session, tenant_id: str, provider: str) -> Optional[OAuthToken]:
        return s.exec(
            select(OAuthToken).where(
                OAuthToken.tenant_id == tenant_id,
                OAuthToken.provider == provider,
            )
        ).first()


def _row_to_tokens(row: OAuthToken) -> Tokens:
    return Tokens(
        access_token=row.access_token,
        refresh_token=row.refresh_token,
        expires_in=row.expires_in,
        created_at=row.created_at,
        token_type=row.token_type,
    )
