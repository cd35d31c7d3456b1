"""Shared test fixtures."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from firmsync.models.audit import AuditEvent  # noqa: F401
from firmsync.models.health import HealthCheckRecord  # noqa: F401
from firmsync.models.sync import SyncLog  # noqa: F401
from firmsync.models.tokens import OAuthToken  # noqa: F401


class FakeClock:
    """Manually advanced clock; call it to read the current time."""

    def __init__(self, start: datetime = datetime(2025, 1, 15, 9, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()
