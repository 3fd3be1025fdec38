import os
import tempfile

# Point the app at a throwaway database before anything imports db
os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.mkdtemp(), "test_delivery.db"))

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

import credentials  # noqa: E402
import models  # noqa: E402


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    """Keep PBKDF2 cheap in tests."""
    monkeypatch.setattr(credentials, "PBKDF2_ITERATIONS", 1_000)


@pytest.fixture(scope="function")
def session():
    """A session on a fresh in-memory database."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture
def add_entry(session):
    """Insert an entry with an explicit timestamp."""

    def _add(user_id: int, code: str, count: int, created_at: datetime, comment: str | None = None):
        entry = models.Entry(user_id=user_id, code=code, count=count, comment=comment, created_at=created_at)
        session.add(entry)
        session.commit()
        session.refresh(entry)
        return entry

    return _add
