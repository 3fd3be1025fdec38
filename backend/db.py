import functools
import logging
import os
import sqlite3
import threading
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from errors import PersistenceError

logger = logging.getLogger(__name__)

# Get database URL from environment, default to SQLite for local dev
db_path = os.getenv("DATABASE_PATH", "./delivery.db")
env = os.getenv("ENV", os.getenv("RENDER", "").lower() or "dev")

if os.getenv("DATABASE_URL"):
    DATABASE_URL = os.getenv("DATABASE_URL")
else:
    # Guard against SQLite fallback in production
    if env in ("prod", "production") or os.getenv("RENDER"):
        raise RuntimeError(
            "DATABASE_URL missing in production; refusing to start with SQLite. "
            "Please configure DATABASE_URL environment variable."
        )
    DATABASE_URL = f"sqlite:///{db_path}"

# Render provides postgres:// but SQLAlchemy needs postgresql://
if DATABASE_URL and DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

db_driver = DATABASE_URL.split(":", 1)[0] if ":" in DATABASE_URL else "unknown"
logger.info(f"DB_URL_DRIVER={db_driver}")

# Calendar-day boundary; unset means the host's local zone
APP_TIMEZONE = os.getenv("APP_TIMEZONE")

engine = create_engine(
    DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

# One store operation at a time
_store_lock = threading.RLock()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_db_and_tables():
    """Create database and tables if they don't exist.
    This is safe to call multiple times - it won't wipe existing data.
    """
    import models  # noqa: F401  (registers tables on SQLModel.metadata)

    SQLModel.metadata.create_all(engine)


def get_session():
    """Get database session."""
    with Session(engine) as session:
        yield session


def serialized(func):
    """Run a store operation under the process-wide store lock."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with _store_lock:
            return func(*args, **kwargs)

    return wrapper


def commit(session: Session) -> None:
    """Commit the session, rolling back and raising PersistenceError on failure."""
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Commit failed, rolled back: {e}")
        raise PersistenceError(str(e)) from e


def execute(session: Session, statement):
    """Run a write statement, rolling back and raising PersistenceError on failure."""
    try:
        return session.exec(statement)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Statement failed, rolled back: {e}")
        raise PersistenceError(str(e)) from e


def local_now() -> datetime:
    """Current wall-clock time in the configured zone, as a naive datetime."""
    if APP_TIMEZONE:
        return datetime.now(ZoneInfo(APP_TIMEZONE)).replace(tzinfo=None)
    return datetime.now()


def day_bounds(start: date, end: date | None = None) -> tuple[datetime, datetime]:
    """Half-open [start 00:00, day after end 00:00) range covering whole calendar days."""
    end = end or start
    return datetime.combine(start, time.min), datetime.combine(end + timedelta(days=1), time.min)
