"""
Engine and session factory.

SQLite (local dev, tests) runs on a single shared connection; PostgreSQL
gets a pre-pinged pool. Routers take a session from `get_db`; background
work (outbox dispatch, notification delivery, startup) uses `session_scope`.
"""

from contextlib import contextmanager
from typing import Generator, Iterator
import logging
import os

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from lisbonlovesme.core.config import settings
from lisbonlovesme.db.models import Base

logger = logging.getLogger(__name__)

_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))


def _sqlite_url(url: str) -> str:
    """Anchor `sqlite:///./file.db` to the backend directory."""
    path = url.replace("sqlite:///", "", 1)
    if path.startswith("./"):
        return f"sqlite:///{os.path.join(_BACKEND_DIR, path[2:])}"
    return url


if settings.database_url.startswith("sqlite"):
    engine = create_engine(
        _sqlite_url(settings.database_url),
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        # ondelete rules (article parents, booking rows) are only enforced with this on
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    engine = create_engine(
        settings.database_url,
        poolclass=QueuePool,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=settings.database_pool_pre_ping,
        pool_timeout=30,
        connect_args={"connect_timeout": 10, "application_name": "lisbonlovesme-api"},
    )

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for work outside a request. Rolls back on error; callers commit."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=engine)
