"""
Database engine and session management.

DATABASE_URL selects PostgreSQL (or any SQLAlchemy URL); otherwise SQLite at DB_PATH.
The engine is created lazily and cached per process; tests reset it between runs.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from backend_time26.config import get_settings
from backend_time26.database.schema import Base
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def _redact(url: str) -> str:
    return url.split("?")[0].split("@")[-1].split("//")[-1]


def get_engine() -> Engine:
    """Create or return the cached engine."""
    global _engine
    if _engine is None:
        url = get_settings().database_url
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        _engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        logger.info("ledger_engine_created", url=_redact(url))
    return _engine


def get_session_factory() -> sessionmaker:
    """Return session factory bound to the cached engine."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """One unit of work: commits on success, rolls back on any error."""
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Create ledger tables if they do not exist. Safe to call on every startup."""
    try:
        Base.metadata.create_all(bind=get_engine())
        logger.info("ledger_init_db", url=_redact(get_settings().database_url))
    except Exception as e:
        logger.exception("ledger_init_db_failed", error=str(e))
        raise


def reset_engine_for_test() -> None:
    """Dispose and forget the cached engine and session factory. Tests only."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
