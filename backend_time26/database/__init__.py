"""
Database layer: SQLAlchemy ledger tables, engine/session management, and query helpers.

SQLite by default; PostgreSQL via DATABASE_URL.
"""

from backend_time26.database.connection import (
    get_engine,
    get_session_factory,
    init_db,
    reset_engine_for_test,
    session_scope,
)
from backend_time26.database.models import DrawingInterval, LedgerBalance

__all__ = [
    "DrawingInterval",
    "LedgerBalance",
    "get_engine",
    "get_session_factory",
    "init_db",
    "reset_engine_for_test",
    "session_scope",
]
