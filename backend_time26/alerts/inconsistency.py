"""
Critical inconsistency records.

Emitted when the ledger cannot restore itself, e.g. a rollback of a failed mint
debit exhausted its retries and the amount is stuck in pending_burn. Records are
logged at critical level and persisted to ledger_inconsistencies; they are never
auto-resolved.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from backend_time26.database.connection import session_scope
from backend_time26.database.schema import LedgerInconsistency
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

KIND_ROLLBACK_EXHAUSTED = "rollback_exhausted"
KIND_ROLLBACK_REFUSED = "rollback_refused"


@dataclass(frozen=True)
class InconsistencyRecord:
    user_id: str
    amount: int
    kind: str
    detail: str = ""


@runtime_checkable
class InconsistencyReporter(Protocol):
    def emit(self, record: InconsistencyRecord) -> None: ...


class LedgerInconsistencyReporter:
    """Log at critical level, then persist for the operator queue."""

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._factory = session_factory

    def emit(self, record: InconsistencyRecord) -> None:
        logger.critical(
            "ledger_inconsistency",
            user_id=record.user_id,
            amount=str(record.amount),
            kind=record.kind,
            detail=record.detail,
        )
        try:
            with session_scope(self._factory) as session:
                session.add(
                    LedgerInconsistency(
                        user_id=record.user_id,
                        amount=str(record.amount),
                        kind=record.kind,
                        detail=record.detail[:1024],
                        created_at=int(time.time()),
                        resolved=False,
                    )
                )
        except Exception as e:
            # The critical log line above is the record of last resort
            logger.exception("ledger_inconsistency_persist_failed", user_id=record.user_id, error=str(e))


def list_open_inconsistencies(session_factory: sessionmaker | None = None) -> list[dict[str, Any]]:
    with session_scope(session_factory) as session:
        rows = session.execute(
            select(LedgerInconsistency)
            .where(LedgerInconsistency.resolved.is_(False))
            .order_by(LedgerInconsistency.id)
        ).scalars()
        return [
            {
                "id": r.id,
                "user_id": r.user_id,
                "amount": r.amount,
                "kind": r.kind,
                "detail": r.detail,
                "created_at": r.created_at,
            }
            for r in rows
        ]
