"""
Query helpers over the ledger tables. Every function takes an open Session;
callers own the transaction boundary (see connection.session_scope).
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend_time26.database.models import DrawingInterval, LedgerBalance
from backend_time26.database.schema import (
    SESSION_PENDING,
    DailySettlement,
    DrawingSession,
    User,
)


def normalize_wallet(wallet: str) -> str:
    """Lower-case 0x address; raises ValueError when not 20 hex bytes."""
    w = (wallet or "").strip().lower()
    if len(w) != 42 or not w.startswith("0x"):
        raise ValueError(f"Invalid wallet address: {wallet!r}")
    try:
        bytes.fromhex(w[2:])
    except ValueError as e:
        raise ValueError(f"Invalid wallet address: {wallet!r}") from e
    return w


def to_balance(user: User) -> LedgerBalance:
    return LedgerBalance(
        user_id=user.id,
        wallet_address=user.wallet_address,
        balance=int(user.time26_balance or "0"),
        pending_burn=int(user.time26_pending_burn or "0"),
        version=int(user.ledger_version or 0),
    )


def create_user(
    session: Session,
    wallet_address: str,
    *,
    user_id: str | None = None,
    balance: int = 0,
    pending_burn: int = 0,
) -> User:
    """Insert a user row. Registration itself happens upstream; used by seeding and tests."""
    user = User(
        id=user_id or str(uuid.uuid4()),
        wallet_address=normalize_wallet(wallet_address),
        time26_balance=str(balance),
        time26_pending_burn=str(pending_burn),
        ledger_version=0,
        created_at=int(time.time()),
    )
    session.add(user)
    session.flush()
    return user


def get_user(session: Session, user_id: str) -> User | None:
    return session.get(User, user_id)


def get_user_by_wallet(session: Session, wallet_address: str) -> User | None:
    wallet = normalize_wallet(wallet_address)
    return session.execute(select(User).where(User.wallet_address == wallet)).scalar_one_or_none()


def list_positive_balances(session: Session) -> list[tuple[str, int]]:
    """(wallet_address, balance) for every user whose balance is strictly positive."""
    rows = session.execute(select(User.wallet_address, User.time26_balance).order_by(User.wallet_address)).all()
    out: list[tuple[str, int]] = []
    for wallet, balance in rows:
        amount = int(balance or "0")
        if amount > 0:
            out.append((wallet.lower(), amount))
    return out


def settlement_exists(session: Session, day_id: str) -> bool:
    return session.get(DailySettlement, day_id) is not None


def existing_user_ids(session: Session, user_ids: set[str]) -> set[str]:
    """Subset of user_ids that have a users row."""
    if not user_ids:
        return set()
    rows = session.execute(select(User.id).where(User.id.in_(user_ids))).scalars()
    return set(rows)


def record_drawing_session(
    session: Session,
    user_id: str,
    start_time: datetime,
    duration: int,
    *,
    session_id: str | None = None,
    status: str = SESSION_PENDING,
) -> DrawingSession:
    """Insert a drawing session (normally written by the session recorder)."""
    row = DrawingSession(
        id=session_id or str(uuid.uuid4()),
        user_id=user_id,
        start_time=_to_naive_utc(start_time),
        duration=int(duration),
        status=status,
    )
    session.add(row)
    session.flush()
    return row


def fetch_day_intervals(session: Session, start: datetime, end: datetime) -> list[DrawingInterval]:
    """Drawing sessions whose start time falls in [start, end] (inclusive, UTC)."""
    rows = session.execute(
        select(DrawingSession)
        .where(DrawingSession.start_time >= _to_naive_utc(start))
        .where(DrawingSession.start_time <= _to_naive_utc(end))
        .order_by(DrawingSession.start_time, DrawingSession.id)
    ).scalars()
    return [
        DrawingInterval(
            user_id=r.user_id,
            session_id=r.id,
            start_time=r.start_time.replace(tzinfo=timezone.utc),
            duration_seconds=int(r.duration or 0),
        )
        for r in rows
    ]


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
