"""
SQLAlchemy models for the TIME26 ledger.

Token amounts are stored as unsigned-integer decimal strings (wei) so values beyond
64-bit integers survive every backend unchanged. Arithmetic happens on Python ints.
Timestamps are Unix seconds, except drawing session start times (naive UTC datetimes).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

AMOUNT_LEN = 80  # uint256 has at most 78 decimal digits

SESSION_PENDING = "PENDING"
SESSION_SETTLED = "SETTLED"
SESSION_MINTED = "MINTED"


class User(Base):
    """
    Ledger view of a user: claimable balance and amount awaiting burn.

    ledger_version increments on every balance mutation; writers update with
    WHERE ledger_version = <read version> so concurrent mutations never lose updates.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    wallet_address = Column(String(42), unique=True, nullable=False, index=True)
    time26_balance = Column(String(AMOUNT_LEN), nullable=False, default="0")
    time26_pending_burn = Column(String(AMOUNT_LEN), nullable=False, default="0")
    ledger_version = Column(Integer, nullable=False, default=0)
    created_at = Column(Integer, nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "wallet_address": self.wallet_address,
            "time26_balance": self.time26_balance,
            "time26_pending_burn": self.time26_pending_burn,
            "ledger_version": self.ledger_version,
        }


class DrawingSession(Base):
    """Completed drawing session, written by the session recorder. Read-mostly here."""

    __tablename__ = "drawing_sessions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False, index=True)  # naive UTC
    duration = Column(Integer, nullable=False, default=0)  # seconds
    status = Column(String(16), nullable=False, default=SESSION_PENDING, index=True)
    tx_hash = Column(String(80), nullable=True)


class DailySettlement(Base):
    """One row per settled UTC day. The primary key is the idempotency gate."""

    __tablename__ = "daily_rewards"

    day_id = Column(String(10), primary_key=True)  # YYYY-MM-DD
    total_budget = Column(String(AMOUNT_LEN), nullable=False)
    total_seconds = Column(Integer, nullable=False)
    total_distributed = Column(String(AMOUNT_LEN), nullable=False)
    participant_count = Column(Integer, nullable=False)
    contract_balance_before = Column(String(AMOUNT_LEN), nullable=True)
    contract_balance_after = Column(String(AMOUNT_LEN), nullable=True)
    settled_at = Column(Integer, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_id": self.day_id,
            "total_budget": self.total_budget,
            "total_seconds": self.total_seconds,
            "total_distributed": self.total_distributed,
            "participant_count": self.participant_count,
            "contract_balance_before": self.contract_balance_before,
            "contract_balance_after": self.contract_balance_after,
            "settled_at": self.settled_at,
        }


class UserDailyReward(Base):
    """Per-user reward breakdown for a settled day."""

    __tablename__ = "user_daily_rewards"
    __table_args__ = (UniqueConstraint("user_id", "day_id", name="uq_user_daily_rewards_user_day"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    day_id = Column(String(10), nullable=False, index=True)
    total_seconds = Column(Integer, nullable=False)
    exclusive_seconds = Column(Integer, nullable=False)
    shared_seconds = Column(Integer, nullable=False)
    base_reward = Column(String(AMOUNT_LEN), nullable=False)
    bonus_reward = Column(String(AMOUNT_LEN), nullable=False)
    total_reward = Column(String(AMOUNT_LEN), nullable=False)
    created_at = Column(Integer, nullable=False)


class LedgerTransaction(Base):
    """Append-only audit trail of ledger mutations. amount is always positive."""

    __tablename__ = "time26_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(String(50), nullable=False, index=True)
    direction = Column(String(10), nullable=False)  # credit | debit
    amount = Column(String(AMOUNT_LEN), nullable=False)
    balance_before = Column(String(AMOUNT_LEN), nullable=False)
    balance_after = Column(String(AMOUNT_LEN), nullable=False)
    reference_id = Column(String(100), nullable=True, index=True)
    reference_type = Column(String(50), nullable=True)
    description = Column(String(500), nullable=True)
    created_at = Column(Integer, nullable=False, index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "direction": self.direction,
            "amount": self.amount,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "description": self.description,
            "created_at": self.created_at,
        }


class RewardsMerkleSnapshot(Base):
    """Entries committed with each on-chain rewards root update."""

    __tablename__ = "rewards_merkle_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    merkle_root = Column(String(66), nullable=False, index=True)
    entries_json = Column(Text, nullable=False)
    entry_count = Column(Integer, nullable=False)
    tx_hash = Column(String(80), nullable=True)
    created_at = Column(Integer, nullable=False)


class GaslessMint(Base):
    """Sponsored mint paid from the off-chain balance; pending rows await reconciliation."""

    __tablename__ = "gasless_mints"

    tx_hash = Column(String(80), primary_key=True)
    user_id = Column(String(36), nullable=False, index=True)
    session_id = Column(String(36), nullable=False, index=True)
    amount = Column(String(AMOUNT_LEN), nullable=False)
    status = Column(String(16), nullable=False, index=True)  # pending | minted | rolled_back
    token_id = Column(String(80), nullable=True)
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)


class LedgerInconsistency(Base):
    """Operator-visible record of a ledger state that needs manual reconciliation."""

    __tablename__ = "ledger_inconsistencies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    amount = Column(String(AMOUNT_LEN), nullable=False)
    kind = Column(String(50), nullable=False, index=True)
    detail = Column(String(1024), nullable=True)
    created_at = Column(Integer, nullable=False)
    resolved = Column(Boolean, nullable=False, default=False, index=True)
