"""
Domain records passed between the ledger store and the reward/claim layers.

Plain dataclasses; no ORM coupling. Amounts are Python ints in wei.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class DrawingInterval:
    """One completed drawing session: who drew, when it started, how long."""

    user_id: str
    session_id: str
    start_time: datetime
    """Timezone-aware UTC start."""
    duration_seconds: int


@dataclass(frozen=True)
class LedgerBalance:
    """Point-in-time ledger state for one user."""

    user_id: str
    wallet_address: str
    balance: int
    pending_burn: int
    version: int

    def to_dict(self) -> dict[str, str]:
        return {"balance": str(self.balance), "pendingBurn": str(self.pending_burn)}
