"""
Balance ledger: per-user TIME26 balance and pending burn with atomic mutations.
"""

from backend_time26.ledger.balance_ledger import (
    BalanceLedger,
    apply_credit,
    load_balance,
)

__all__ = ["BalanceLedger", "apply_credit", "load_balance"]
