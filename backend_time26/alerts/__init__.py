"""
Operator alerts: critical ledger inconsistencies that need manual reconciliation.
"""

from backend_time26.alerts.inconsistency import (
    InconsistencyRecord,
    InconsistencyReporter,
    LedgerInconsistencyReporter,
    list_open_inconsistencies,
)

__all__ = [
    "InconsistencyRecord",
    "InconsistencyReporter",
    "LedgerInconsistencyReporter",
    "list_open_inconsistencies",
]
