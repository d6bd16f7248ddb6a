"""
Settlement: idempotent daily reward booking.
"""

from backend_time26.settlement.engine import SettlementOrchestrator, SettlementResult

__all__ = ["SettlementOrchestrator", "SettlementResult"]
