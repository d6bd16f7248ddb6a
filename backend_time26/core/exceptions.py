"""
Application-level exceptions.

Routers translate these into HTTP responses; job handlers log and re-raise.
Amounts are integers in the token's smallest unit (wei).
"""

from __future__ import annotations


class Time26Error(Exception):
    """Base class for all TIME26 domain errors."""


class ValidationError(Time26Error):
    """Malformed input (amount, duration, day id, wallet). Never retried."""


class UserNotFoundError(Time26Error):
    def __init__(self, ref: str) -> None:
        super().__init__(f"User not found: {ref}")
        self.ref = ref


class InsufficientBalanceError(Time26Error):
    """Conditional debit refused: available < requested."""

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(f"Insufficient balance: available={available} requested={requested}")
        self.available = available
        self.requested = requested


class LedgerContentionError(Time26Error):
    """Compare-and-swap kept losing to concurrent writers for the same user."""


class SettlementError(Time26Error):
    """Settlement persistence failed; nothing was committed. Safe to re-invoke."""


class ChainError(Time26Error):
    """On-chain read or submission failed with a definite outcome."""


class ChainTimeoutError(ChainError):
    """
    Transaction was sent but its receipt could not be obtained (timeout or RPC failure).

    Outcome unknown: reconcile by tx hash, never resubmit or roll back blindly.
    """

    def __init__(self, tx_hash: str, timeout_sec: float) -> None:
        super().__init__(f"Timed out after {timeout_sec}s waiting for {tx_hash}")
        self.tx_hash = tx_hash
        self.timeout_sec = timeout_sec


class PriceOracleError(Time26Error):
    """Price source unreachable or returned unusable data."""


class SessionNotFoundError(Time26Error):
    """Drawing session missing or owned by someone else."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class AlreadyMintedError(Time26Error):
    def __init__(self, session_id: str, tx_hash: str | None = None) -> None:
        super().__init__(f"Session already minted: {session_id}")
        self.session_id = session_id
        self.tx_hash = tx_hash


class NotEligibleError(Time26Error):
    """Gasless mint refused before any debit. Carries the eligibility result."""

    def __init__(self, result: object) -> None:
        super().__init__("Not eligible for gasless mint")
        self.result = result


class MintFailedError(Time26Error):
    """Sponsored mint failed with a definite outcome after the debit."""

    def __init__(self, message: str, *, rolled_back: bool, amount: int) -> None:
        super().__init__(message)
        self.rolled_back = rolled_back
        self.amount = amount
