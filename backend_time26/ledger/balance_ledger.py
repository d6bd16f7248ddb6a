"""
Per-user balance ledger.

State per user: (time26_balance, time26_pending_burn, ledger_version). Every mutation
is one compare-and-swap UPDATE guarded by ledger_version, so two writers racing on
the same user can never lose an update: the loser sees rowcount 0, re-reads, and
re-decides. Every successful mutation appends a time26_transactions audit row in
the same transaction.

Operations:
- credit: balance += amount (settlement, rollback).
- conditional_debit: balance -= amount, pending_burn += amount, only if balance >= amount.
- rollback: reverse a conditional_debit after the dependent action failed. Retried
  with backoff; exhaustion is reported as a critical inconsistency, never auto-resolved.
"""

from __future__ import annotations

import time
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from backend_time26.alerts.inconsistency import (
    KIND_ROLLBACK_EXHAUSTED,
    KIND_ROLLBACK_REFUSED,
    InconsistencyRecord,
    InconsistencyReporter,
    LedgerInconsistencyReporter,
)
from backend_time26.core.exceptions import (
    InsufficientBalanceError,
    LedgerContentionError,
    UserNotFoundError,
    ValidationError,
)
from backend_time26.database.connection import session_scope
from backend_time26.database.models import LedgerBalance
from backend_time26.database.repositories import normalize_wallet, to_balance
from backend_time26.database.schema import LedgerTransaction, User
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

DEFAULT_CAS_ATTEMPTS = 5
DEFAULT_ROLLBACK_ATTEMPTS = 3
DEFAULT_ROLLBACK_BACKOFF_SEC = 1.0

TX_DAILY_REWARD = "daily_reward"
TX_SPEND = "spend"
TX_NFT_MINT_PAYMENT = "nft_mint_payment"
TX_ROLLBACK = "rollback"


def _require_positive(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"amount must be an integer, got {type(amount).__name__}")
    if amount <= 0:
        raise ValidationError("amount must be positive")
    return amount


def load_balance(session: Session, user_id: str, *, for_update: bool = False) -> LedgerBalance:
    stmt = select(User).where(User.id == user_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    user = session.execute(stmt).scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(user_id)
    return to_balance(user)


def _compare_and_swap(session: Session, current: LedgerBalance, balance: int, pending_burn: int) -> bool:
    """Single conditional UPDATE; True when this writer won."""
    result = session.execute(
        update(User)
        .where(User.id == current.user_id)
        .where(User.ledger_version == current.version)
        .values(
            time26_balance=str(balance),
            time26_pending_burn=str(pending_burn),
            ledger_version=current.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _append_transaction(
    session: Session,
    current: LedgerBalance,
    *,
    tx_type: str,
    direction: str,
    amount: int,
    balance_after: int,
    reference_id: str | None,
    reference_type: str | None,
    description: str | None,
) -> None:
    session.add(
        LedgerTransaction(
            user_id=current.user_id,
            type=tx_type,
            direction=direction,
            amount=str(amount),
            balance_before=str(current.balance),
            balance_after=str(balance_after),
            reference_id=reference_id,
            reference_type=reference_type,
            description=(description or "")[:500] or None,
            created_at=int(time.time()),
        )
    )


def apply_credit(
    session: Session,
    user_id: str,
    amount: int,
    *,
    tx_type: str = TX_DAILY_REWARD,
    reference_id: str | None = None,
    reference_type: str | None = None,
    description: str | None = None,
) -> LedgerBalance:
    """
    Credit inside the caller's transaction (used by settlement so the credit commits
    or rolls back together with the settlement rows). Locks the row where the backend
    supports it; a lost CAS raises LedgerContentionError and the caller rolls back.
    """
    _require_positive(amount)
    current = load_balance(session, user_id, for_update=True)
    new_balance = current.balance + amount
    if not _compare_and_swap(session, current, new_balance, current.pending_burn):
        raise LedgerContentionError(f"Concurrent update while crediting {user_id}")
    _append_transaction(
        session,
        current,
        tx_type=tx_type,
        direction="credit",
        amount=amount,
        balance_after=new_balance,
        reference_id=reference_id,
        reference_type=reference_type,
        description=description,
    )
    return LedgerBalance(
        user_id=current.user_id,
        wallet_address=current.wallet_address,
        balance=new_balance,
        pending_burn=current.pending_burn,
        version=current.version + 1,
    )


class BalanceLedger:
    """Ledger operations, each in its own unit of work."""

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        reporter: InconsistencyReporter | None = None,
        *,
        cas_attempts: int = DEFAULT_CAS_ATTEMPTS,
        rollback_attempts: int = DEFAULT_ROLLBACK_ATTEMPTS,
        rollback_backoff_sec: float = DEFAULT_ROLLBACK_BACKOFF_SEC,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._factory = session_factory
        self._reporter = reporter or LedgerInconsistencyReporter(session_factory)
        self._cas_attempts = max(1, cas_attempts)
        self._rollback_attempts = max(1, rollback_attempts)
        self._rollback_backoff_sec = rollback_backoff_sec
        self._sleep = sleep

    def get_balance(self, user_id: str) -> LedgerBalance:
        with session_scope(self._factory) as session:
            return load_balance(session, user_id)

    def get_balance_by_wallet(self, wallet_address: str) -> LedgerBalance:
        try:
            wallet = normalize_wallet(wallet_address)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        with session_scope(self._factory) as session:
            user = session.execute(select(User).where(User.wallet_address == wallet)).scalar_one_or_none()
            if user is None:
                raise UserNotFoundError(wallet)
            return to_balance(user)

    def credit(
        self,
        user_id: str,
        amount: int,
        *,
        tx_type: str = TX_DAILY_REWARD,
        reference_id: str | None = None,
        reference_type: str | None = None,
        description: str | None = None,
    ) -> LedgerBalance:
        """Unconditional balance += amount."""
        _require_positive(amount)
        for attempt in range(1, self._cas_attempts + 1):
            try:
                with session_scope(self._factory) as session:
                    updated = apply_credit(
                        session,
                        user_id,
                        amount,
                        tx_type=tx_type,
                        reference_id=reference_id,
                        reference_type=reference_type,
                        description=description,
                    )
                logger.info("ledger_credit", user_id=user_id, amount=str(amount), balance=str(updated.balance))
                return updated
            except LedgerContentionError:
                logger.debug("ledger_cas_conflict", op="credit", user_id=user_id, attempt=attempt)
        raise LedgerContentionError(f"credit for {user_id} lost {self._cas_attempts} races")

    def conditional_debit(
        self,
        user_id: str,
        amount: int,
        *,
        tx_type: str = TX_SPEND,
        reference_id: str | None = None,
        reference_type: str | None = None,
        description: str | None = None,
    ) -> LedgerBalance:
        """
        Move amount from balance to pending_burn iff balance >= amount.

        Raises InsufficientBalanceError (nothing written) when funds are short.
        """
        _require_positive(amount)
        for attempt in range(1, self._cas_attempts + 1):
            with session_scope(self._factory) as session:
                current = load_balance(session, user_id)
                if current.balance < amount:
                    raise InsufficientBalanceError(available=current.balance, requested=amount)
                new_balance = current.balance - amount
                new_pending = current.pending_burn + amount
                if _compare_and_swap(session, current, new_balance, new_pending):
                    _append_transaction(
                        session,
                        current,
                        tx_type=tx_type,
                        direction="debit",
                        amount=amount,
                        balance_after=new_balance,
                        reference_id=reference_id,
                        reference_type=reference_type,
                        description=description,
                    )
                    logger.info(
                        "ledger_debit",
                        user_id=user_id,
                        amount=str(amount),
                        balance=str(new_balance),
                        pending_burn=str(new_pending),
                        tx_type=tx_type,
                    )
                    return LedgerBalance(
                        user_id=current.user_id,
                        wallet_address=current.wallet_address,
                        balance=new_balance,
                        pending_burn=new_pending,
                        version=current.version + 1,
                    )
            logger.debug("ledger_cas_conflict", op="debit", user_id=user_id, attempt=attempt)
        raise LedgerContentionError(f"debit for {user_id} lost {self._cas_attempts} races")

    def _try_rollback(self, user_id: str, amount: int, reference_id: str | None, reason: str) -> bool:
        """One rollback attempt. Raises _RollbackRefused when pending_burn cannot cover amount."""
        with session_scope(self._factory) as session:
            current = load_balance(session, user_id)
            if current.pending_burn < amount:
                raise _RollbackRefused(
                    f"pending_burn {current.pending_burn} < rollback amount {amount}"
                )
            new_balance = current.balance + amount
            if not _compare_and_swap(session, current, new_balance, current.pending_burn - amount):
                return False
            _append_transaction(
                session,
                current,
                tx_type=TX_ROLLBACK,
                direction="credit",
                amount=amount,
                balance_after=new_balance,
                reference_id=reference_id,
                reference_type="rollback",
                description=reason,
            )
            return True

    def rollback(
        self,
        user_id: str,
        amount: int,
        *,
        reference_id: str | None = None,
        reason: str = "",
    ) -> bool:
        """
        Reverse a conditional_debit: balance += amount, pending_burn -= amount.

        Up to rollback_attempts tries, sleeping backoff × attempt between them
        (1s, 2s with defaults). Returns False after reporting a critical
        inconsistency when the reversal could not be applied.
        """
        _require_positive(amount)
        last_error = ""
        for attempt in range(1, self._rollback_attempts + 1):
            try:
                if self._try_rollback(user_id, amount, reference_id, reason):
                    logger.info("ledger_rollback", user_id=user_id, amount=str(amount), attempt=attempt)
                    return True
                last_error = "concurrent update"
            except _RollbackRefused as e:
                self._reporter.emit(
                    InconsistencyRecord(user_id=user_id, amount=amount, kind=KIND_ROLLBACK_REFUSED, detail=str(e))
                )
                return False
            except Exception as e:
                last_error = str(e)
                logger.error(
                    "ledger_rollback_attempt_failed",
                    user_id=user_id,
                    amount=str(amount),
                    attempt=attempt,
                    max_attempts=self._rollback_attempts,
                    error=last_error,
                )
            if attempt < self._rollback_attempts:
                self._sleep(self._rollback_backoff_sec * attempt)

        self._reporter.emit(
            InconsistencyRecord(
                user_id=user_id,
                amount=amount,
                kind=KIND_ROLLBACK_EXHAUSTED,
                detail=f"reference={reference_id or '-'} reason={reason} last_error={last_error}",
            )
        )
        return False


class _RollbackRefused(Exception):
    pass
