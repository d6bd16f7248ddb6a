"""
Gasless mint: pay the mint and the sponsor's gas from the off-chain TIME26 balance.

Order of operations:
1. session checks and eligibility (no writes),
2. conditional debit of the total cost into pending_burn,
3. operator-signed mintSponsoredNative, receipt awaited with timeout.

A definite failure after the debit is rolled back. A timeout is not: the transaction
may still land, so the mint is recorded as pending and resolved later by reconcile().
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, replace
from typing import Any

from sqlalchemy.orm import sessionmaker

from backend_time26.core.exceptions import (
    AlreadyMintedError,
    ChainError,
    ChainTimeoutError,
    MintFailedError,
    NotEligibleError,
    SessionNotFoundError,
    ValidationError,
)
from backend_time26.database.connection import session_scope
from backend_time26.database.schema import SESSION_MINTED, DrawingSession, GaslessMint
from backend_time26.gasless.eligibility import GaslessEvaluator, validate_duration
from backend_time26.ledger.balance_ledger import TX_NFT_MINT_PAYMENT, BalanceLedger
from backend_time26.oracle.chain import (
    TX_STATUS_PENDING,
    TX_STATUS_REVERTED,
    MintRequest,
    RewardChain,
    TxOutcome,
)
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

MINT_PENDING = "pending"
MINT_MINTED = "minted"
MINT_FAILED = "failed"
MINT_ROLLED_BACK = "rolled_back"

DEFAULT_DISPLAY_NAME = "Anonymous"
MAX_DISPLAY_NAME_LEN = 30
MAX_MESSAGE_LEN = 280


@dataclass(frozen=True)
class GaslessMintInput:
    session_id: str
    metadata_uri: str
    display_name: str | None
    message: str | None
    duration: int


@dataclass(frozen=True)
class MintOutcome:
    status: str
    tx_hash: str
    token_id: int | None = None
    balance_deducted: int = 0
    mint_cost: int = 0
    gas_cost: int = 0

    def to_dict(self) -> dict[str, Any]:
        if self.status == MINT_PENDING:
            return {"success": False, "status": MINT_PENDING, "txHash": self.tx_hash}
        return {
            "success": self.status == MINT_MINTED,
            "status": self.status,
            "txHash": self.tx_hash,
            "tokenId": str(self.token_id) if self.token_id is not None else None,
            "balanceDeducted": str(self.balance_deducted),
            "mintCost": str(self.mint_cost),
            "gasCost": str(self.gas_cost),
        }


def _validate_input(body: GaslessMintInput) -> GaslessMintInput:
    """Check field limits; returns the input with displayName and message defaults applied."""
    session_id = body.session_id or ""
    try:
        canonical = str(uuid.UUID(session_id))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError("sessionId must be a UUID") from None
    if canonical != session_id.lower():
        raise ValidationError("sessionId must be a UUID")
    if not (body.metadata_uri or "").strip():
        raise ValidationError("metadataURI is required")
    display_name = DEFAULT_DISPLAY_NAME if body.display_name is None else body.display_name
    if not 1 <= len(display_name) <= MAX_DISPLAY_NAME_LEN:
        raise ValidationError(f"displayName must be 1-{MAX_DISPLAY_NAME_LEN} characters")
    message = body.message or ""
    if len(message) > MAX_MESSAGE_LEN:
        raise ValidationError(f"message exceeds {MAX_MESSAGE_LEN} characters")
    validate_duration(body.duration)
    return replace(body, display_name=display_name, message=message)


class GaslessMintFlow:
    def __init__(
        self,
        chain: RewardChain,
        ledger: BalanceLedger,
        evaluator: GaslessEvaluator,
        session_factory: sessionmaker | None = None,
    ) -> None:
        self._chain = chain
        self._ledger = ledger
        self._evaluator = evaluator
        self._factory = session_factory

    def _check_session(self, user_id: str, session_id: str) -> None:
        with session_scope(self._factory) as session:
            row = session.get(DrawingSession, session_id)
            if row is None or row.user_id != user_id:
                raise SessionNotFoundError(session_id)
            if row.status == SESSION_MINTED:
                raise AlreadyMintedError(session_id, row.tx_hash)

    def mint(self, user_id: str, wallet_address: str, body: GaslessMintInput) -> MintOutcome:
        body = _validate_input(body)
        self._check_session(user_id, body.session_id)

        request = MintRequest(
            duration=body.duration,
            metadata_uri=body.metadata_uri,
            display_name=body.display_name,
            message=body.message,
            recipient=wallet_address,
        )
        eligibility = self._evaluator.evaluate(user_id, body.duration, request)
        if not eligibility.eligible:
            raise NotEligibleError(eligibility)

        total = eligibility.total_cost_time26
        self._ledger.conditional_debit(
            user_id,
            total,
            tx_type=TX_NFT_MINT_PAYMENT,
            reference_id=body.session_id,
            reference_type="nft_mint_payment",
            description=f"Gasless mint of {body.duration}s session",
        )

        try:
            outcome = self._chain.mint_sponsored(request)
        except ChainTimeoutError as e:
            self._record_mint(e.tx_hash, user_id, body.session_id, total, MINT_PENDING)
            logger.warning(
                "gasless_mint_pending",
                user_id=user_id,
                session_id=body.session_id,
                tx_hash=e.tx_hash,
                amount=str(total),
            )
            return MintOutcome(
                status=MINT_PENDING,
                tx_hash=e.tx_hash,
                balance_deducted=total,
                mint_cost=eligibility.mint_cost_time26,
                gas_cost=eligibility.gas_cost_time26,
            )
        except Exception as e:
            # Reverted, or never broadcast: the debit is released
            rolled_back = self._ledger.rollback(
                user_id, total, reference_id=body.session_id, reason=f"gasless mint failed: {e}"
            )
            log = logger.error if isinstance(e, ChainError) else logger.exception
            log(
                "gasless_mint_failed",
                user_id=user_id,
                session_id=body.session_id,
                error=str(e),
                rolled_back=rolled_back,
            )
            raise MintFailedError(f"Mint failed: {e}", rolled_back=rolled_back, amount=total) from e

        self._mark_minted(body.session_id, outcome)
        self._record_mint(outcome.tx_hash, user_id, body.session_id, total, MINT_MINTED, outcome.token_id)
        logger.info(
            "gasless_mint_completed",
            user_id=user_id,
            session_id=body.session_id,
            tx_hash=outcome.tx_hash,
            token_id=outcome.token_id,
            amount=str(total),
        )
        return MintOutcome(
            status=MINT_MINTED,
            tx_hash=outcome.tx_hash,
            token_id=outcome.token_id,
            balance_deducted=total,
            mint_cost=eligibility.mint_cost_time26,
            gas_cost=eligibility.gas_cost_time26,
        )

    def reconcile(self, tx_hash: str) -> MintOutcome:
        """Resolve a pending mint by its transaction status. Non-pending mints are returned as-is."""
        with session_scope(self._factory) as session:
            row = session.get(GaslessMint, tx_hash)
            if row is None:
                raise ValidationError(f"Unknown gasless mint: {tx_hash}")
            user_id, session_id, amount, status = row.user_id, row.session_id, int(row.amount), row.status
            token_id = int(row.token_id) if row.token_id else None
        if status != MINT_PENDING:
            return MintOutcome(status=status, tx_hash=tx_hash, token_id=token_id, balance_deducted=amount)

        outcome = self._chain.transaction_status(tx_hash)
        if outcome.status == TX_STATUS_PENDING:
            logger.info("gasless_mint_still_pending", tx_hash=tx_hash)
            return MintOutcome(status=MINT_PENDING, tx_hash=tx_hash, balance_deducted=amount)

        if outcome.status == TX_STATUS_REVERTED:
            rolled_back = self._ledger.rollback(user_id, amount, reference_id=session_id, reason=f"mint reverted: {tx_hash}")
            new_status = MINT_ROLLED_BACK if rolled_back else MINT_FAILED
            self._update_mint(tx_hash, new_status)
            logger.warning("gasless_mint_reconciled", tx_hash=tx_hash, status=new_status)
            return MintOutcome(status=new_status, tx_hash=tx_hash, balance_deducted=0 if rolled_back else amount)

        self._mark_minted(session_id, outcome)
        self._update_mint(tx_hash, MINT_MINTED, outcome.token_id)
        logger.info("gasless_mint_reconciled", tx_hash=tx_hash, status=MINT_MINTED, token_id=outcome.token_id)
        return MintOutcome(status=MINT_MINTED, tx_hash=tx_hash, token_id=outcome.token_id, balance_deducted=amount)

    def _mark_minted(self, session_id: str, outcome: TxOutcome) -> None:
        with session_scope(self._factory) as session:
            row = session.get(DrawingSession, session_id)
            if row is not None:
                row.status = SESSION_MINTED
                row.tx_hash = outcome.tx_hash

    def _record_mint(
        self,
        tx_hash: str,
        user_id: str,
        session_id: str,
        amount: int,
        status: str,
        token_id: int | None = None,
    ) -> None:
        now = int(time.time())
        with session_scope(self._factory) as session:
            session.merge(
                GaslessMint(
                    tx_hash=tx_hash,
                    user_id=user_id,
                    session_id=session_id,
                    amount=str(amount),
                    status=status,
                    token_id=str(token_id) if token_id is not None else None,
                    created_at=now,
                    updated_at=now,
                )
            )

    def _update_mint(self, tx_hash: str, status: str, token_id: int | None = None) -> None:
        with session_scope(self._factory) as session:
            row = session.get(GaslessMint, tx_hash)
            if row is None:
                return
            row.status = status
            if token_id is not None:
                row.token_id = str(token_id)
            row.updated_at = int(time.time())
