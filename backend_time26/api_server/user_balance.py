"""
User router: claim proof and off-chain balance spending.

GET  /user/claim-proof: Merkle proof for the caller's cumulative balance.
GET  /user/spend-balance: {balance, pendingBurn}.
POST /user/spend-balance: move amount from balance to pending burn.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from backend_time26.api_server.deps import Services, current_user, get_services
from backend_time26.database.models import LedgerBalance
from backend_time26.ledger.balance_ledger import TX_SPEND
from backend_time26.time26_logging import bind_wallet, get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


class SpendRequest(BaseModel):
    """POST /user/spend-balance body. amount is wei as a decimal string (or integer)."""

    model_config = ConfigDict(populate_by_name=True)

    amount: int | str = Field(..., description="Amount in wei")
    reason: str = Field(..., min_length=1, max_length=200)
    session_id: str | None = Field(None, alias="sessionId", max_length=64)


def _parse_amount(raw: int | str) -> int:
    if isinstance(raw, int):
        value = raw
    else:
        text = raw.strip()
        if not text.isdigit():
            raise HTTPException(status_code=400, detail="amount must be a positive integer string")
        value = int(text)
    if value <= 0:
        raise HTTPException(status_code=400, detail="amount must be positive")
    return value


@router.get("/claim-proof")
def claim_proof(
    user: LedgerBalance = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return services.claims.get_claim_proof(user.wallet_address).to_dict()


@router.get("/spend-balance")
def get_spend_balance(user: LedgerBalance = Depends(current_user)) -> dict[str, str]:
    return user.to_dict()


@router.post("/spend-balance")
def spend_balance(
    body: SpendRequest,
    user: LedgerBalance = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Debit the caller. 400 with available/requested when the balance is short."""
    amount = _parse_amount(body.amount)
    log = bind_wallet(user.user_id, user.wallet_address)
    updated = services.ledger.conditional_debit(
        user.user_id,
        amount,
        tx_type=TX_SPEND,
        reference_id=body.session_id,
        reference_type="spend",
        description=body.reason,
    )
    log.info("spend_balance_debited", amount=str(amount), reason=body.reason)
    return {"success": True, "amount": str(amount), **updated.to_dict()}
