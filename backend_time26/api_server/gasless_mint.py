"""
Gasless mint router.

POST /mint/gasless: mint paid from the off-chain balance (200 minted, 202 pending).
GET  /mint/gasless/eligibility?duration=: eligibility with costs and pricing.
POST /mint/gasless/{tx_hash}/reconcile: resolve (cron auth) a pending mint by tx status.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from backend_time26.api_server.deps import Services, current_user, get_services, require_cron
from backend_time26.database.models import LedgerBalance
from backend_time26.gasless.mint import MINT_PENDING, GaslessMintInput
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/mint/gasless", tags=["mint"])


class GaslessMintRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Format and length limits are enforced by GaslessMintFlow
    session_id: str = Field(..., alias="sessionId")
    metadata_uri: str = Field(..., alias="metadataURI", max_length=2048)
    display_name: str | None = Field(None, alias="displayName")
    message: str | None = None
    duration: int = Field(..., description="Drawing duration in seconds (>= 10)")


@router.post("")
def gasless_mint(
    body: GaslessMintRequest,
    user: LedgerBalance = Depends(current_user),
    services: Services = Depends(get_services),
) -> JSONResponse:
    outcome = services.mint_flow.mint(
        user.user_id,
        user.wallet_address,
        GaslessMintInput(
            session_id=body.session_id,
            metadata_uri=body.metadata_uri,
            display_name=body.display_name,
            message=body.message,
            duration=body.duration,
        ),
    )
    services.claims.invalidate()
    status = 202 if outcome.status == MINT_PENDING else 200
    return JSONResponse(status_code=status, content=outcome.to_dict())


@router.get("/eligibility")
def gasless_eligibility(
    duration: int = Query(..., description="Drawing duration in seconds"),
    user: LedgerBalance = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return services.evaluator.evaluate(user.user_id, duration).to_dict()


@router.post("/{tx_hash}/reconcile", dependencies=[Depends(require_cron)])
def reconcile_mint(tx_hash: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    outcome = services.mint_flow.reconcile(tx_hash.strip().lower())
    return outcome.to_dict()
