"""
Cron router: GET /cron/rewards (daily settlement) and POST /cron/rewards-root.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from backend_time26.api_server.deps import Services, get_services, require_cron
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron)])


@router.get("/rewards")
def settle_rewards(
    day: str | None = Query(None, description="UTC day YYYY-MM-DD; defaults to yesterday"),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Settle one day's drawing rewards. Re-running a settled day returns skipped=true."""
    result = services.settlement.settle_day(day)
    if not result.skipped and result.participant_count:
        services.claims.invalidate()
    return result.to_dict()


@router.post("/rewards-root")
def publish_rewards_root(services: Services = Depends(get_services)) -> dict[str, Any]:
    """Push the current rewards Merkle root on-chain when it changed."""
    return services.root_publisher.publish().to_dict()
