"""
Daily settlement: turn one UTC day of drawing sessions into ledger credits, once.

State per day: UNSETTLED → SETTLED. The daily_rewards row is the gate: an existing
row short-circuits with skipped=True, and its primary key makes a concurrent second
insert fail, which rolls that run back and is also reported as skipped. Settlement
rows, per-user rows, ledger credits, audit rows, and session status changes commit in
one transaction or not at all.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from backend_time26.config import get_settings
from backend_time26.core.exceptions import SettlementError, ValidationError
from backend_time26.database.connection import session_scope
from backend_time26.database.repositories import existing_user_ids, fetch_day_intervals, settlement_exists
from backend_time26.database.schema import (
    SESSION_PENDING,
    SESSION_SETTLED,
    DailySettlement,
    DrawingSession,
    UserDailyReward,
)
from backend_time26.ledger.balance_ledger import TX_DAILY_REWARD, apply_credit
from backend_time26.oracle.chain import RewardChain
from backend_time26.rewards.allocation import (
    DailyRewardResult,
    UserRewardResult,
    calculate_daily_rewards,
    daily_budget,
    day_bounds,
    format_time26,
    yesterday_day_id,
)
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)


@dataclass
class SettlementResult:
    day_id: str
    skipped: bool = False
    message: str = ""
    participant_count: int = 0
    total_seconds: int = 0
    total_budget: int = 0
    total_distributed: int = 0
    contract_balance_before: int | None = None
    user_rewards: list[UserRewardResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        if self.skipped:
            return {"success": True, "skipped": True, "dayId": self.day_id, "message": self.message}
        return {
            "success": True,
            "dayId": self.day_id,
            "participantCount": self.participant_count,
            "totalSeconds": self.total_seconds,
            "totalBudget": str(self.total_budget),
            "totalDistributed": str(self.total_distributed),
            "userRewards": [r.to_dict() for r in self.user_rewards],
        }


class SettlementOrchestrator:
    """Idempotent per-day settlement job."""

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        chain: RewardChain | None = None,
        *,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._factory = session_factory
        self._chain = chain
        self._now = now

    def _pool_snapshot(self, day_id: str) -> int | None:
        if self._chain is None:
            return None
        try:
            return self._chain.reward_pool_balance()
        except Exception as e:
            logger.warning("settlement_pool_snapshot_failed", day_id=day_id, error=str(e))
            return None

    def settle_day(self, day_id: str | None = None) -> SettlementResult:
        """Settle day_id (default: yesterday UTC). Safe to call repeatedly."""
        if day_id is None:
            day_id = yesterday_day_id(self._now() if self._now else None)
        try:
            start, end = day_bounds(day_id)
        except ValueError as e:
            raise ValidationError(f"Invalid day id: {day_id!r}") from e

        with session_scope(self._factory) as session:
            if settlement_exists(session, day_id):
                logger.info("settlement_skipped", day_id=day_id, reason="already_settled")
                return SettlementResult(day_id=day_id, skipped=True, message=f"Rewards for {day_id} already settled")
            intervals = fetch_day_intervals(session, start, end)
            known = existing_user_ids(session, {i.user_id for i in intervals})
        orphaned = sorted({i.user_id for i in intervals} - known)
        if orphaned:
            # Sessions of deleted users stay PENDING and earn nothing
            logger.warning("settlement_orphaned_sessions", day_id=day_id, user_ids=orphaned)
            intervals = [i for i in intervals if i.user_id in known]

        result = calculate_daily_rewards(day_id, intervals, daily_budget(get_settings().reward_annual_pool))
        logger.info(
            "settlement_calculated",
            day_id=day_id,
            intervals=len(intervals),
            participants=result.participant_count,
            total_seconds=result.total_seconds,
            total_distributed=format_time26(result.total_distributed),
        )
        pool_before = self._pool_snapshot(day_id)

        try:
            self._persist(result, pool_before, [i.session_id for i in intervals])
        except IntegrityError as e:
            with session_scope(self._factory) as session:
                settled_elsewhere = settlement_exists(session, day_id)
            if not settled_elsewhere:
                logger.exception("settlement_failed", day_id=day_id, error=str(e))
                raise SettlementError(f"Settlement for {day_id} failed: {e}") from e
            logger.info("settlement_skipped", day_id=day_id, reason="concurrent_settlement")
            return SettlementResult(day_id=day_id, skipped=True, message=f"Rewards for {day_id} already settled")
        except Exception as e:
            logger.exception("settlement_failed", day_id=day_id, error=str(e))
            raise SettlementError(f"Settlement for {day_id} failed: {e}") from e

        logger.info(
            "settlement_completed",
            day_id=day_id,
            participants=result.participant_count,
            total_distributed=str(result.total_distributed),
        )
        return SettlementResult(
            day_id=day_id,
            participant_count=result.participant_count,
            total_seconds=result.total_seconds,
            total_budget=result.total_budget,
            total_distributed=result.total_distributed,
            contract_balance_before=pool_before,
            user_rewards=list(result.user_rewards),
        )

    def _persist(self, result: DailyRewardResult, pool_before: int | None, session_ids: list[str]) -> None:
        now = int(time.time())
        with session_scope(self._factory) as session:
            # Flushed first so a concurrent run fails here before any credit
            session.add(
                DailySettlement(
                    day_id=result.day_id,
                    total_budget=str(result.total_budget),
                    total_seconds=result.total_seconds,
                    total_distributed=str(result.total_distributed),
                    participant_count=result.participant_count,
                    contract_balance_before=str(pool_before) if pool_before is not None else None,
                    contract_balance_after=None,
                    settled_at=now,
                )
            )
            session.flush()
            for r in result.user_rewards:
                session.add(
                    UserDailyReward(
                        user_id=r.user_id,
                        day_id=result.day_id,
                        total_seconds=r.total_seconds,
                        exclusive_seconds=r.exclusive_seconds,
                        shared_seconds=r.shared_seconds,
                        base_reward=str(r.base_reward),
                        bonus_reward=str(r.bonus_reward),
                        total_reward=str(r.total_reward),
                        created_at=now,
                    )
                )
                if r.total_reward > 0:
                    apply_credit(
                        session,
                        r.user_id,
                        r.total_reward,
                        tx_type=TX_DAILY_REWARD,
                        reference_id=result.day_id,
                        reference_type="daily_reward",
                        description=f"Daily drawing reward for {result.day_id}",
                    )
            if session_ids:
                session.execute(
                    update(DrawingSession)
                    .where(DrawingSession.id.in_(session_ids))
                    .where(DrawingSession.status == SESSION_PENDING)
                    .values(status=SESSION_SETTLED)
                    .execution_options(synchronize_session=False)
                )
