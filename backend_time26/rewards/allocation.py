"""
TIME26 daily reward allocation.

Budget: 31,500,000 TIME26 / 365 days ≈ 86,301.369863 TIME26 per day (18 decimals).
base_reward(u) = weighted(u) / total_weighted × daily_budget, computed in 60-digit
decimal arithmetic with ROUND_DOWN and truncated to integer wei. Truncation (never
rounding up) guarantees the sum of base rewards never exceeds the budget.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time as dtime, timedelta, timezone
from decimal import ROUND_DOWN, Context, Decimal
from typing import Any, Iterable, List, Mapping

from backend_time26.database.models import DrawingInterval
from backend_time26.rewards.timeline import IntervalAggregate, UserSeconds, aggregate_intervals

TOKEN_DECIMALS = 18
WEI_PER_TOKEN = 10 ** TOKEN_DECIMALS
DAYS_IN_YEAR = 365
TOTAL_REWARD_POOL_TOKENS = Decimal("31500000")

# Local context: global decimal state stays untouched
REWARD_CONTEXT = Context(prec=60, rounding=ROUND_DOWN)


def daily_budget(annual_pool_tokens: Decimal = TOTAL_REWARD_POOL_TOKENS) -> Decimal:
    """Daily budget in wei, unrounded (annual pool × 10^18 / 365)."""
    pool_wei = REWARD_CONTEXT.multiply(Decimal(annual_pool_tokens), Decimal(WEI_PER_TOKEN))
    return REWARD_CONTEXT.divide(pool_wei, Decimal(DAYS_IN_YEAR))


DAILY_BUDGET = daily_budget()


def to_wei(value: Decimal) -> int:
    """The single decimal → integer wei conversion point: truncate toward zero."""
    return int(value.to_integral_value(rounding=ROUND_DOWN))


@dataclass(frozen=True)
class UserRewardResult:
    user_id: str
    total_seconds: int
    exclusive_seconds: int
    shared_seconds: int
    base_reward: int
    bonus_reward: int
    total_reward: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "totalSeconds": self.total_seconds,
            "exclusiveSeconds": self.exclusive_seconds,
            "sharedSeconds": self.shared_seconds,
            "baseReward": str(self.base_reward),
            "bonusReward": str(self.bonus_reward),
            "totalReward": str(self.total_reward),
        }


@dataclass(frozen=True)
class DailyRewardResult:
    day_id: str
    total_budget: int
    total_seconds: int
    total_distributed: int
    participant_count: int
    user_rewards: List[UserRewardResult] = field(default_factory=list)


def allocate_rewards(
    weights: Mapping[str, Decimal],
    budget: Decimal = DAILY_BUDGET,
    *,
    tallies: Mapping[str, UserSeconds] | None = None,
) -> List[UserRewardResult]:
    """
    Split `budget` (wei) proportionally to `weights`.

    `tallies` supplies exclusive/shared second counts for the result rows; without
    it the weights themselves are reported as exclusive seconds. A zero total weight
    yields zero rewards for everyone.
    """
    ctx = REWARD_CONTEXT
    total_weight = Decimal(0)
    for w in weights.values():
        total_weight = ctx.add(total_weight, Decimal(w))

    results: List[UserRewardResult] = []
    for user_id, weight in weights.items():
        if total_weight > 0:
            share = ctx.divide(Decimal(weight), total_weight)
            base = to_wei(ctx.multiply(share, budget))
        else:
            base = 0
        # Streak/referral bonuses plug in here
        bonus = 0
        t = tallies.get(user_id) if tallies is not None else None
        exclusive = t.exclusive if t is not None else int(Decimal(weight))
        shared = t.shared if t is not None else 0
        results.append(
            UserRewardResult(
                user_id=user_id,
                total_seconds=exclusive + shared,
                exclusive_seconds=exclusive,
                shared_seconds=shared,
                base_reward=base,
                bonus_reward=bonus,
                total_reward=base + bonus,
            )
        )
    return results


def calculate_daily_rewards(
    day_id: str,
    intervals: Iterable[DrawingInterval],
    budget: Decimal = DAILY_BUDGET,
) -> DailyRewardResult:
    """Aggregate a day's intervals and allocate the daily budget. Empty days are not errors."""
    aggregate: IntervalAggregate = aggregate_intervals(intervals, REWARD_CONTEXT)
    if not aggregate.users:
        return DailyRewardResult(
            day_id=day_id,
            total_budget=to_wei(budget),
            total_seconds=0,
            total_distributed=0,
            participant_count=0,
            user_rewards=[],
        )
    rewards = allocate_rewards(aggregate.weights(), budget, tallies=aggregate.users)
    return DailyRewardResult(
        day_id=day_id,
        total_budget=to_wei(budget),
        total_seconds=aggregate.occupied_seconds,
        total_distributed=sum(r.total_reward for r in rewards),
        participant_count=len(rewards),
        user_rewards=rewards,
    )


def format_time26(wei: int | str) -> str:
    """Human-readable TIME26 with 4 decimals, truncated."""
    value = REWARD_CONTEXT.divide(Decimal(int(wei)), Decimal(WEI_PER_TOKEN))
    return str(value.quantize(Decimal("0.0001"), rounding=ROUND_DOWN))


def parse_day_id(day_id: str) -> date:
    """Validate a YYYY-MM-DD day id; raises ValueError otherwise."""
    parsed = date.fromisoformat((day_id or "").strip())
    if parsed.isoformat() != day_id.strip():
        raise ValueError(f"Invalid day id: {day_id!r}")
    return parsed


def day_bounds(day_id: str) -> tuple[datetime, datetime]:
    """UTC [00:00:00.000, 23:59:59.999] for the day."""
    d = parse_day_id(day_id)
    start = datetime.combine(d, dtime.min, tzinfo=timezone.utc)
    end = datetime.combine(d, dtime(23, 59, 59, 999000), tzinfo=timezone.utc)
    return start, end


def yesterday_day_id(now: datetime | None = None) -> str:
    """Day id of the previous UTC day (T+1 settlement)."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now.astimezone(timezone.utc).date() - timedelta(days=1)).isoformat()
