"""
Reward math: interval aggregation and proportional daily budget allocation.

Pure functions; no I/O.
"""

from backend_time26.rewards.allocation import (
    DAILY_BUDGET,
    DailyRewardResult,
    UserRewardResult,
    allocate_rewards,
    calculate_daily_rewards,
    day_bounds,
    daily_budget,
    format_time26,
    yesterday_day_id,
)
from backend_time26.rewards.timeline import aggregate_intervals, build_timeline

__all__ = [
    "DAILY_BUDGET",
    "DailyRewardResult",
    "UserRewardResult",
    "aggregate_intervals",
    "allocate_rewards",
    "build_timeline",
    "calculate_daily_rewards",
    "day_bounds",
    "daily_budget",
    "format_time26",
    "yesterday_day_id",
]
