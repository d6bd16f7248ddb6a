"""
Reward math: interval aggregation, allocation, and day helpers. Pure functions, no DB.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from backend_time26.database.models import DrawingInterval
from backend_time26.rewards import (
    DAILY_BUDGET,
    aggregate_intervals,
    allocate_rewards,
    build_timeline,
    calculate_daily_rewards,
    day_bounds,
    daily_budget,
    format_time26,
    yesterday_day_id,
)
from backend_time26.rewards.allocation import REWARD_CONTEXT, parse_day_id, to_wei
from conftest import utc

DAY = "2025-03-14"
DAY_START = utc(2025, 3, 14)


def interval(user_id: str, offset: int, duration: int, session_id: str | None = None) -> DrawingInterval:
    return DrawingInterval(
        user_id=user_id,
        session_id=session_id or f"{user_id}-{offset}",
        start_time=DAY_START + timedelta(seconds=offset),
        duration_seconds=duration,
    )


def test_daily_budget_value():
    """31.5M TIME26 / 365 days, in wei, truncated."""
    assert to_wei(DAILY_BUDGET) == 86301369863013698630136
    assert to_wei(daily_budget(Decimal("365"))) == 10 ** 18


def test_two_overlapping_users_split_evenly():
    """A draws 0-60s, B draws 30-90s: 30 exclusive + 30 shared seconds each."""
    result = calculate_daily_rewards(DAY, [interval("A", 0, 60), interval("B", 30, 60)])

    assert result.total_seconds == 90
    assert result.participant_count == 2
    a, b = result.user_rewards
    assert (a.user_id, a.exclusive_seconds, a.shared_seconds, a.total_seconds) == ("A", 30, 30, 60)
    assert (b.user_id, b.exclusive_seconds, b.shared_seconds, b.total_seconds) == ("B", 30, 30, 60)
    assert a.base_reward == b.base_reward == 43150684931506849315068
    assert a.total_reward == a.base_reward + a.bonus_reward
    assert result.total_distributed <= result.total_budget


def test_solo_user_gets_whole_budget_truncated():
    result = calculate_daily_rewards(DAY, [interval("A", 100, 10)])
    assert result.user_rewards[0].base_reward == to_wei(DAILY_BUDGET)
    assert result.user_rewards[0].exclusive_seconds == 10


def test_overlapping_sessions_of_same_user_count_once():
    agg = aggregate_intervals([interval("A", 0, 60, "s1"), interval("A", 30, 60, "s2")], REWARD_CONTEXT)
    assert agg.occupied_seconds == 90
    assert agg.users["A"].exclusive == 90
    assert agg.users["A"].shared == 0
    assert agg.users["A"].weighted == Decimal(90)


def test_three_way_second_weights():
    timeline = build_timeline([interval("A", 0, 1), interval("B", 0, 1), interval("C", 0, 1)])
    assert len(timeline) == 1
    agg = aggregate_intervals([interval("A", 0, 1), interval("B", 0, 1), interval("C", 0, 1)], REWARD_CONTEXT)
    for uid in "ABC":
        assert agg.users[uid].shared == 1
        assert agg.users[uid].weighted == REWARD_CONTEXT.divide(Decimal(1), Decimal(3))


def test_weighted_total_equals_occupied_seconds():
    intervals = [interval("A", 0, 100), interval("B", 50, 100), interval("C", 75, 10), interval("D", 300, 5)]
    agg = aggregate_intervals(intervals, REWARD_CONTEXT)
    total = agg.total_weighted(REWARD_CONTEXT)
    assert abs(total - Decimal(agg.occupied_seconds)) < Decimal("1e-40")


def test_empty_day_is_not_an_error():
    result = calculate_daily_rewards(DAY, [])
    assert result.total_seconds == 0
    assert result.participant_count == 0
    assert result.user_rewards == []
    assert result.total_distributed == 0


def test_zero_duration_intervals_produce_no_rows():
    result = calculate_daily_rewards(DAY, [interval("A", 0, 0), interval("B", 10, 5)])
    assert [r.user_id for r in result.user_rewards] == ["B"]
    assert result.total_seconds == 5


def test_sum_never_exceeds_budget_with_many_users():
    intervals = [interval(f"u{i}", i * 7, 13 + i % 5) for i in range(37)]
    result = calculate_daily_rewards(DAY, intervals)
    assert result.total_distributed <= to_wei(DAILY_BUDGET)
    # Truncation loses at most one wei per participant
    assert to_wei(DAILY_BUDGET) - result.total_distributed < result.participant_count + 1


def test_allocate_arbitrary_weights_non_overlapping():
    """Disjoint intervals: rewards proportional to seconds."""
    rewards = allocate_rewards({"A": Decimal(10), "B": Decimal(30)}, Decimal(400))
    by_user = {r.user_id: r for r in rewards}
    assert by_user["A"].base_reward == 100
    assert by_user["B"].base_reward == 300
    assert by_user["A"].exclusive_seconds == 10


def test_allocate_zero_total_weight():
    rewards = allocate_rewards({"A": Decimal(0)}, Decimal(1000))
    assert rewards[0].base_reward == 0
    assert rewards[0].total_reward == 0


def test_result_dict_uses_string_amounts():
    result = calculate_daily_rewards(DAY, [interval("A", 0, 10)])
    d = result.user_rewards[0].to_dict()
    assert d["userId"] == "A"
    assert isinstance(d["baseReward"], str)
    assert d["totalSeconds"] == 10


def test_format_time26_truncates():
    assert format_time26(123456789 * 10 ** 12) == "123.4567"
    assert format_time26("0") == "0.0000"


def test_day_bounds_and_yesterday():
    start, end = day_bounds(DAY)
    assert start == DAY_START
    assert (end - start).total_seconds() == pytest.approx(86399.999)
    assert yesterday_day_id(utc(2025, 3, 1, 0, 5)) == "2025-02-28"


@pytest.mark.parametrize("bad", ["2025-3-14", "2025-02-30", "", "yesterday"])
def test_parse_day_id_rejects_malformed(bad):
    with pytest.raises(ValueError):
        parse_day_id(bad)


def test_non_overlapping_matches_raw_duration_allocation():
    intervals = [interval("A", 0, 17), interval("B", 100, 45), interval("C", 500, 3), interval("A", 1000, 8)]
    from_intervals = calculate_daily_rewards(DAY, intervals)
    raw = allocate_rewards({"A": Decimal(25), "B": Decimal(45), "C": Decimal(3)}, DAILY_BUDGET)
    assert {r.user_id: r.total_reward for r in from_intervals.user_rewards} == {r.user_id: r.total_reward for r in raw}


def test_exclusive_user_earns_at_least_overlapped_user():
    """X draws alone; Y draws the same length fully overlapped by Z."""
    result = calculate_daily_rewards(DAY, [interval("X", 0, 60), interval("Y", 1000, 60), interval("Z", 1000, 60)])
    by_user = {r.user_id: r for r in result.user_rewards}
    assert by_user["X"].total_reward >= by_user["Y"].total_reward
    assert by_user["Y"].shared_seconds == 60
    assert by_user["X"].exclusive_seconds == 60
