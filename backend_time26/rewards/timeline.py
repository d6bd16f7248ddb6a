"""
Interval aggregation: drawing intervals → per-second ownership → weighted seconds.

A second with N simultaneously active users contributes 1/N of a weighted second
to each of them. N == 1 is an exclusive second; N >= 2 is a shared second for every
participant. Each interval's seconds are enumerated once: O(total interval-seconds).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Context, Decimal
from typing import Dict, Iterable, Set

from backend_time26.database.models import DrawingInterval

Timeline = Dict[int, Set[str]]


@dataclass
class UserSeconds:
    """Per-user tallies for one day."""

    weighted: Decimal = field(default_factory=Decimal)
    exclusive: int = 0
    shared: int = 0

    @property
    def total(self) -> int:
        return self.exclusive + self.shared


@dataclass
class IntervalAggregate:
    """Aggregator output: the timeline plus per-user totals in first-seen order."""

    timeline: Timeline
    users: Dict[str, UserSeconds]

    @property
    def occupied_seconds(self) -> int:
        """Distinct seconds with at least one active user."""
        return len(self.timeline)

    def total_weighted(self, ctx: Context) -> Decimal:
        total = Decimal(0)
        for tallies in self.users.values():
            total = ctx.add(total, tallies.weighted)
        return total

    def weights(self) -> Dict[str, Decimal]:
        return {uid: t.weighted for uid, t in self.users.items()}


def build_timeline(intervals: Iterable[DrawingInterval]) -> Timeline:
    """Map each epoch second to the set of users drawing during it."""
    timeline: Timeline = defaultdict(set)
    for interval in intervals:
        if interval.duration_seconds <= 0:
            continue
        start = int(interval.start_time.timestamp())
        for second in range(start, start + int(interval.duration_seconds)):
            timeline[second].add(interval.user_id)
    return dict(timeline)


def aggregate_intervals(intervals: Iterable[DrawingInterval], ctx: Context) -> IntervalAggregate:
    """
    Build the timeline and split every occupied second evenly among its users.

    Users are keyed in the order their first interval appears so downstream
    output is deterministic. Zero-duration intervals contribute nothing.
    """
    intervals = list(intervals)
    timeline = build_timeline(intervals)

    users: Dict[str, UserSeconds] = {}
    for interval in intervals:
        if interval.duration_seconds > 0 and interval.user_id not in users:
            users[interval.user_id] = UserSeconds()

    shares: Dict[int, Decimal] = {}
    for second in sorted(timeline):
        active = timeline[second]
        n = len(active)
        share = shares.get(n)
        if share is None:
            share = shares[n] = ctx.divide(Decimal(1), Decimal(n))
        for user_id in active:
            tallies = users[user_id]
            tallies.weighted = ctx.add(tallies.weighted, share)
            if n == 1:
                tallies.exclusive += 1
            else:
                tallies.shared += 1

    return IntervalAggregate(timeline=timeline, users=users)

