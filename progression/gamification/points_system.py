"""
Points System

Turns a user action into a points ledger entry.

Award formula:
    amount = round_half_up(base × level_multiplier × streak_multiplier × time_multiplier)
             + consistency_bonus

- Level multiplier: linear from 1.0 at level 1 to 1.7 at level 100 (clamped)
- Streak multiplier: step table, 1.0 below 3 days up to 2.0 at 100+ days
- Time multiplier: 1.1 when the action was completed on time
- Consistency bonus: CONSISTENCY_BONUS_BASE × share of active days in the window

Out-of-range inputs clamp to their floor; an award is never negative.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, Optional
import logging
import math

from progression.config import CONSISTENCY_BONUS_BASE, CONSISTENCY_WINDOW_DAYS
from progression.models.points import (
    PointsBreakdown,
    PointsContext,
    PointsLedgerEntry,
    PointsSource,
)

logger = logging.getLogger(__name__)

MAX_LEVEL_FOR_MULTIPLIER = 100
MAX_LEVEL_BONUS = 0.7
ON_TIME_MULTIPLIER = 1.1

# (minimum streak days, multiplier), ascending
STREAK_MULTIPLIERS = [
    (0, 1.0),
    (3, 1.05),
    (5, 1.12),
    (7, 1.2),
    (14, 1.35),
    (30, 1.5),
    (60, 1.75),
    (100, 2.0),
]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values"""
    # Guard against products like 12.4999999999 that are 12.5 in exact arithmetic
    return int(math.floor(value + 0.5 + 1e-9))


def level_multiplier(level: int) -> float:
    """1.0 at level 1, rising linearly to 1.7 at level 100 and above"""
    level = min(max(level, 1), MAX_LEVEL_FOR_MULTIPLIER)
    return 1.0 + MAX_LEVEL_BONUS * (level - 1) / (MAX_LEVEL_FOR_MULTIPLIER - 1)


def streak_multiplier(streak_days: int) -> float:
    """Multiplier for the highest streak step reached"""
    streak_days = max(streak_days, 0)
    multiplier = 1.0
    for threshold, value in STREAK_MULTIPLIERS:
        if streak_days >= threshold:
            multiplier = value
        else:
            break
    return multiplier


def time_multiplier(on_time: bool) -> float:
    return ON_TIME_MULTIPLIER if on_time else 1.0


def consistency_bonus(ratio: float) -> int:
    ratio = min(max(ratio, 0.0), 1.0)
    return round_half_up(CONSISTENCY_BONUS_BASE * ratio)


def calculate_points(source: PointsSource, context: PointsContext) -> tuple[int, float, int]:
    """
    Compute an award without recording it

    Returns:
        (amount, combined multiplier, consistency bonus)
    """
    multiplier = (
        level_multiplier(context.level)
        * streak_multiplier(context.streak_days)
        * time_multiplier(context.on_time)
    )
    bonus = consistency_bonus(context.consistency_ratio)
    amount = max(0, round_half_up(source.base_points * multiplier) + bonus)
    return amount, multiplier, bonus


def consistency_ratio(
    ledger: Iterable[PointsLedgerEntry],
    reference_day: date,
    calendar_day: Callable[[datetime], date],
    window_days: int = CONSISTENCY_WINDOW_DAYS,
) -> float:
    """
    Share of days in the trailing window that had at least one award

    Args:
        ledger: User's ledger entries
        reference_day: Last day of the window (inclusive)
        calendar_day: Maps an entry timestamp to the user's calendar day
        window_days: Window length in days

    Returns:
        Ratio in [0, 1]
    """
    if window_days <= 0:
        return 0.0

    window_start = reference_day - timedelta(days=window_days - 1)
    active_days = set()
    for entry in ledger:
        day = calendar_day(entry.timestamp)
        if window_start <= day <= reference_day:
            active_days.add(day)

    return min(1.0, len(active_days) / window_days)


def total_points(ledger: Iterable[PointsLedgerEntry]) -> int:
    return sum(entry.amount for entry in ledger)


def points_breakdown(
    ledger: Iterable[PointsLedgerEntry],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[PointsBreakdown]:
    """
    Total points per source, largest first

    Args:
        ledger: Ledger entries
        start: Only count entries at or after this instant
        end: Only count entries before this instant
    """
    totals: dict[PointsSource, int] = {}
    for entry in ledger:
        if start is not None and entry.timestamp < start:
            continue
        if end is not None and entry.timestamp >= end:
            continue
        totals[entry.source] = totals.get(entry.source, 0) + entry.amount

    grand_total = sum(totals.values())
    breakdown = [
        PointsBreakdown(
            source=source,
            points=points,
            percentage=round(points / grand_total * 100, 2) if grand_total else 0.0,
        )
        for source, points in totals.items()
    ]
    breakdown.sort(key=lambda item: (-item.points, item.source.value))
    return breakdown


class PointsEngine:
    """
    Issues ledger entries for actions and rewards.

    Args:
        clock: Supplies timestamps when the caller does not pass one
    """

    def __init__(self, clock):
        self.clock = clock

    def award(
        self,
        source: PointsSource,
        context: PointsContext,
        user_id: str,
        source_id: Optional[str] = None,
        action_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        reason: str = "",
    ) -> PointsLedgerEntry:
        """
        Award points for an action, applying all multipliers

        Args:
            source: What the points are for
            context: Level, streak, timeliness and consistency of the user
            user_id: Recipient
            source_id: Entity the action concerned (habit id, task id, ...)
            action_id: Caller-supplied id of the triggering action
            timestamp: When the action happened (defaults to now)
            reason: Human-readable description

        Returns:
            New ledger entry (not yet persisted)
        """
        amount, multiplier, bonus = calculate_points(source, context)

        entry = PointsLedgerEntry(
            user_id=user_id,
            amount=amount,
            source=source,
            multiplier=round(multiplier, 4),
            bonus=bonus,
            timestamp=timestamp or self.clock.now(),
            source_id=source_id,
            action_id=action_id,
            reason=reason or source.value.replace("_", " "),
        )

        logger.info(
            f"Awarded {amount} points to user {user_id} for {source.value} "
            f"(multiplier {multiplier:.3f}, bonus {bonus})"
        )
        return entry

    def award_fixed(
        self,
        source: PointsSource,
        amount: int,
        user_id: str,
        source_id: Optional[str] = None,
        action_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        reason: str = "",
    ) -> PointsLedgerEntry:
        """Record a reward with an explicit amount and no multipliers"""
        amount = max(0, amount)
        entry = PointsLedgerEntry(
            user_id=user_id,
            amount=amount,
            source=source,
            timestamp=timestamp or self.clock.now(),
            source_id=source_id,
            action_id=action_id,
            reason=reason or source.value.replace("_", " "),
        )

        logger.info(f"Awarded {amount} fixed points to user {user_id} for {source.value}")
        return entry
