"""
Streak Tracking System

Tracks consecutive calendar days of activity per entity (habit, task, goal,
challenge) and for the user overall.

Transition rules for record_activity(day):
- Same day as the last credited day: no change (double-credit protection)
- Exactly one day after: extend the streak
- Earlier than the last credited day: no change (late backfill)
- Anything else (first activity, or a gap of 2+ days): restart at 1

Days are the user's calendar days, supplied by the injected clock.

Milestones (7, 14, 30, 60, 100, 365 days) carry bonus points.
"""

from datetime import date, timedelta
from typing import Optional
import logging

from progression.config import is_production
from progression.exceptions import InvariantViolationError
from progression.models.streak import (
    StreakChange,
    StreakKey,
    StreakState,
    StreakStatus,
    StreakUpdate,
)

logger = logging.getLogger(__name__)

MILESTONE_BONUSES = {7: 50, 14: 100, 30: 200, 60: 300, 100: 500, 365: 1000}


def new_streak(key: StreakKey) -> StreakState:
    return StreakState(key=key)


def ensure_invariant(state: StreakState) -> StreakState:
    """
    Check current_streak <= longest_streak

    Raises InvariantViolationError outside production. In production the
    state is repaired and a warning logged.
    """
    if state.current_streak <= state.longest_streak:
        return state

    message = (
        f"Streak {state.key.entity_kind.value}/{state.key.entity_id} for user "
        f"{state.key.user_id} has current {state.current_streak} > longest {state.longest_streak}"
    )
    if not is_production():
        raise InvariantViolationError(
            message,
            invariant="current_streak <= longest_streak",
            user_id=state.key.user_id,
            operation="streak_update",
        )

    logger.warning(f"{message}; repairing")
    return state.model_copy(update={"longest_streak": state.current_streak})


def check_continuity(state: StreakState, reference_day: date) -> bool:
    """True if the streak is still alive on reference_day (active today or yesterday)"""
    if state.last_activity_date is None:
        return False
    return state.last_activity_date in (reference_day, reference_day - timedelta(days=1))


def streak_status(state: StreakState, reference_day: date) -> StreakStatus:
    if state.last_activity_date is None or state.current_streak == 0:
        return StreakStatus.NO_STREAK
    if check_continuity(state, reference_day):
        return StreakStatus.ACTIVE
    return StreakStatus.BROKEN


def effective_streak(state: Optional[StreakState], reference_day: date) -> int:
    """Current streak length if it is still alive on reference_day, else 0"""
    if state is None or not check_continuity(state, reference_day):
        return 0
    return state.current_streak


def record_activity(state: StreakState, day: date) -> StreakUpdate:
    """
    Credit one activity on `day`

    Args:
        state: Streak before the activity
        day: User's calendar day of the activity

    Returns:
        StreakUpdate with the new state and the milestone reached, if any
    """
    state = ensure_invariant(state)
    previous = state.current_streak
    last_day = state.last_activity_date

    if last_day is not None and day <= last_day:
        # Same day, or backfill of a day before the last credited one
        logger.debug(
            f"Streak {state.key.entity_id} for user {state.key.user_id} unchanged "
            f"(activity {day}, last credited {last_day})"
        )
        return StreakUpdate(state=state, previous_streak=previous, change=StreakChange.UNCHANGED)

    if last_day is not None and day == last_day + timedelta(days=1) and previous > 0:
        current = previous + 1
        updated = state.model_copy(update={
            "current_streak": current,
            "longest_streak": max(state.longest_streak, current),
            "last_activity_date": day,
        })
        change = StreakChange.EXTENDED
    else:
        updated = state.model_copy(update={
            "current_streak": 1,
            "longest_streak": max(state.longest_streak, 1),
            "last_activity_date": day,
            "streak_start_date": day,
        })
        change = StreakChange.STARTED if last_day is None else StreakChange.RESTARTED
        if previous > 0:
            logger.info(
                f"User {state.key.user_id} {state.key.entity_kind.value} streak "
                f"{state.key.entity_id} restarted; was {previous} days, last active {last_day}"
            )

    milestone = None
    bonus = 0
    if updated.current_streak in MILESTONE_BONUSES and updated.current_streak != previous:
        milestone = updated.current_streak
        bonus = MILESTONE_BONUSES[milestone]
        logger.info(
            f"User {state.key.user_id} reached {milestone}-day "
            f"{state.key.entity_kind.value} streak (+{bonus})"
        )

    logger.debug(
        f"Streak {state.key.entity_id} for user {state.key.user_id}: "
        f"{previous} → {updated.current_streak} days"
    )
    return StreakUpdate(
        state=updated,
        previous_streak=previous,
        change=change,
        milestone=milestone,
        milestone_bonus=bonus,
    )


def reset_streak(state: StreakState, day: date) -> StreakState:
    """Zero the current streak; the longest streak and last credited day are kept"""
    if state.current_streak > 0:
        logger.info(
            f"Reset {state.key.entity_kind.value} streak {state.key.entity_id} "
            f"for user {state.key.user_id} (was {state.current_streak} days)"
        )
    return state.model_copy(update={"current_streak": 0, "streak_start_date": day})


def sweep(state: StreakState, reference_day: date) -> StreakState:
    """Reset the streak if it was broken by a missed day, else leave it alone"""
    state = ensure_invariant(state)
    if streak_status(state, reference_day) == StreakStatus.BROKEN:
        return reset_streak(state, reference_day)
    return state


def next_milestone(current_streak: int) -> Optional[int]:
    for milestone in sorted(MILESTONE_BONUSES):
        if milestone > current_streak:
            return milestone
    return None


class StreakTracker:
    """
    Streak operations bound to a clock, so callers can omit the day.

    Args:
        clock: Provides the user's calendar day
    """

    def __init__(self, clock):
        self.clock = clock

    def _day(self, day: Optional[date]) -> date:
        return day if day is not None else self.clock.today()

    def record_activity(self, state: StreakState, day: Optional[date] = None) -> StreakUpdate:
        return record_activity(state, self._day(day))

    def check_continuity(self, state: StreakState, reference_day: Optional[date] = None) -> bool:
        return check_continuity(state, self._day(reference_day))

    def status(self, state: StreakState, reference_day: Optional[date] = None) -> StreakStatus:
        return streak_status(state, self._day(reference_day))

    def reset_streak(self, state: StreakState, day: Optional[date] = None) -> StreakState:
        return reset_streak(state, self._day(day))

    def sweep(self, state: StreakState, reference_day: Optional[date] = None) -> StreakState:
        return sweep(state, self._day(reference_day))

    def effective_streak(self, state: Optional[StreakState], reference_day: Optional[date] = None) -> int:
        return effective_streak(state, self._day(reference_day))
