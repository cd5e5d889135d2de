"""Unit tests for Streak System (progression/gamification/streak_system.py)"""
import pytest
from datetime import datetime, timedelta, timezone

from progression.exceptions import InvariantViolationError
from progression.gamification import streak_system
from progression.gamification.streak_system import (
    StreakTracker,
    check_continuity,
    effective_streak,
    next_milestone,
    record_activity,
    reset_streak,
    streak_status,
    sweep,
)
from progression.models.streak import StreakChange, StreakState, StreakStatus
from progression.utils.datetime_helpers import FixedClock


def _streak(key, current, longest, last_day, start_day=None):
    return StreakState(
        key=key,
        current_streak=current,
        longest_streak=longest,
        last_activity_date=last_day,
        streak_start_date=start_day or last_day,
    )


# ============================================================================
# record_activity Tests
# ============================================================================

class TestRecordActivity:
    """Transition rules for one recorded activity"""

    def test_first_activity_starts_streak(self, empty_streak, day0):
        update = record_activity(empty_streak, day0)

        assert update.change == StreakChange.STARTED
        assert update.state.current_streak == 1
        assert update.state.longest_streak == 1
        assert update.state.last_activity_date == day0
        assert update.state.streak_start_date == day0

    def test_consecutive_day_extends(self, empty_streak, day0):
        state = record_activity(empty_streak, day0).state
        update = record_activity(state, day0 + timedelta(days=1))

        assert update.change == StreakChange.EXTENDED
        assert update.state.current_streak == 2
        assert update.state.longest_streak == 2
        assert update.state.streak_start_date == day0

    def test_gap_resets_to_one(self, empty_streak, day0):
        state = record_activity(empty_streak, day0).state
        day3 = day0 + timedelta(days=3)
        update = record_activity(state, day3)

        assert update.change == StreakChange.RESTARTED
        assert update.state.current_streak == 1
        assert update.state.streak_start_date == day3
        assert update.state.last_activity_date == day3

    def test_same_day_is_idempotent(self, empty_streak, day0):
        state = record_activity(empty_streak, day0).state
        update = record_activity(state, day0)

        assert update.change == StreakChange.UNCHANGED
        assert update.state == state
        assert update.state.current_streak == 1

    def test_backfill_before_last_day_is_ignored(self, habit_key, day0):
        state = _streak(habit_key, 3, 3, day0)
        update = record_activity(state, day0 - timedelta(days=5))

        assert update.change == StreakChange.UNCHANGED
        assert update.state.last_activity_date == day0
        assert update.state.current_streak == 3

    def test_longest_streak_kept_after_restart(self, habit_key, day0):
        state = _streak(habit_key, 10, 10, day0)
        update = record_activity(state, day0 + timedelta(days=2))

        assert update.state.current_streak == 1
        assert update.state.longest_streak == 10
        assert update.previous_streak == 10

    def test_current_never_exceeds_longest(self, empty_streak, day0):
        state = empty_streak
        for offset in [0, 1, 2, 5, 6, 6, 7, 20, 21]:
            state = record_activity(state, day0 + timedelta(days=offset)).state
            assert state.current_streak <= state.longest_streak


class TestMilestones:
    """Milestone detection and bonuses"""

    def test_seventh_day_hits_milestone(self, habit_key, day0):
        state = _streak(habit_key, 6, 6, day0)
        update = record_activity(state, day0 + timedelta(days=1))

        assert update.milestone == 7
        assert update.milestone_bonus == 50

    def test_same_day_repeat_does_not_repeat_milestone(self, habit_key, day0):
        state = _streak(habit_key, 7, 7, day0)
        update = record_activity(state, day0)

        assert update.milestone is None
        assert update.milestone_bonus == 0

    def test_non_milestone_day(self, habit_key, day0):
        update = record_activity(_streak(habit_key, 7, 7, day0), day0 + timedelta(days=1))
        assert update.milestone is None

    @pytest.mark.parametrize("current,expected", [
        (0, 7),
        (7, 14),
        (100, 365),
        (365, None),
    ])
    def test_next_milestone(self, current, expected):
        assert next_milestone(current) == expected


# ============================================================================
# Continuity, status and sweep Tests
# ============================================================================

class TestContinuity:
    """Tests for check_continuity / status / sweep"""

    def test_alive_today_and_yesterday(self, habit_key, day0):
        state = _streak(habit_key, 4, 4, day0)
        assert check_continuity(state, day0)
        assert check_continuity(state, day0 + timedelta(days=1))
        assert not check_continuity(state, day0 + timedelta(days=2))

    def test_no_activity_is_not_alive(self, empty_streak, day0):
        assert not check_continuity(empty_streak, day0)
        assert streak_status(empty_streak, day0) == StreakStatus.NO_STREAK

    def test_status_active_and_broken(self, habit_key, day0):
        state = _streak(habit_key, 4, 4, day0)
        assert streak_status(state, day0 + timedelta(days=1)) == StreakStatus.ACTIVE
        assert streak_status(state, day0 + timedelta(days=2)) == StreakStatus.BROKEN

    def test_effective_streak(self, habit_key, day0):
        state = _streak(habit_key, 4, 4, day0)
        assert effective_streak(state, day0 + timedelta(days=1)) == 4
        assert effective_streak(state, day0 + timedelta(days=3)) == 0
        assert effective_streak(None, day0) == 0

    def test_sweep_resets_broken_streak(self, habit_key, day0):
        state = _streak(habit_key, 4, 9, day0)
        reference = day0 + timedelta(days=3)

        swept = sweep(state, reference)

        assert swept.current_streak == 0
        assert swept.longest_streak == 9
        assert swept.streak_start_date == reference
        assert streak_status(swept, reference) == StreakStatus.NO_STREAK

    def test_sweep_leaves_alive_streak(self, habit_key, day0):
        state = _streak(habit_key, 4, 9, day0)
        assert sweep(state, day0 + timedelta(days=1)) == state

    def test_activity_after_reset_starts_at_one(self, habit_key, day0):
        state = reset_streak(_streak(habit_key, 4, 9, day0), day0)
        update = record_activity(state, day0 + timedelta(days=1))

        assert update.state.current_streak == 1
        assert update.state.longest_streak == 9


class TestInvariant:
    """current_streak <= longest_streak enforcement"""

    def test_violation_raises_outside_production(self, habit_key, day0):
        broken = _streak(habit_key, 5, 3, day0)
        with pytest.raises(InvariantViolationError):
            record_activity(broken, day0 + timedelta(days=1))

    def test_violation_self_heals_in_production(self, habit_key, day0, monkeypatch, caplog):
        monkeypatch.setattr(streak_system, "is_production", lambda: True)
        broken = _streak(habit_key, 5, 3, day0)

        update = record_activity(broken, day0 + timedelta(days=1))

        assert update.state.current_streak == 6
        assert update.state.longest_streak == 6
        assert "repairing" in caplog.text


class TestStreakTracker:
    """Tests for the clock-bound tracker"""

    def test_uses_users_calendar_day(self, empty_streak):
        # 23:30 in New York is already the next day in UTC
        moment = datetime(2024, 3, 5, 4, 30, tzinfo=timezone.utc)
        tracker = StreakTracker(FixedClock(moment, "America/New_York"))

        update = tracker.record_activity(empty_streak)

        assert update.state.last_activity_date == datetime(2024, 3, 4).date()

    def test_day_rollover_extends(self, empty_streak, fixed_clock):
        tracker = StreakTracker(fixed_clock)
        state = tracker.record_activity(empty_streak).state

        fixed_clock.advance(days=1)
        state = tracker.record_activity(state).state

        assert state.current_streak == 2
        assert tracker.status(state) == StreakStatus.ACTIVE
