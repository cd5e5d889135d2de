"""Unit tests for Points System (progression/gamification/points_system.py)"""
import pytest
from datetime import timedelta

from pydantic import ValidationError as PydanticValidationError

from progression.gamification.points_system import (
    PointsEngine,
    calculate_points,
    consistency_bonus,
    consistency_ratio,
    level_multiplier,
    points_breakdown,
    round_half_up,
    streak_multiplier,
    time_multiplier,
    total_points,
)
from progression.models.points import PointsContext, PointsLedgerEntry, PointsSource


def _entry(user_id, amount, source, timestamp):
    return PointsLedgerEntry(user_id=user_id, amount=amount, source=source, timestamp=timestamp)


class TestMultipliers:
    """Tests for the individual multiplier rules"""

    @pytest.mark.parametrize("level,expected", [
        (1, 1.0),
        (100, 1.7),
        (250, 1.7),
        (0, 1.0),
        (-5, 1.0),
    ])
    def test_level_multiplier_is_clamped_linear(self, level, expected):
        assert level_multiplier(level) == pytest.approx(expected)

    def test_level_multiplier_midpoint(self):
        assert level_multiplier(50) == pytest.approx(1.0 + 0.7 * 49 / 99)

    @pytest.mark.parametrize("streak,expected", [
        (-3, 1.0),
        (0, 1.0),
        (2, 1.0),
        (3, 1.05),
        (6, 1.12),
        (7, 1.2),
        (13, 1.2),
        (14, 1.35),
        (30, 1.5),
        (59, 1.5),
        (60, 1.75),
        (99, 1.75),
        (100, 2.0),
        (1000, 2.0),
    ])
    def test_streak_multiplier_steps(self, streak, expected):
        assert streak_multiplier(streak) == expected

    def test_streak_multiplier_is_monotonic(self):
        values = [streak_multiplier(days) for days in range(0, 200)]
        assert values == sorted(values)

    def test_time_multiplier(self):
        assert time_multiplier(True) == 1.1
        assert time_multiplier(False) == 1.0

    @pytest.mark.parametrize("ratio,expected", [
        (0.0, 0),
        (0.25, 3),  # 2.5 rounds half up
        (0.5, 5),
        (1.0, 10),
        (1.5, 10),
        (-1.0, 0),
    ])
    def test_consistency_bonus_clamps_ratio(self, ratio, expected):
        assert consistency_bonus(ratio) == expected

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.49) == 2
        assert round_half_up(0.0) == 0


class TestCalculatePoints:
    """Table of (tag, level, streak, on_time, consistency) → amount"""

    @pytest.mark.parametrize("source,level,streak,on_time,consistency,expected", [
        (PointsSource.HABIT_COMPLETED, 1, 0, False, 0.0, 10),
        (PointsSource.TASK_COMPLETED, 1, 0, True, 0.0, 17),
        (PointsSource.GOAL_ACHIEVED, 100, 100, True, 1.0, 197),
        (PointsSource.DAILY_LOGIN, 1, 7, False, 0.5, 11),
        (PointsSource.ACHIEVEMENT_UNLOCKED, 1, 0, False, 0.0, 100),
        (PointsSource.SAVINGS_RECORDED, 1, 3, False, 0.0, 11),
    ])
    def test_award_table(self, source, level, streak, on_time, consistency, expected):
        context = PointsContext(level=level, streak_days=streak, on_time=on_time, consistency_ratio=consistency)
        amount, _, _ = calculate_points(source, context)
        assert amount == expected

    def test_level_four_streak_six_on_time_scenario(self):
        """Level 4, 6-day streak, on time habit completion"""
        context = PointsContext(level=4, streak_days=6, on_time=True)
        raw = 10 * (1 + 0.7 * 3 / 99) * 1.12 * 1.1

        amount, multiplier, bonus = calculate_points(PointsSource.HABIT_COMPLETED, context)

        assert raw == pytest.approx(12.581, abs=1e-3)
        assert multiplier == pytest.approx(raw / 10)
        assert bonus == 0
        assert amount == 13

    def test_negative_inputs_never_give_negative_amount(self):
        context = PointsContext(level=-10, streak_days=-10, consistency_ratio=-3)
        amount, _, _ = calculate_points(PointsSource.DAILY_LOGIN, context)
        assert amount == 5


class TestPointsEngine:
    """Tests for PointsEngine ledger entries"""

    def test_award_builds_entry(self, fixed_clock, test_user_id):
        engine = PointsEngine(fixed_clock)

        entry = engine.award(
            PointsSource.HABIT_COMPLETED,
            PointsContext(level=1, streak_days=7),
            test_user_id,
            source_id="habit-water",
            action_id="a-1",
        )

        assert entry.amount == 12
        assert entry.multiplier == pytest.approx(1.2)
        assert entry.timestamp == fixed_clock.now()
        assert entry.source_id == "habit-water"
        assert entry.action_id == "a-1"
        assert entry.reason == "habit completed"

    def test_entries_are_immutable(self, fixed_clock, test_user_id):
        entry = PointsEngine(fixed_clock).award(PointsSource.BONUS, PointsContext(), test_user_id)
        with pytest.raises(PydanticValidationError):
            entry.amount = 1000

    def test_award_fixed_clamps_negative(self, fixed_clock, test_user_id):
        entry = PointsEngine(fixed_clock).award_fixed(PointsSource.STREAK_MILESTONE, -50, test_user_id)
        assert entry.amount == 0
        assert entry.multiplier == 1.0


class TestLedgerQueries:
    """Tests for consistency ratio, totals and breakdowns"""

    def test_consistency_ratio_counts_distinct_days_in_window(self, fixed_clock, test_user_id, start_moment):
        ledger = [
            _entry(test_user_id, 10, PointsSource.HABIT_COMPLETED, start_moment),
            _entry(test_user_id, 10, PointsSource.HABIT_COMPLETED, start_moment + timedelta(hours=1)),
            _entry(test_user_id, 10, PointsSource.HABIT_COMPLETED, start_moment - timedelta(days=1)),
            _entry(test_user_id, 10, PointsSource.HABIT_COMPLETED, start_moment - timedelta(days=29)),
            # Outside the 30-day window
            _entry(test_user_id, 10, PointsSource.HABIT_COMPLETED, start_moment - timedelta(days=30)),
        ]

        ratio = consistency_ratio(ledger, start_moment.date(), fixed_clock.calendar_day)

        assert ratio == pytest.approx(3 / 30)

    def test_consistency_ratio_empty_ledger(self, fixed_clock, day0):
        assert consistency_ratio([], day0, fixed_clock.calendar_day) == 0.0

    def test_total_points(self, test_user_id, start_moment):
        ledger = [
            _entry(test_user_id, 10, PointsSource.HABIT_COMPLETED, start_moment),
            _entry(test_user_id, 25, PointsSource.STREAK_MILESTONE, start_moment),
        ]
        assert total_points(ledger) == 35

    def test_points_breakdown_sorted_by_points(self, test_user_id, start_moment):
        ledger = [
            _entry(test_user_id, 10, PointsSource.HABIT_COMPLETED, start_moment),
            _entry(test_user_id, 10, PointsSource.HABIT_COMPLETED, start_moment),
            _entry(test_user_id, 60, PointsSource.ACHIEVEMENT_UNLOCKED, start_moment),
            _entry(test_user_id, 20, PointsSource.TASK_COMPLETED, start_moment - timedelta(days=10)),
        ]

        breakdown = points_breakdown(ledger)

        assert [b.source for b in breakdown] == [
            PointsSource.ACHIEVEMENT_UNLOCKED,
            PointsSource.HABIT_COMPLETED,
            PointsSource.TASK_COMPLETED,
        ]
        assert breakdown[0].percentage == pytest.approx(60.0)
        assert sum(b.points for b in breakdown) == 100

    def test_points_breakdown_period_filter(self, test_user_id, start_moment):
        ledger = [
            _entry(test_user_id, 10, PointsSource.HABIT_COMPLETED, start_moment),
            _entry(test_user_id, 20, PointsSource.TASK_COMPLETED, start_moment - timedelta(days=10)),
        ]

        breakdown = points_breakdown(ledger, start=start_moment - timedelta(days=1))

        assert len(breakdown) == 1
        assert breakdown[0].source == PointsSource.HABIT_COMPLETED
        assert breakdown[0].percentage == pytest.approx(100.0)
