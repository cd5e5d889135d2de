"""Global test fixtures and utilities for progression engine tests"""
import pytest
from datetime import datetime, timezone

from progression.gamification.coordinator import GameCoordinator
from progression.gamification.memory_store import (
    InMemoryHealthDataProvider,
    InMemoryProgressionStore,
    LoggingNotifier,
)
from progression.models.action import UserAction
from progression.models.points import PointsSource
from progression.models.streak import EntityKind, StreakKey, StreakState
from progression.utils.datetime_helpers import FixedClock


# ============================================================================
# Clock & Calendar Fixtures
# ============================================================================

@pytest.fixture
def start_moment():
    """Monday 2024-03-04 12:00 UTC"""
    return datetime(2024, 3, 4, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def day0(start_moment):
    return start_moment.date()


@pytest.fixture
def fixed_clock(start_moment):
    """Deterministic UTC clock starting at start_moment"""
    return FixedClock(start_moment, "UTC")


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "123456789"


@pytest.fixture
def habit_key(test_user_id):
    return StreakKey(user_id=test_user_id, entity_id="habit-water", entity_kind=EntityKind.HABIT)


@pytest.fixture
def empty_streak(habit_key):
    return StreakState(key=habit_key)


# ============================================================================
# Gateway Fixtures
# ============================================================================

@pytest.fixture
def store():
    return InMemoryProgressionStore()


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def health_provider():
    return InMemoryHealthDataProvider()


@pytest.fixture
def coordinator(store, notifier, fixed_clock):
    return GameCoordinator(store=store, notifier=notifier, clock=fixed_clock)


@pytest.fixture
def make_action(test_user_id, fixed_clock):
    """Factory for habit completions at the clock's current time"""
    def _make(
        source: PointsSource = PointsSource.HABIT_COMPLETED,
        entity_id: str = "habit-water",
        user_id: str = None,
        **kwargs
    ) -> UserAction:
        return UserAction(
            user_id=user_id or test_user_id,
            source=source,
            entity_id=entity_id,
            occurred_at=kwargs.pop("occurred_at", fixed_clock.now()),
            **kwargs
        )
    return _make

