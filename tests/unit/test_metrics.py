"""Tests for Prometheus metrics (progression/observability/metrics.py)"""
import sys
import pytest
from unittest.mock import AsyncMock, patch

from prometheus_client import REGISTRY

from progression.exceptions import PersistenceError
from progression.observability import metrics


def _sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsServer:
    """Test start_metrics_server()"""

    def test_disabled(self):
        with patch.object(metrics, "ENABLE_METRICS", False):
            with patch.object(metrics, "start_http_server") as mock_start:
                assert metrics.start_metrics_server(9100) is False
                mock_start.assert_not_called()

    def test_enabled(self):
        with patch.object(metrics, "ENABLE_METRICS", True):
            with patch.object(metrics, "start_http_server") as mock_start:
                assert metrics.start_metrics_server(9100) is True
                mock_start.assert_called_once_with(9100)

    def test_app_info(self):
        metrics.init_metrics()
        assert _sample("progression_app_info", {
            "environment": metrics.APP_ENV,
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}",
        }) == 1.0


class TestActionMetrics:
    """Counters updated by the coordinator"""

    @pytest.mark.asyncio
    async def test_process_counts_actions_and_points(self, coordinator, make_action):
        labels = {"source": "habit_completed", "status": "success"}
        before_actions = _sample("progression_actions_processed_total", labels)
        before_points = _sample("progression_points_awarded_total", {"source": "habit_completed"})
        before_unlocks = _sample("progression_achievements_unlocked_total", {"rarity": "common"})

        await coordinator.process(make_action())

        assert _sample("progression_actions_processed_total", labels) == before_actions + 1
        assert _sample("progression_points_awarded_total", {"source": "habit_completed"}) == before_points + 10
        assert _sample("progression_achievements_unlocked_total", {"rarity": "common"}) == before_unlocks + 1

    @pytest.mark.asyncio
    async def test_duplicate_status(self, coordinator, make_action):
        labels = {"source": "habit_completed", "status": "duplicate"}
        before = _sample("progression_actions_processed_total", labels)

        await coordinator.process(make_action(action_id="dup-1"))
        await coordinator.process(make_action(action_id="dup-1"))

        assert _sample("progression_actions_processed_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_failed_commit_counts_nothing_applied(self, coordinator, store, make_action, monkeypatch):
        before_points = _sample("progression_points_awarded_total", {"source": "habit_completed"})
        before_unlocks = _sample("progression_achievements_unlocked_total", {"rarity": "common"})
        error_labels = {"source": "habit_completed", "status": "error"}
        before_errors = _sample("progression_actions_processed_total", error_labels)
        monkeypatch.setattr(store, "commit", AsyncMock(side_effect=RuntimeError("disk full")))

        with pytest.raises(PersistenceError):
            await coordinator.process(make_action())

        assert _sample("progression_points_awarded_total", {"source": "habit_completed"}) == before_points
        assert _sample("progression_achievements_unlocked_total", {"rarity": "common"}) == before_unlocks
        assert _sample("progression_actions_processed_total", error_labels) == before_errors + 1

    @pytest.mark.asyncio
    async def test_sweep_counts_resets(self, coordinator, fixed_clock, make_action, test_user_id):
        labels = {"entity_kind": "habit"}
        before = _sample("progression_streak_resets_total", labels)
        await coordinator.process(make_action())
        fixed_clock.advance(days=3)

        await coordinator.sweep_streaks(test_user_id)

        assert _sample("progression_streak_resets_total", labels) == before + 1
