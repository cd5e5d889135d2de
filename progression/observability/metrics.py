"""
Prometheus metrics for the progression engine.

Metrics are grouped by category:
- Action metrics: actions processed by the coordinator and their latency
- Progression metrics: points, level-ups, prestiges
- Achievement and streak metrics: unlocks by rarity, streak resets
- Analytics metrics: computation time per analysis

The host application exposes them with start_metrics_server() or its own
/metrics endpoint.
"""

import logging
import sys

from prometheus_client import Counter, Histogram, Info, start_http_server

from progression.config import APP_ENV, ENABLE_METRICS

logger = logging.getLogger(__name__)

# =============================================================================
# Action Metrics
# =============================================================================

actions_processed_total = Counter(
    "progression_actions_processed_total",
    "Total user actions processed by the coordinator",
    ["source", "status"],  # status: success/duplicate/error
)

action_processing_duration_seconds = Histogram(
    "progression_action_processing_duration_seconds",
    "Time to process one user action in seconds",
    ["source"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

# =============================================================================
# Progression Metrics
# =============================================================================

points_awarded_total = Counter(
    "progression_points_awarded_total",
    "Total points awarded",
    ["source"],
)

level_ups_total = Counter(
    "progression_level_ups_total",
    "Total levels gained",
)

prestiges_total = Counter(
    "progression_prestiges_total",
    "Total prestige resets",
)

# =============================================================================
# Achievement & Streak Metrics
# =============================================================================

achievements_unlocked_total = Counter(
    "progression_achievements_unlocked_total",
    "Total achievements unlocked",
    ["rarity"],
)

streak_resets_total = Counter(
    "progression_streak_resets_total",
    "Total streaks reset after a missed day",
    ["entity_kind"],
)

# =============================================================================
# Analytics Metrics
# =============================================================================

analytics_duration_seconds = Histogram(
    "progression_analytics_duration_seconds",
    "Analytics computation time in seconds",
    ["analysis"],  # analysis: trend/correlation/heatmap/prediction/correlation_matrix
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

# =============================================================================
# Application Info
# =============================================================================

app_info = Info(
    "progression_app",
    "Progression engine information",
)


def init_metrics() -> None:
    """Record static metadata about the running engine"""
    app_info.info(
        {
            "environment": APP_ENV,
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}",
        }
    )
    logger.info("Prometheus metrics initialized")


def start_metrics_server(port: int = 8000) -> bool:
    """
    Expose metrics over HTTP when ENABLE_METRICS is set

    Returns:
        True if the server was started
    """
    if not ENABLE_METRICS:
        logger.info("Metrics collection is disabled (ENABLE_METRICS=false)")
        return False

    init_metrics()
    start_http_server(port)
    logger.info(f"Metrics server listening on port {port}")
    return True
