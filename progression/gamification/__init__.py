"""
Gamification engines

- Points: multiplier-based awards recorded in an append-only ledger
- Streaks: per-entity calendar-day streaks with milestones
- Levels: XP curve, titles and explicit prestige
- Achievements: catalog-driven, exactly-once unlocks
- GameCoordinator: runs one action through all of the above in order
"""

from progression.gamification.achievement_system import (
    DEFAULT_CATALOG,
    AchievementCatalog,
    AchievementEngine,
    load_catalog,
    load_catalog_file,
)
from progression.gamification.coordinator import GameCoordinator
from progression.gamification.level_system import LevelProgressionEngine
from progression.gamification.memory_store import (
    InMemoryHealthDataProvider,
    InMemoryProgressionStore,
    LoggingNotifier,
)
from progression.gamification.points_system import PointsEngine
from progression.gamification.streak_system import StreakTracker

__all__ = [
    "DEFAULT_CATALOG",
    "AchievementCatalog",
    "AchievementEngine",
    "load_catalog",
    "load_catalog_file",
    "GameCoordinator",
    "LevelProgressionEngine",
    "InMemoryHealthDataProvider",
    "InMemoryProgressionStore",
    "LoggingNotifier",
    "PointsEngine",
    "StreakTracker",
]
