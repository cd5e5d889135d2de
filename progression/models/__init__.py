"""Pydantic models for progression records"""
from progression.models.achievement import (
    AchievementCategory,
    AchievementDefinition,
    AchievementProgress,
    AchievementRarity,
    AchievementReward,
    CriterionType,
    ProgressSnapshot,
    UnlockEvent,
)
from progression.models.action import ActionResult, UserAction
from progression.models.analytics import (
    CorrelationDirection,
    CorrelationResult,
    CorrelationStrength,
    HeatmapCell,
    HeatmapResult,
    SeriesPoint,
    SuccessPrediction,
    TrendDirection,
    TrendResult,
    WeekdayRate,
)
from progression.models.points import (
    BASE_POINTS,
    PointsBreakdown,
    PointsContext,
    PointsLedgerEntry,
    PointsSource,
)
from progression.models.progression import (
    LevelReward,
    LevelUpEvent,
    PrestigeEvent,
    RewardType,
    UserProgressionState,
)
from progression.models.streak import (
    EntityKind,
    StreakChange,
    StreakKey,
    StreakState,
    StreakStatus,
    StreakUpdate,
)

__all__ = [
    "AchievementCategory",
    "AchievementDefinition",
    "AchievementProgress",
    "AchievementRarity",
    "AchievementReward",
    "CriterionType",
    "ProgressSnapshot",
    "UnlockEvent",
    "ActionResult",
    "UserAction",
    "CorrelationDirection",
    "CorrelationResult",
    "CorrelationStrength",
    "HeatmapCell",
    "HeatmapResult",
    "SeriesPoint",
    "SuccessPrediction",
    "TrendDirection",
    "TrendResult",
    "WeekdayRate",
    "BASE_POINTS",
    "PointsBreakdown",
    "PointsContext",
    "PointsLedgerEntry",
    "PointsSource",
    "LevelReward",
    "LevelUpEvent",
    "PrestigeEvent",
    "RewardType",
    "UserProgressionState",
    "EntityKind",
    "StreakChange",
    "StreakKey",
    "StreakState",
    "StreakStatus",
    "StreakUpdate",
]
