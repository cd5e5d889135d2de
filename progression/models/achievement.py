"""Achievement models for gamification"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from progression.models.streak import EntityKind


class AchievementCategory(str, Enum):
    """Achievement categories"""
    CONSISTENCY = "consistency"
    MILESTONES = "milestones"
    PROGRESSION = "progression"
    FINANCIAL = "financial"
    SPECIAL = "special"


class AchievementRarity(str, Enum):
    """Achievement rarity, from most to least common"""
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class CriterionType(str, Enum):
    """Which snapshot metric an achievement measures"""
    STREAK_DAYS = "streak_days"
    LONGEST_STREAK = "longest_streak"
    HABITS_COMPLETED = "habits_completed"
    TASKS_COMPLETED = "tasks_completed"
    GOALS_ACHIEVED = "goals_achieved"
    CHALLENGES_COMPLETED = "challenges_completed"
    TOTAL_POINTS = "total_points"
    LEVEL_REACHED = "level_reached"
    PRESTIGE_REACHED = "prestige_reached"
    DAYS_ACTIVE = "days_active"
    ACCUMULATED_AMOUNT = "accumulated_amount"


class AchievementReward(BaseModel):
    """What unlocking an achievement grants"""
    model_config = ConfigDict(frozen=True)

    points: int = Field(default=0, ge=0)
    badge: Optional[str] = None


class AchievementDefinition(BaseModel):
    """Achievement definition"""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    # Kept as a plain string so catalogs may carry criteria this engine
    # does not know yet; those evaluate to zero progress
    criterion: str
    target_value: float
    rarity: AchievementRarity = AchievementRarity.COMMON
    category: AchievementCategory = AchievementCategory.MILESTONES
    is_secret: bool = False
    rewards: AchievementReward = Field(default_factory=AchievementReward)
    # Restrict streak criteria to one kind of entity (None = overall streak)
    entity_kind: Optional[EntityKind] = None


class AchievementProgress(BaseModel):
    """User's progress toward one achievement"""
    user_id: str
    achievement_id: str
    current_progress: float = 0.0
    target_value: float
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    notification_sent: bool = False

    @property
    def percentage(self) -> float:
        if self.target_value <= 0:
            return 100.0
        return min(100.0, self.current_progress / self.target_value * 100)


class UnlockEvent(BaseModel):
    """Achievement unlocked during one evaluation"""
    user_id: str
    achievement_id: str
    title: str
    rarity: AchievementRarity
    reward_points: int = 0
    badge: Optional[str] = None
    unlocked_at: datetime


class ProgressSnapshot(BaseModel):
    """Read-only view of a user's counters used to evaluate achievements"""
    model_config = ConfigDict(frozen=True)

    current_streaks: dict[EntityKind, int] = Field(default_factory=dict)
    longest_streaks: dict[EntityKind, int] = Field(default_factory=dict)
    habits_completed: int = 0
    tasks_completed: int = 0
    goals_achieved: int = 0
    challenges_completed: int = 0
    total_points: int = 0
    level: int = 1
    prestige_level: int = 0
    days_active: int = 0
    accumulated_amount: float = 0.0
