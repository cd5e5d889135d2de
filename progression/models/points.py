"""Points ledger models"""
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class PointsSource(str, Enum):
    """What an award was earned for"""
    HABIT_COMPLETED = "habit_completed"
    TASK_COMPLETED = "task_completed"
    GOAL_ACHIEVED = "goal_achieved"
    STREAK_MILESTONE = "streak_milestone"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    LEVEL_UP = "level_up"
    CHALLENGE_COMPLETED = "challenge_completed"
    DAILY_LOGIN = "daily_login"
    WEEKLY_GOAL = "weekly_goal"
    MONTHLY_GOAL = "monthly_goal"
    SPECIAL_EVENT = "special_event"
    BONUS = "bonus"
    SAVINGS_RECORDED = "savings_recorded"

    @property
    def base_points(self) -> int:
        return BASE_POINTS[self]


BASE_POINTS: dict[PointsSource, int] = {
    PointsSource.HABIT_COMPLETED: 10,
    PointsSource.TASK_COMPLETED: 15,
    PointsSource.GOAL_ACHIEVED: 50,
    PointsSource.STREAK_MILESTONE: 25,
    PointsSource.ACHIEVEMENT_UNLOCKED: 100,
    PointsSource.LEVEL_UP: 200,
    PointsSource.CHALLENGE_COMPLETED: 75,
    PointsSource.DAILY_LOGIN: 5,
    PointsSource.WEEKLY_GOAL: 100,
    PointsSource.MONTHLY_GOAL: 300,
    PointsSource.SPECIAL_EVENT: 150,
    PointsSource.BONUS: 20,
    PointsSource.SAVINGS_RECORDED: 10,
}


class PointsContext(BaseModel):
    """Inputs to the multiplier rules for one award"""
    level: int = 1
    streak_days: int = 0
    on_time: bool = False
    consistency_ratio: float = 0.0


class PointsLedgerEntry(BaseModel):
    """Immutable, append-only record of one award"""
    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    amount: int = Field(ge=0)
    source: PointsSource
    multiplier: float = 1.0
    bonus: int = 0
    timestamp: datetime
    source_id: Optional[str] = None
    action_id: Optional[str] = None
    reason: str = ""


class PointsBreakdown(BaseModel):
    """Points earned from one source over a period"""
    source: PointsSource
    points: int
    percentage: float = 0.0
