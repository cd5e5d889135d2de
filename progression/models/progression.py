"""Level and lifetime progression models"""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class UserProgressionState(BaseModel):
    """Per-user XP, level and lifetime totals"""
    user_id: str
    total_xp: int = Field(default=0, ge=0)
    current_level: int = Field(default=1, ge=1)
    current_xp: int = Field(default=0, ge=0)
    prestige_level: int = Field(default=0, ge=0)
    title: str = "Novice"

    # Lifetime totals
    habits_completed: int = Field(default=0, ge=0)
    tasks_completed: int = Field(default=0, ge=0)
    goals_achieved: int = Field(default=0, ge=0)
    challenges_completed: int = Field(default=0, ge=0)
    days_active: int = Field(default=0, ge=0)
    accumulated_amount: float = Field(default=0.0, ge=0)
    last_active_day: Optional[date] = None
    # IANA name; calendar days for this user are taken in it (None: the coordinator clock's zone)
    timezone: Optional[str] = None


class RewardType(str, Enum):
    POINTS = "points"
    TITLE = "title"
    THEME = "theme"
    FEATURE = "feature"
    SPECIAL = "special"


class LevelReward(BaseModel):
    """Reward unlocked by reaching a level"""
    type: RewardType
    value: int = 0
    title: str
    description: str


class LevelUpEvent(BaseModel):
    """One level gained"""
    user_id: str
    new_level: int
    xp_required: int
    title: str
    title_changed: bool = False
    rewards: list[LevelReward] = Field(default_factory=list)


class PrestigeEvent(BaseModel):
    """An explicit prestige reset"""
    user_id: str
    prestige_level: int
    previous_level: int
    bonus_points: int
    title: str
