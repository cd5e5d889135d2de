"""Streak models"""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EntityKind(str, Enum):
    """Kinds of entity a streak can be kept for"""
    HABIT = "habit"
    TASK = "task"
    GOAL = "goal"
    CHALLENGE = "challenge"
    OVERALL = "overall"


class StreakStatus(str, Enum):
    NO_STREAK = "no_streak"
    ACTIVE = "active"
    BROKEN = "broken"


class StreakChange(str, Enum):
    """What a single recorded activity did to the streak"""
    STARTED = "started"
    EXTENDED = "extended"
    RESTARTED = "restarted"
    UNCHANGED = "unchanged"


class StreakKey(BaseModel):
    """(user, entity, kind) identity of a streak"""
    model_config = ConfigDict(frozen=True)

    user_id: str
    entity_id: str
    entity_kind: EntityKind

    @classmethod
    def overall(cls, user_id: str) -> "StreakKey":
        return cls(user_id=user_id, entity_id=EntityKind.OVERALL.value, entity_kind=EntityKind.OVERALL)


class StreakState(BaseModel):
    """Current and best run of consecutive active days for one entity"""
    key: StreakKey
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_activity_date: Optional[date] = None
    streak_start_date: Optional[date] = None


class StreakUpdate(BaseModel):
    """Result of recording one activity"""
    state: StreakState
    previous_streak: int
    change: StreakChange
    milestone: Optional[int] = None
    milestone_bonus: int = 0
