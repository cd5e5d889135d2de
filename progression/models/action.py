"""Coordinator input and output models"""
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from progression.models.achievement import UnlockEvent
from progression.models.points import PointsLedgerEntry, PointsSource
from progression.models.progression import LevelUpEvent, PrestigeEvent, UserProgressionState
from progression.models.streak import EntityKind, StreakUpdate


class UserAction(BaseModel):
    """A single thing the user did that may earn progression"""
    model_config = ConfigDict(frozen=True)

    user_id: str
    source: PointsSource
    occurred_at: datetime
    entity_id: Optional[str] = None
    entity_kind: Optional[EntityKind] = None
    on_time: bool = False
    # Monetary amount for savings actions
    amount: float = Field(default=0.0, ge=0)
    # Stable id supplied by the caller; a repeated id is treated as re-delivery
    action_id: Optional[str] = None
    # User's IANA timezone, stored on their progression state when given
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{v}': {e}")
        return v


class ActionResult(BaseModel):
    """Everything one action changed, in processing order"""
    user_id: str
    duplicate: bool = False
    ledger_entries: list[PointsLedgerEntry] = Field(default_factory=list)
    xp_awarded: int = 0
    state: Optional[UserProgressionState] = None
    level_ups: list[LevelUpEvent] = Field(default_factory=list)
    streak_updates: list[StreakUpdate] = Field(default_factory=list)
    unlocks: list[UnlockEvent] = Field(default_factory=list)
    prestige_available: bool = False
    prestige: Optional[PrestigeEvent] = None

    @property
    def points_awarded(self) -> int:
        return sum(entry.amount for entry in self.ledger_entries)
