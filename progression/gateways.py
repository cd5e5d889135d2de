"""
Collaborator interfaces for the progression engine

The engine never talks to storage, push delivery or health data directly;
it goes through these protocols. In-memory implementations live in
progression.gamification.memory_store.
"""

from datetime import date, datetime
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from progression.models.achievement import AchievementProgress, UnlockEvent
from progression.models.analytics import SeriesPoint
from progression.models.points import PointsLedgerEntry
from progression.models.progression import LevelUpEvent, PrestigeEvent, UserProgressionState
from progression.models.streak import StreakKey, StreakState


class ProgressionChangeSet(BaseModel):
    """Every record one action changed, written all-or-nothing"""
    user_id: str
    state: Optional[UserProgressionState] = None
    streaks: List[StreakState] = Field(default_factory=list)
    achievement_progress: List[AchievementProgress] = Field(default_factory=list)
    ledger_entries: List[PointsLedgerEntry] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return (
            self.state is None
            and not self.streaks
            and not self.achievement_progress
            and not self.ledger_entries
        )


class Clock(Protocol):
    def now(self) -> datetime: ...

    def calendar_day(self, moment: Optional[datetime] = None) -> date: ...

    def today(self) -> date: ...


class PersistenceGateway(Protocol):
    """
    Storage for progression records.

    save* calls must be idempotent for identical input. Failures surface as
    PersistenceError.
    """

    async def load(self, user_id: str) -> Optional[UserProgressionState]: ...

    async def save(self, state: UserProgressionState) -> None: ...

    async def load_streak(self, key: StreakKey) -> Optional[StreakState]: ...

    async def save_streak(self, state: StreakState) -> None: ...

    async def load_streaks(self, user_id: str) -> List[StreakState]: ...

    async def load_achievement_progress(self, user_id: str) -> List[AchievementProgress]: ...

    async def save_achievement_progress(self, progress: List[AchievementProgress]) -> None: ...

    async def append_ledger_entries(self, entries: List[PointsLedgerEntry]) -> None: ...

    async def load_ledger(self, user_id: str) -> List[PointsLedgerEntry]: ...

    async def commit(self, changes: ProgressionChangeSet) -> None: ...


class NotificationGateway(Protocol):
    """Fire-and-forget delivery of progression events"""

    async def notify_level_up(self, event: LevelUpEvent) -> None: ...

    async def notify_achievement_unlocked(self, event: UnlockEvent) -> None: ...

    async def notify_prestige(self, event: PrestigeEvent) -> None: ...


class HealthDataProvider(Protocol):
    """Read-only source of health metric series for analytics"""

    async def series(self, metric_type: str, start: date, end: date) -> List[SeriesPoint]: ...
