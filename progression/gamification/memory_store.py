"""
In-memory gateway implementations

Used by tests and by hosts that embed the engine without durable storage.
Nothing here survives the process.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from progression.exceptions import wrap_persistence_exception
from progression.gateways import ProgressionChangeSet
from progression.models.achievement import AchievementProgress, UnlockEvent
from progression.models.analytics import SeriesPoint
from progression.models.points import PointsLedgerEntry
from progression.models.progression import LevelUpEvent, PrestigeEvent, UserProgressionState
from progression.models.streak import StreakKey, StreakState

logger = logging.getLogger(__name__)


class InMemoryProgressionStore:
    """
    Dict-backed PersistenceGateway.

    Every accepted write is also queued as a pending outbound change so a
    sync layer can drain and forward it; the engines never see the queue.
    """

    def __init__(self):
        self._states: Dict[str, UserProgressionState] = {}
        self._streaks: Dict[StreakKey, StreakState] = {}
        self._progress: Dict[Tuple[str, str], AchievementProgress] = {}
        self._ledger: Dict[str, List[PointsLedgerEntry]] = {}
        self._pending: List[ProgressionChangeSet] = []

    # ------------------------------------------------------------------
    # User state
    # ------------------------------------------------------------------

    async def load(self, user_id: str) -> Optional[UserProgressionState]:
        return self._states.get(user_id)

    async def save(self, state: UserProgressionState) -> None:
        await self.commit(ProgressionChangeSet(user_id=state.user_id, state=state))

    # ------------------------------------------------------------------
    # Streaks
    # ------------------------------------------------------------------

    async def load_streak(self, key: StreakKey) -> Optional[StreakState]:
        return self._streaks.get(key)

    async def save_streak(self, state: StreakState) -> None:
        await self.commit(ProgressionChangeSet(user_id=state.key.user_id, streaks=[state]))

    async def load_streaks(self, user_id: str) -> List[StreakState]:
        return [s for key, s in self._streaks.items() if key.user_id == user_id]

    # ------------------------------------------------------------------
    # Achievements
    # ------------------------------------------------------------------

    async def load_achievement_progress(self, user_id: str) -> List[AchievementProgress]:
        return [p for (uid, _), p in self._progress.items() if uid == user_id]

    async def save_achievement_progress(self, progress: List[AchievementProgress]) -> None:
        if not progress:
            return
        await self.commit(ProgressionChangeSet(
            user_id=progress[0].user_id,
            achievement_progress=list(progress),
        ))

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    async def append_ledger_entries(self, entries: List[PointsLedgerEntry]) -> None:
        if not entries:
            return
        await self.commit(ProgressionChangeSet(user_id=entries[0].user_id, ledger_entries=list(entries)))

    async def load_ledger(self, user_id: str) -> List[PointsLedgerEntry]:
        return list(self._ledger.get(user_id, []))

    # ------------------------------------------------------------------
    # Atomic write
    # ------------------------------------------------------------------

    async def commit(self, changes: ProgressionChangeSet) -> None:
        """
        Apply a change set all-or-nothing

        New dicts are built first and swapped in only when every record
        was applied, so a failure leaves the store untouched.
        """
        if changes.is_empty():
            return

        try:
            states = dict(self._states)
            streaks = dict(self._streaks)
            progress = dict(self._progress)
            ledger = {uid: list(entries) for uid, entries in self._ledger.items()}

            if changes.state is not None:
                states[changes.state.user_id] = changes.state
            for streak in changes.streaks:
                streaks[streak.key] = streak
            for record in changes.achievement_progress:
                progress[(record.user_id, record.achievement_id)] = record
            if changes.ledger_entries:
                existing_ids = {e.entry_id for e in ledger.get(changes.user_id, [])}
                user_ledger = ledger.setdefault(changes.user_id, [])
                # Re-sent entries with a known id are skipped so retries stay idempotent
                user_ledger.extend(e for e in changes.ledger_entries if e.entry_id not in existing_ids)
        except Exception as e:
            raise wrap_persistence_exception(e, operation="commit", user_id=changes.user_id)

        self._states, self._streaks, self._progress, self._ledger = states, streaks, progress, ledger
        self._pending.append(changes)
        logger.debug(
            f"Committed changes for user {changes.user_id}: "
            f"{len(changes.streaks)} streak(s), {len(changes.achievement_progress)} progress record(s), "
            f"{len(changes.ledger_entries)} ledger entr(y/ies)"
        )

    # ------------------------------------------------------------------
    # Outbound sync queue
    # ------------------------------------------------------------------

    def pending_changes_count(self) -> int:
        return len(self._pending)

    def drain_pending_changes(self) -> List[ProgressionChangeSet]:
        """Return and clear every change committed since the last drain"""
        drained, self._pending = self._pending, []
        return drained


class LoggingNotifier:
    """NotificationGateway that logs events and keeps them for inspection"""

    def __init__(self):
        self.sent: List[object] = []

    async def notify_level_up(self, event: LevelUpEvent) -> None:
        logger.info(f"[notify] User {event.user_id} reached level {event.new_level} ({event.title})")
        self.sent.append(event)

    async def notify_achievement_unlocked(self, event: UnlockEvent) -> None:
        logger.info(f"[notify] User {event.user_id} unlocked {event.title} ({event.rarity.value})")
        self.sent.append(event)

    async def notify_prestige(self, event: PrestigeEvent) -> None:
        logger.info(f"[notify] User {event.user_id} reached prestige {event.prestige_level}")
        self.sent.append(event)


class InMemoryHealthDataProvider:
    """
    HealthDataProvider over fixed series.

    Args:
        series: Points per metric type, in any order
    """

    def __init__(self, series: Optional[Dict[str, List[SeriesPoint]]] = None):
        self._series = series or {}

    def add(self, metric_type: str, points: List[SeriesPoint]) -> None:
        self._series.setdefault(metric_type, []).extend(points)

    async def series(self, metric_type: str, start: date, end: date) -> List[SeriesPoint]:
        points = [p for p in self._series.get(metric_type, []) if start <= p.day <= end]
        return sorted(points, key=lambda p: p.day)
