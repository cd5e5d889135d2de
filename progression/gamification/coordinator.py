"""
GameCoordinator - runs one user action through the progression engines

Processing order for every action:
1. Points for the action (streak context = the streak still alive on the action's day)
2. Streaks for the entity and for the user overall (+ milestone bonus entries)
3. Levels with all XP awarded so far (+ level-up bonus entries)
4. Achievements; unlock rewards are credited as XP, no re-evaluation

All resulting records are written with a single PersistenceGateway.commit().
Notifications go out only after the commit succeeded.

Actions for one user are serialised with a per-user asyncio.Lock; actions
for different users run concurrently. Locks live only while someone holds
or awaits them.

Calendar days are taken in the user's own timezone (UserProgressionState.timezone),
falling back to the timezone of the injected clock.
"""

import asyncio
import logging
import time
import weakref
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from progression.exceptions import ProgressionError, wrap_persistence_exception
from progression.gamification import level_system, points_system, streak_system
from progression.gamification.achievement_system import AchievementEngine, mark_notified
from progression.gamification.level_system import LevelProgressionEngine
from progression.gamification.points_system import PointsEngine
from progression.gamification.streak_system import StreakTracker
from progression.gateways import ProgressionChangeSet
from progression.models.achievement import AchievementProgress, ProgressSnapshot, UnlockEvent
from progression.models.action import ActionResult, UserAction
from progression.models.points import PointsContext, PointsLedgerEntry, PointsSource
from progression.models.progression import LevelUpEvent, RewardType, UserProgressionState
from progression.models.streak import EntityKind, StreakChange, StreakKey, StreakState, StreakUpdate
from progression.observability import metrics
from progression.utils.datetime_helpers import to_utc

logger = logging.getLogger(__name__)

SOURCE_ENTITY_KINDS = {
    PointsSource.HABIT_COMPLETED: EntityKind.HABIT,
    PointsSource.TASK_COMPLETED: EntityKind.TASK,
    PointsSource.GOAL_ACHIEVED: EntityKind.GOAL,
    PointsSource.CHALLENGE_COMPLETED: EntityKind.CHALLENGE,
}

# Sources that count as user activity for the overall streak
ACTIVITY_SOURCES = set(SOURCE_ENTITY_KINDS) | {PointsSource.DAILY_LOGIN, PointsSource.SAVINGS_RECORDED}

LIFETIME_COUNTERS = {
    PointsSource.HABIT_COMPLETED: "habits_completed",
    PointsSource.TASK_COMPLETED: "tasks_completed",
    PointsSource.GOAL_ACHIEVED: "goals_achieved",
    PointsSource.CHALLENGE_COMPLETED: "challenges_completed",
}


class GameCoordinator:
    """
    Composition root for one progression pipeline.

    Args:
        store: PersistenceGateway
        notifier: NotificationGateway
        clock: Source of the current instant; its timezone is the default for
            users without one of their own
        points_engine: Defaults to PointsEngine(clock)
        streak_tracker: Defaults to StreakTracker(clock)
        level_engine: Defaults to LevelProgressionEngine()
        achievement_engine: Defaults to AchievementEngine() with DEFAULT_CATALOG
    """

    def __init__(
        self,
        store,
        notifier,
        clock,
        points_engine: Optional[PointsEngine] = None,
        streak_tracker: Optional[StreakTracker] = None,
        level_engine: Optional[LevelProgressionEngine] = None,
        achievement_engine: Optional[AchievementEngine] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.points = points_engine or PointsEngine(clock)
        self.streaks = streak_tracker or StreakTracker(clock)
        self.levels = level_engine or LevelProgressionEngine()
        self.achievements = achievement_engine or AchievementEngine()
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        logger.debug("GameCoordinator initialized")

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def _clock_for(self, state: Optional[UserProgressionState]):
        """Clock whose calendar days are the user's own"""
        return self.clock.for_timezone(state.timezone if state is not None else None)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def process(self, action: UserAction) -> ActionResult:
        """
        Apply one action and return everything it changed.

        Raises:
            PersistenceError: Loading or committing failed; nothing was applied
        """
        async with self._lock_for(action.user_id):
            return await self._process_tracked(action)

    async def process_batch(self, actions: Iterable[UserAction]) -> List[ActionResult]:
        """
        Apply many actions at once.

        Each user's actions run in the given order under a single lock
        acquisition; different users are processed concurrently.

        Returns:
            One ActionResult per action, in input order

        Raises:
            PersistenceError: From the first failing action. Earlier actions of
                that user stay applied, later ones are skipped; other users
                are unaffected.
        """
        actions = list(actions)
        by_user: Dict[str, List[int]] = {}
        for index, action in enumerate(actions):
            by_user.setdefault(action.user_id, []).append(index)

        results: List[Optional[ActionResult]] = [None] * len(actions)

        async def run_user(user_id: str, indices: List[int]) -> None:
            async with self._lock_for(user_id):
                for index in indices:
                    results[index] = await self._process_tracked(actions[index])

        outcomes = await asyncio.gather(
            *(run_user(user_id, indices) for user_id, indices in by_user.items()),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        logger.info(f"Processed batch of {len(actions)} action(s) for {len(by_user)} user(s)")
        return results

    async def _process_tracked(self, action: UserAction) -> ActionResult:
        """_process_locked() with action metrics; the caller holds the user's lock"""
        started = time.perf_counter()
        status = "error"
        try:
            result = await self._process_locked(action)
            status = "duplicate" if result.duplicate else "success"
            return result
        finally:
            metrics.actions_processed_total.labels(source=action.source.value, status=status).inc()
            metrics.action_processing_duration_seconds.labels(source=action.source.value).observe(
                time.perf_counter() - started
            )

    async def prestige(self, user_id: str) -> ActionResult:
        """
        Prestige the user if eligible.

        The prestige bonus is credited like any other award after the reset,
        and achievements are re-evaluated (e.g. prestige_reached).

        Returns:
            ActionResult whose `prestige` is None when the user was not eligible
        """
        async with self._lock_for(user_id):
            state, ledger, progress = await self._load_user_records(user_id)
            all_streaks = await self._load(self.store.load_streaks(user_id), "load_streaks", user_id)

            state, event = self.levels.prestige(state)
            if event is None:
                return ActionResult(user_id=user_id, state=state)

            clock = self._clock_for(state)
            now = clock.now()
            day = clock.calendar_day(now)
            entries: List[PointsLedgerEntry] = []
            level_ups: List[LevelUpEvent] = []

            bonus = self.points.award_fixed(
                PointsSource.BONUS,
                event.bonus_points,
                user_id,
                timestamp=now,
                reason=f"Prestige {event.prestige_level}",
            )
            state = self._credit(state, [bonus], entries, level_ups, now)

            state, unlocks, changed_progress = self._evaluate_achievements(
                state, all_streaks, ledger, entries, progress, day, now, level_ups
            )

            await self._commit(ProgressionChangeSet(
                user_id=user_id,
                state=state,
                achievement_progress=changed_progress,
                ledger_entries=entries,
            ))
            metrics.prestiges_total.inc()
            self._record_committed(entries, level_ups, unlocks)

            try:
                await self.notifier.notify_prestige(event)
            except Exception as e:
                logger.error(f"Prestige notification failed for user {user_id}: {e}", exc_info=True)
            await self._send_notifications(user_id, level_ups, unlocks, changed_progress)

            return ActionResult(
                user_id=user_id,
                ledger_entries=entries,
                xp_awarded=sum(e.amount for e in entries),
                state=state,
                level_ups=level_ups,
                unlocks=unlocks,
                prestige_available=self.levels.can_prestige(state),
                prestige=event,
            )

    async def sweep_streaks(self, user_id: str, reference_day: Optional[date] = None) -> List[StreakState]:
        """
        Reset every streak of the user that a missed day has broken

        Returns:
            The streaks that were reset
        """
        async with self._lock_for(user_id):
            state = await self._load(self.store.load(user_id), "load", user_id)
            reference_day = reference_day or self._clock_for(state).today()
            streaks = await self._load(self.store.load_streaks(user_id), "load_streaks", user_id)
            reset = []
            broken_kinds = []
            for streak in streaks:
                swept = self.streaks.sweep(streak, reference_day)
                if swept != streak:
                    reset.append(swept)
                    if streak.current_streak > 0 and swept.current_streak == 0:
                        broken_kinds.append(swept.key.entity_kind)

            if reset:
                await self._commit(ProgressionChangeSet(user_id=user_id, streaks=reset))
                for kind in broken_kinds:
                    metrics.streak_resets_total.labels(entity_kind=kind.value).inc()
                logger.info(f"Swept {len(reset)} broken streak(s) for user {user_id}")
            return reset

    async def get_summary(self, user_id: str) -> Dict[str, Any]:
        """
        Read-only progression overview for display

        Returns:
            {
                'state': UserProgressionState,
                'progress_to_next_level': float,
                'xp_to_next_level': int,
                'prestige_available': bool,
                'streaks': [{'state': StreakState, 'status': StreakStatus}],
                'achievements': [AchievementDefinition] (secret ones only once unlocked),
                'achievement_progress': {achievement_id: AchievementProgress},
                'unlocked_count': int,
                'recommendations': [AchievementProgress],
                'total_points': int,
                'points_breakdown': [PointsBreakdown]
            }
        """
        state, ledger, progress = await self._load_user_records(user_id)
        streaks = await self._load(self.store.load_streaks(user_id), "load_streaks", user_id)
        today = self._clock_for(state).today()

        streaks.sort(key=lambda s: s.current_streak, reverse=True)
        return {
            "state": state,
            "progress_to_next_level": level_system.progress_to_next_level(state),
            "xp_to_next_level": level_system.xp_to_next_level(state),
            "prestige_available": self.levels.can_prestige(state),
            "streaks": [{"state": s, "status": self.streaks.status(s, today)} for s in streaks],
            "achievements": self.achievements.visible(progress),
            "achievement_progress": progress,
            "unlocked_count": sum(1 for p in progress.values() if p.unlocked),
            "recommendations": self.achievements.recommendations(progress),
            "total_points": points_system.total_points(ledger),
            "points_breakdown": points_system.points_breakdown(ledger),
        }

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _process_locked(self, action: UserAction) -> ActionResult:
        user_id = action.user_id
        state, ledger, progress = await self._load_user_records(user_id)

        if action.action_id and any(entry.action_id == action.action_id for entry in ledger):
            logger.info(f"Action {action.action_id} for user {user_id} already processed; skipping")
            return ActionResult(
                user_id=user_id,
                duplicate=True,
                state=state,
                prestige_available=self.levels.can_prestige(state),
            )

        if action.timezone and action.timezone != state.timezone:
            logger.info(f"User {user_id} timezone set to {action.timezone}")
            state = state.model_copy(update={"timezone": action.timezone})

        clock = self._clock_for(state)
        # Naive times are wall-clock times of the user
        occurred_at = to_utc(action.occurred_at, clock.timezone)
        day = clock.calendar_day(occurred_at)
        now = clock.now()
        all_streaks = {s.key: s for s in await self._load(self.store.load_streaks(user_id), "load_streaks", user_id)}
        streak_keys = self._streak_keys(action)

        # 1. Points, using the streak as it stood before this action
        context_key = streak_keys[0] if streak_keys else StreakKey.overall(user_id)
        context = PointsContext(
            level=state.current_level,
            streak_days=self.streaks.effective_streak(all_streaks.get(context_key), day),
            on_time=action.on_time,
            consistency_ratio=points_system.consistency_ratio(ledger, day, clock.calendar_day),
        )
        entries: List[PointsLedgerEntry] = [self.points.award(
            action.source,
            context,
            user_id,
            source_id=action.entity_id,
            action_id=action.action_id,
            timestamp=occurred_at,
        )]

        # 2. Streaks
        streak_updates: List[StreakUpdate] = []
        for key in streak_keys:
            update = self.streaks.record_activity(all_streaks.get(key) or streak_system.new_streak(key), day)
            all_streaks[key] = update.state
            streak_updates.append(update)
            if update.milestone_bonus > 0:
                entries.append(self.points.award_fixed(
                    PointsSource.STREAK_MILESTONE,
                    update.milestone_bonus,
                    user_id,
                    source_id=key.entity_id,
                    action_id=action.action_id,
                    timestamp=occurred_at,
                    reason=f"{update.milestone}-day {key.entity_kind.value} streak",
                ))

        state = self._apply_lifetime_totals(state, action, day, streak_updates)

        # 3. Levels
        level_ups: List[LevelUpEvent] = []
        awarded = list(entries)
        entries = []
        state = self._credit(state, awarded, entries, level_ups, occurred_at, action.action_id)

        # 4. Achievements
        state, unlocks, changed_progress = self._evaluate_achievements(
            state, list(all_streaks.values()), ledger, entries, progress, day, now, level_ups, action.action_id
        )

        changed_streaks = [u.state for u in streak_updates if u.change != StreakChange.UNCHANGED]
        await self._commit(ProgressionChangeSet(
            user_id=user_id,
            state=state,
            streaks=changed_streaks,
            achievement_progress=changed_progress,
            ledger_entries=entries,
        ))
        self._record_committed(entries, level_ups, unlocks)

        await self._send_notifications(user_id, level_ups, unlocks, changed_progress)

        result = ActionResult(
            user_id=user_id,
            ledger_entries=entries,
            xp_awarded=sum(e.amount for e in entries),
            state=state,
            level_ups=level_ups,
            streak_updates=streak_updates,
            unlocks=unlocks,
            prestige_available=self.levels.can_prestige(state),
        )
        logger.info(
            f"Processed {action.source.value} for user {user_id}: +{result.xp_awarded} XP, "
            f"{len(level_ups)} level-up(s), {len(unlocks)} unlock(s)"
        )
        return result

    def _streak_keys(self, action: UserAction) -> List[StreakKey]:
        """Entity streak first (if any), then the overall streak"""
        if action.source not in ACTIVITY_SOURCES:
            return []

        keys = []
        kind = action.entity_kind or SOURCE_ENTITY_KINDS.get(action.source)
        if kind is not None and kind != EntityKind.OVERALL and action.entity_id:
            keys.append(StreakKey(user_id=action.user_id, entity_id=action.entity_id, entity_kind=kind))
        keys.append(StreakKey.overall(action.user_id))
        return keys

    def _apply_lifetime_totals(
        self,
        state: UserProgressionState,
        action: UserAction,
        day: date,
        streak_updates: List[StreakUpdate],
    ) -> UserProgressionState:
        update: Dict[str, Any] = {}

        counter = LIFETIME_COUNTERS.get(action.source)
        if counter:
            update[counter] = getattr(state, counter) + 1

        if action.source == PointsSource.SAVINGS_RECORDED:
            update["accumulated_amount"] = state.accumulated_amount + action.amount

        # A day counts as active once, when the overall streak first credits it
        overall = next((u for u in streak_updates if u.state.key.entity_kind == EntityKind.OVERALL), None)
        if overall is not None and overall.change != StreakChange.UNCHANGED:
            update["days_active"] = state.days_active + 1
            if state.last_active_day is None or day > state.last_active_day:
                update["last_active_day"] = day

        return state.model_copy(update=update) if update else state

    def _credit(
        self,
        state: UserProgressionState,
        awarded: List[PointsLedgerEntry],
        entries: List[PointsLedgerEntry],
        level_ups: List[LevelUpEvent],
        timestamp,
        action_id: Optional[str] = None,
    ) -> UserProgressionState:
        """
        Add awarded entries to the ledger and their points to XP

        Each level gained earns a level-up bonus entry, which is credited in
        turn. Bonuses are far below the next requirement, so this converges.
        """
        pending = awarded
        while pending:
            entries.extend(pending)
            state, ups = self.levels.add_xp(state, sum(e.amount for e in pending))
            level_ups.extend(ups)
            pending = [self._level_up_entry(state.user_id, up, timestamp, action_id) for up in ups]
        return state

    def _level_up_entry(
        self,
        user_id: str,
        event: LevelUpEvent,
        timestamp,
        action_id: Optional[str],
    ) -> PointsLedgerEntry:
        reward_points = sum(r.value for r in event.rewards if r.type == RewardType.POINTS)
        return self.points.award_fixed(
            PointsSource.LEVEL_UP,
            level_system.level_up_bonus(event.new_level) + reward_points,
            user_id,
            source_id=str(event.new_level),
            action_id=action_id,
            timestamp=timestamp,
            reason=f"Reached level {event.new_level}",
        )

    def _evaluate_achievements(
        self,
        state: UserProgressionState,
        streaks: Iterable[StreakState],
        ledger: List[PointsLedgerEntry],
        entries: List[PointsLedgerEntry],
        progress: Dict[str, AchievementProgress],
        day: date,
        now,
        level_ups: List[LevelUpEvent],
        action_id: Optional[str] = None,
    ) -> Tuple[UserProgressionState, List[UnlockEvent], List[AchievementProgress]]:
        snapshot = self._snapshot(state, streaks, points_system.total_points(ledger) + sum(e.amount for e in entries), day)
        evaluated, unlocks = self.achievements.evaluate(state.user_id, progress, snapshot, now)

        rewards = [
            self.points.award_fixed(
                PointsSource.ACHIEVEMENT_UNLOCKED,
                unlock.reward_points,
                state.user_id,
                source_id=unlock.achievement_id,
                action_id=action_id,
                timestamp=now,
                reason=f"Unlocked {unlock.title}",
            )
            for unlock in unlocks
            if unlock.reward_points > 0
        ]
        # Extra level-ups from rewards are kept; achievements are not re-evaluated
        state = self._credit(state, rewards, entries, level_ups, now, action_id)

        changed = [p for aid, p in evaluated.items() if progress.get(aid) != p]
        return state, unlocks, changed

    def _snapshot(
        self,
        state: UserProgressionState,
        streaks: Iterable[StreakState],
        total_points: int,
        day: date,
    ) -> ProgressSnapshot:
        current: Dict[EntityKind, int] = {}
        longest: Dict[EntityKind, int] = {}
        for streak in streaks:
            kind = streak.key.entity_kind
            current[kind] = max(current.get(kind, 0), self.streaks.effective_streak(streak, day))
            longest[kind] = max(longest.get(kind, 0), streak.longest_streak)

        return ProgressSnapshot(
            current_streaks=current,
            longest_streaks=longest,
            habits_completed=state.habits_completed,
            tasks_completed=state.tasks_completed,
            goals_achieved=state.goals_achieved,
            challenges_completed=state.challenges_completed,
            total_points=total_points,
            level=state.current_level,
            prestige_level=state.prestige_level,
            days_active=state.days_active,
            accumulated_amount=state.accumulated_amount,
        )

    # ------------------------------------------------------------------
    # Gateway helpers
    # ------------------------------------------------------------------

    async def _load(self, awaitable, operation: str, user_id: str):
        try:
            return await awaitable
        except ProgressionError:
            raise
        except Exception as e:
            raise wrap_persistence_exception(e, operation=operation, user_id=user_id)

    async def _load_user_records(
        self, user_id: str
    ) -> Tuple[UserProgressionState, List[PointsLedgerEntry], Dict[str, AchievementProgress]]:
        state = await self._load(self.store.load(user_id), "load", user_id)
        ledger = await self._load(self.store.load_ledger(user_id), "load_ledger", user_id)
        progress = await self._load(
            self.store.load_achievement_progress(user_id), "load_achievement_progress", user_id
        )
        return (
            state or UserProgressionState(user_id=user_id),
            ledger,
            {p.achievement_id: p for p in progress},
        )

    async def _commit(self, changes: ProgressionChangeSet) -> None:
        try:
            await self.store.commit(changes)
        except ProgressionError:
            raise
        except Exception as e:
            raise wrap_persistence_exception(e, operation="commit", user_id=changes.user_id)

    def _record_committed(
        self,
        entries: List[PointsLedgerEntry],
        level_ups: List[LevelUpEvent],
        unlocks: List[UnlockEvent],
    ) -> None:
        """Count what a successful commit applied"""
        for entry in entries:
            metrics.points_awarded_total.labels(source=entry.source.value).inc(entry.amount)
        if level_ups:
            metrics.level_ups_total.inc(len(level_ups))
        for unlock in unlocks:
            metrics.achievements_unlocked_total.labels(rarity=unlock.rarity.value).inc()

    async def _send_notifications(
        self,
        user_id: str,
        level_ups: List[LevelUpEvent],
        unlocks: List[UnlockEvent],
        changed_progress: List[AchievementProgress],
    ) -> None:
        """Deliver events after commit; failures are logged and never undo progress"""
        for event in level_ups:
            try:
                await self.notifier.notify_level_up(event)
            except Exception as e:
                logger.error(f"Level-up notification failed for user {user_id}: {e}", exc_info=True)

        notified = []
        by_id = {p.achievement_id: p for p in changed_progress}
        for unlock in unlocks:
            try:
                await self.notifier.notify_achievement_unlocked(unlock)
            except Exception as e:
                logger.error(
                    f"Unlock notification for {unlock.achievement_id} failed for user {user_id}: {e}",
                    exc_info=True,
                )
                continue
            record = by_id.get(unlock.achievement_id)
            if record is not None:
                notified.append(mark_notified(record))

        if not notified:
            return
        try:
            await self.store.save_achievement_progress(notified)
        except Exception as e:
            logger.error(f"Could not record sent notifications for user {user_id}: {e}", exc_info=True)
            return
        # Keep returned records in step with what was stored
        for record in notified:
            for i, existing in enumerate(changed_progress):
                if existing.achievement_id == record.achievement_id:
                    changed_progress[i] = record
