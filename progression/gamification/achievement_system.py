"""
Achievement System

Evaluates a user's counters against a catalog of achievement definitions
and unlocks each achievement exactly once.

Criteria (CriterionType):
- Consistency: streak_days, longest_streak, days_active
- Completion counts: habits_completed, tasks_completed, goals_achieved, challenges_completed
- Progression: total_points, level_reached, prestige_reached
- Financial: accumulated_amount

Features:
- Progress tracking for locked achievements (never decreases)
- Unlock is one-way; an unlocked achievement is skipped on later evaluations
- Secret achievements unlock normally but stay hidden until unlocked
- Catalog validation at load time (positive targets, unique non-empty ids)
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union
import json
import logging

from pydantic import ValidationError as PydanticValidationError

from progression.exceptions import ValidationError
from progression.models.achievement import (
    AchievementCategory,
    AchievementDefinition,
    AchievementProgress,
    AchievementRarity,
    CriterionType,
    ProgressSnapshot,
    UnlockEvent,
)
from progression.models.streak import EntityKind

logger = logging.getLogger(__name__)

RECOMMENDATION_THRESHOLD = 50.0


def _streak_for(streaks: Dict[EntityKind, int], definition: AchievementDefinition) -> float:
    return float(streaks.get(definition.entity_kind or EntityKind.OVERALL, 0))


# One value extractor per criterion; add a criterion by adding an entry here
CRITERION_EXTRACTORS: Dict[CriterionType, Callable[[ProgressSnapshot, AchievementDefinition], float]] = {
    CriterionType.STREAK_DAYS: lambda s, d: _streak_for(s.current_streaks, d),
    CriterionType.LONGEST_STREAK: lambda s, d: _streak_for(s.longest_streaks, d),
    CriterionType.HABITS_COMPLETED: lambda s, d: float(s.habits_completed),
    CriterionType.TASKS_COMPLETED: lambda s, d: float(s.tasks_completed),
    CriterionType.GOALS_ACHIEVED: lambda s, d: float(s.goals_achieved),
    CriterionType.CHALLENGES_COMPLETED: lambda s, d: float(s.challenges_completed),
    CriterionType.TOTAL_POINTS: lambda s, d: float(s.total_points),
    CriterionType.LEVEL_REACHED: lambda s, d: float(s.level),
    CriterionType.PRESTIGE_REACHED: lambda s, d: float(s.prestige_level),
    CriterionType.DAYS_ACTIVE: lambda s, d: float(s.days_active),
    CriterionType.ACCUMULATED_AMOUNT: lambda s, d: float(s.accumulated_amount),
}


def criterion_value(definition: AchievementDefinition, snapshot: ProgressSnapshot) -> float:
    """
    Current value of the definition's criterion

    Unknown criteria yield 0 and a warning instead of failing the evaluation.
    """
    try:
        criterion = CriterionType(definition.criterion)
    except ValueError:
        logger.warning(
            f"Unknown criterion '{definition.criterion}' for achievement {definition.id}; "
            f"treating progress as 0"
        )
        return 0.0

    extractor = CRITERION_EXTRACTORS.get(criterion)
    if extractor is None:
        logger.warning(f"No extractor registered for criterion {criterion.value}")
        return 0.0
    return max(0.0, extractor(snapshot, definition))


class AchievementCatalog:
    """
    Validated, read-only set of achievement definitions.

    Args:
        definitions: Definitions in display order

    Raises:
        ValidationError: On empty or duplicate ids, or a non-positive target
    """

    def __init__(self, definitions: Iterable[AchievementDefinition]):
        self._definitions: Dict[str, AchievementDefinition] = {}
        for definition in definitions:
            _validate_definition(definition)
            if definition.id in self._definitions:
                raise ValidationError(
                    f"Duplicate achievement id '{definition.id}'",
                    field="id",
                    value=definition.id,
                )
            self._definitions[definition.id] = definition

    def __iter__(self) -> Iterator[AchievementDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, achievement_id: object) -> bool:
        return achievement_id in self._definitions

    def get(self, achievement_id: str) -> Optional[AchievementDefinition]:
        return self._definitions.get(achievement_id)

    def by_category(self, category: AchievementCategory) -> List[AchievementDefinition]:
        return [d for d in self if d.category == category]

    def by_rarity(self, rarity: AchievementRarity) -> List[AchievementDefinition]:
        return [d for d in self if d.rarity == rarity]

    def visible(self, progress: Optional[Mapping[str, AchievementProgress]] = None) -> List[AchievementDefinition]:
        """Definitions for display: secret ones appear only once unlocked"""
        progress = progress or {}
        result = []
        for definition in self:
            record = progress.get(definition.id)
            if definition.is_secret and not (record and record.unlocked):
                continue
            result.append(definition)
        return result


def _validate_definition(definition: AchievementDefinition) -> None:
    if not definition.id or not definition.id.strip():
        raise ValidationError("Achievement id must not be empty", field="id", value=definition.id)
    if definition.target_value <= 0:
        raise ValidationError(
            f"Target value for '{definition.id}' must be positive",
            field="target_value",
            value=definition.target_value,
        )


def load_catalog(entries: Iterable[Union[AchievementDefinition, Mapping[str, Any]]]) -> AchievementCatalog:
    """
    Build a catalog from definitions or plain dicts

    Raises:
        ValidationError: If any entry is malformed
    """
    definitions = []
    for index, entry in enumerate(entries):
        if isinstance(entry, AchievementDefinition):
            definitions.append(entry)
            continue
        try:
            definitions.append(AchievementDefinition.model_validate(entry))
        except PydanticValidationError as e:
            raise ValidationError(
                f"Malformed achievement entry #{index}: {e.errors()[0]['msg']}",
                field=".".join(str(part) for part in e.errors()[0]["loc"]),
                value=entry.get("id") if isinstance(entry, Mapping) else None,
                cause=e,
            )

    catalog = AchievementCatalog(definitions)
    logger.info(f"Loaded achievement catalog with {len(catalog)} entries")
    return catalog


def load_catalog_file(path: Union[str, Path]) -> AchievementCatalog:
    """
    Load a catalog from a JSON file

    The file holds either a list of entries or {"achievements": [...]}.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get("achievements", [])
    if not isinstance(data, list):
        raise ValidationError(f"Catalog file {path} must contain a list of achievements", field="achievements")
    return load_catalog(data)


def new_progress(user_id: str, definition: AchievementDefinition) -> AchievementProgress:
    return AchievementProgress(
        user_id=user_id,
        achievement_id=definition.id,
        target_value=definition.target_value,
    )


def evaluate(
    user_id: str,
    catalog: AchievementCatalog,
    progress: Mapping[str, AchievementProgress],
    snapshot: ProgressSnapshot,
    now: datetime,
) -> Tuple[Dict[str, AchievementProgress], List[UnlockEvent]]:
    """
    Update progress for every locked achievement and unlock the satisfied ones

    Args:
        user_id: User being evaluated
        catalog: Achievement definitions
        progress: Existing progress keyed by achievement id (may be partial)
        snapshot: User's counters after the current action
        now: Unlock timestamp

    Returns:
        (progress for every catalog entry keyed by id, newly unlocked events)
    """
    updated: Dict[str, AchievementProgress] = {}
    unlocks: List[UnlockEvent] = []

    for definition in catalog:
        record = progress.get(definition.id) or new_progress(user_id, definition)

        # Terminal state; checked before anything is changed
        if record.unlocked:
            updated[definition.id] = record
            continue

        value = max(record.current_progress, criterion_value(definition, snapshot))
        record = record.model_copy(update={
            "current_progress": value,
            "target_value": definition.target_value,
        })

        if value >= definition.target_value:
            record = record.model_copy(update={"unlocked": True, "unlocked_at": now})
            unlocks.append(UnlockEvent(
                user_id=user_id,
                achievement_id=definition.id,
                title=definition.title,
                rarity=definition.rarity,
                reward_points=definition.rewards.points,
                badge=definition.rewards.badge,
                unlocked_at=now,
            ))
            logger.info(
                f"User {user_id} unlocked achievement: {definition.id} "
                f"({definition.title}) +{definition.rewards.points} points"
            )

        updated[definition.id] = record

    return updated, unlocks


def mark_notified(progress: AchievementProgress) -> AchievementProgress:
    return progress.model_copy(update={"notification_sent": True})


def reset_progress(progress: AchievementProgress) -> AchievementProgress:
    """Zero progress of a locked achievement; unlocked ones are left as they are"""
    if progress.unlocked:
        logger.warning(
            f"Refusing to reset unlocked achievement {progress.achievement_id} for user {progress.user_id}"
        )
        return progress
    return progress.model_copy(update={"current_progress": 0.0})


def recommendations(
    catalog: AchievementCatalog,
    progress: Mapping[str, AchievementProgress],
    limit: int = 3,
) -> List[AchievementProgress]:
    """
    Locked, non-secret achievements at least half complete, closest first
    """
    candidates = []
    for definition in catalog:
        record = progress.get(definition.id)
        if record is None or record.unlocked or definition.is_secret:
            continue
        if record.percentage >= RECOMMENDATION_THRESHOLD:
            candidates.append(record)

    candidates.sort(key=lambda r: (-r.percentage, r.achievement_id))
    return candidates[:max(limit, 0)]


class AchievementEngine:
    """
    Evaluates achievements against one catalog.

    Args:
        catalog: Catalog to evaluate (defaults to DEFAULT_CATALOG)
    """

    def __init__(self, catalog: Optional[AchievementCatalog] = None):
        self.catalog = catalog or DEFAULT_CATALOG

    def evaluate(
        self,
        user_id: str,
        progress: Mapping[str, AchievementProgress],
        snapshot: ProgressSnapshot,
        now: datetime,
    ) -> Tuple[Dict[str, AchievementProgress], List[UnlockEvent]]:
        return evaluate(user_id, self.catalog, progress, snapshot, now)

    def visible(self, progress: Mapping[str, AchievementProgress]) -> List[AchievementDefinition]:
        return self.catalog.visible(progress)

    def recommendations(self, progress: Mapping[str, AchievementProgress], limit: int = 3) -> List[AchievementProgress]:
        return recommendations(self.catalog, progress, limit)


DEFAULT_ACHIEVEMENTS: List[Dict[str, Any]] = [
    {
        "id": "first_steps",
        "title": "First Steps",
        "description": "Complete your first habit",
        "criterion": "habits_completed",
        "target_value": 1,
        "rarity": "common",
        "category": "milestones",
        "rewards": {"points": 25, "badge": "footprints"},
    },
    {
        "id": "week_of_strength",
        "title": "Week of Strength",
        "description": "Keep a 7-day streak",
        "criterion": "streak_days",
        "target_value": 7,
        "rarity": "uncommon",
        "category": "consistency",
        "rewards": {"points": 100, "badge": "flame"},
    },
    {
        "id": "month_of_discipline",
        "title": "Month of Discipline",
        "description": "Keep a 30-day streak",
        "criterion": "streak_days",
        "target_value": 30,
        "rarity": "rare",
        "category": "consistency",
        "rewards": {"points": 500, "badge": "calendar"},
    },
    {
        "id": "century",
        "title": "Century",
        "description": "Complete 100 habits",
        "criterion": "habits_completed",
        "target_value": 100,
        "rarity": "rare",
        "category": "milestones",
        "rewards": {"points": 300},
    },
    {
        "id": "productive_streak",
        "title": "Productive",
        "description": "Complete 5 tasks",
        "criterion": "tasks_completed",
        "target_value": 5,
        "rarity": "common",
        "category": "milestones",
        "rewards": {"points": 50},
    },
    {
        "id": "task_master",
        "title": "Task Master",
        "description": "Complete 500 tasks",
        "criterion": "tasks_completed",
        "target_value": 500,
        "rarity": "epic",
        "category": "milestones",
        "rewards": {"points": 1000, "badge": "crown"},
    },
    {
        "id": "goal_getter",
        "title": "Goal Getter",
        "description": "Achieve your first goal",
        "criterion": "goals_achieved",
        "target_value": 1,
        "rarity": "common",
        "category": "milestones",
        "rewards": {"points": 100},
    },
    {
        "id": "achiever",
        "title": "Achiever",
        "description": "Achieve 10 goals",
        "criterion": "goals_achieved",
        "target_value": 10,
        "rarity": "rare",
        "category": "milestones",
        "rewards": {"points": 500},
    },
    {
        "id": "challenger",
        "title": "Challenger",
        "description": "Complete a challenge",
        "criterion": "challenges_completed",
        "target_value": 1,
        "rarity": "uncommon",
        "category": "special",
        "rewards": {"points": 150},
    },
    {
        "id": "level_10",
        "title": "Rising Star",
        "description": "Reach level 10",
        "criterion": "level_reached",
        "target_value": 10,
        "rarity": "uncommon",
        "category": "progression",
        "rewards": {"points": 200},
    },
    {
        "id": "points_10000",
        "title": "Point Collector",
        "description": "Earn 10,000 points",
        "criterion": "total_points",
        "target_value": 10000,
        "rarity": "epic",
        "category": "progression",
        "rewards": {"points": 500},
    },
    {
        "id": "regular",
        "title": "Regular",
        "description": "Be active on 30 different days",
        "criterion": "days_active",
        "target_value": 30,
        "rarity": "uncommon",
        "category": "consistency",
        "rewards": {"points": 150},
    },
    {
        "id": "saver",
        "title": "Saver",
        "description": "Save a total of 1,000",
        "criterion": "accumulated_amount",
        "target_value": 1000,
        "rarity": "rare",
        "category": "financial",
        "rewards": {"points": 300, "badge": "piggy_bank"},
    },
    {
        "id": "reborn",
        "title": "Reborn",
        "description": "Prestige for the first time",
        "criterion": "prestige_reached",
        "target_value": 1,
        "rarity": "legendary",
        "category": "progression",
        "is_secret": True,
        "rewards": {"points": 1000, "badge": "phoenix"},
    },
]

DEFAULT_CATALOG = load_catalog(DEFAULT_ACHIEVEMENTS)
