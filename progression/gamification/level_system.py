"""
Level Progression System

Accumulates XP into levels, titles and prestige.

Leveling Curve:
    xp_required(level) = floor(BASE_XP × level ^ XP_GROWTH_RATE)
    Reaching level 5 from level 4 takes floor(100 × 5^1.5) = 1118 XP.

One award may cross several levels; each crossed level yields a LevelUpEvent.

Title bands:
- 1-5 Novice, 6-10 Apprentice, 11-20 Practitioner, 21-35 Expert
- 36-50 Master, 51-70 Guru, 71-90 Legend, 91-100 Champion, 101+ Immortal

Prestige is explicit only, from PRESTIGE_MIN_LEVEL upward: the level and
current XP restart, total XP is kept and the title gains a "★N " prefix.
"""

from typing import Iterable, List, Optional, Tuple
import logging
import math

from progression.config import BASE_XP, MAX_TOTAL_XP, PRESTIGE_MIN_LEVEL, XP_GROWTH_RATE
from progression.models.progression import (
    LevelReward,
    LevelUpEvent,
    PrestigeEvent,
    RewardType,
    UserProgressionState,
)

logger = logging.getLogger(__name__)

# Levels above this stop advancing; XP still counts toward total_xp
MAX_LEVEL = 1000

TITLE_BANDS = [
    (5, "Novice"),
    (10, "Apprentice"),
    (20, "Practitioner"),
    (35, "Expert"),
    (50, "Master"),
    (70, "Guru"),
    (90, "Legend"),
    (100, "Champion"),
]
TOP_TITLE = "Immortal"


def xp_required(level: int) -> int:
    """XP needed to advance from level - 1 to `level`"""
    level = max(level, 1)
    return int(math.floor(BASE_XP * level ** XP_GROWTH_RATE))


def base_title(level: int) -> str:
    for upper, title in TITLE_BANDS:
        if level <= upper:
            return title
    return TOP_TITLE


def title_for_level(level: int, prestige_level: int = 0) -> str:
    """Display title, prefixed with the prestige star once prestiged"""
    title = base_title(level)
    if prestige_level > 0:
        return f"★{prestige_level} {title}"
    return title


def level_rewards(level: int) -> List[LevelReward]:
    """
    Rewards unlocked on reaching `level`

    - Every 5 levels: bonus points (level × 50)
    - Every 10 levels: a new title
    - Every 25 levels: a feature unlock
    - Level 1: welcome; PRESTIGE_MIN_LEVEL: gold theme and prestige eligibility
    """
    rewards = []

    if level % 5 == 0:
        rewards.append(LevelReward(
            type=RewardType.POINTS,
            value=level * 50,
            title="Bonus points",
            description=f"Earn {level * 50} points",
        ))

    if level % 10 == 0:
        rewards.append(LevelReward(
            type=RewardType.TITLE,
            title="New title",
            description=f"Title unlocked: {base_title(level)}",
        ))

    if level % 25 == 0:
        rewards.append(LevelReward(
            type=RewardType.FEATURE,
            title="Premium feature",
            description="Additional features unlocked",
        ))

    if level == 1:
        rewards.append(LevelReward(
            type=RewardType.SPECIAL,
            title="Welcome!",
            description="Your journey has begun",
        ))
    elif level == PRESTIGE_MIN_LEVEL:
        rewards.append(LevelReward(
            type=RewardType.THEME,
            title="Gold theme",
            description="Exclusive gold theme unlocked",
        ))
        rewards.append(LevelReward(
            type=RewardType.SPECIAL,
            title="Prestige available",
            description="You can now prestige",
        ))

    return rewards


def level_up_bonus(level: int) -> int:
    """Points granted for reaching `level`"""
    if level <= 10:
        return level * 10
    elif level <= 25:
        return level * 15
    elif level <= 50:
        return level * 20
    elif level <= 75:
        return level * 25
    elif level <= 100:
        return level * 30
    return level * 50


def prestige_bonus(prestige_level: int) -> int:
    """Points granted for the n-th prestige"""
    return int(math.floor(1000 * max(prestige_level, 0) ** 1.5))


def add_xp(
    state: UserProgressionState,
    amount: int,
) -> Tuple[UserProgressionState, List[LevelUpEvent]]:
    """
    Add XP and apply every level-up it triggers

    Args:
        state: Current progression state
        amount: XP to add (negative values are treated as 0)

    Returns:
        (new state, one LevelUpEvent per level gained, in order)
    """
    amount = max(int(amount), 0)
    # Saturate instead of overflowing the stored total
    applied = min(amount, MAX_TOTAL_XP - state.total_xp)
    if applied < amount:
        logger.warning(f"Total XP for user {state.user_id} saturated at {MAX_TOTAL_XP}")

    level = state.current_level
    current_xp = state.current_xp + applied
    events = []

    while level < MAX_LEVEL and current_xp >= xp_required(level + 1):
        required = xp_required(level + 1)
        current_xp -= required
        old_title = base_title(level)
        level += 1
        new_title = base_title(level)
        events.append(LevelUpEvent(
            user_id=state.user_id,
            new_level=level,
            xp_required=required,
            title=title_for_level(level, state.prestige_level),
            title_changed=new_title != old_title,
            rewards=level_rewards(level),
        ))

    if level >= MAX_LEVEL:
        current_xp = min(current_xp, xp_required(MAX_LEVEL + 1) - 1)

    new_state = state.model_copy(update={
        "total_xp": state.total_xp + applied,
        "current_level": level,
        "current_xp": current_xp,
        "title": title_for_level(level, state.prestige_level),
    })

    if events:
        logger.info(
            f"User {state.user_id} leveled up {state.current_level} → {level} "
            f"({len(events)} level(s), +{applied} XP)"
        )
    return new_state, events


def can_prestige(state: UserProgressionState) -> bool:
    return state.current_level >= PRESTIGE_MIN_LEVEL


def prestige(state: UserProgressionState) -> Tuple[UserProgressionState, Optional[PrestigeEvent]]:
    """
    Reset level and current XP, keeping total XP and lifetime totals

    Returns:
        (new state, PrestigeEvent) or (unchanged state, None) when not eligible
    """
    if not can_prestige(state):
        logger.info(
            f"User {state.user_id} not eligible for prestige "
            f"(level {state.current_level} < {PRESTIGE_MIN_LEVEL})"
        )
        return state, None

    prestige_level = state.prestige_level + 1
    title = title_for_level(1, prestige_level)
    new_state = state.model_copy(update={
        "current_level": 1,
        "current_xp": 0,
        "prestige_level": prestige_level,
        "title": title,
    })

    logger.info(f"User {state.user_id} prestiged to {prestige_level} from level {state.current_level}")
    return new_state, PrestigeEvent(
        user_id=state.user_id,
        prestige_level=prestige_level,
        previous_level=state.current_level,
        bonus_points=prestige_bonus(prestige_level),
        title=title,
    )


def progress_to_next_level(state: UserProgressionState) -> float:
    """Fraction of the way to the next level, in [0, 1)"""
    required = xp_required(state.current_level + 1)
    return min(state.current_xp / required, math.nextafter(1.0, 0.0))


def xp_to_next_level(state: UserProgressionState) -> int:
    return max(0, xp_required(state.current_level + 1) - state.current_xp)


def level_for_total_xp(total_xp: int) -> Tuple[int, int]:
    """
    Level reached from level 1 with `total_xp` and no prestige

    Returns:
        (level, XP into that level)
    """
    level = 1
    remaining = max(total_xp, 0)
    while level < MAX_LEVEL and remaining >= xp_required(level + 1):
        remaining -= xp_required(level + 1)
        level += 1
    return level, remaining


def rank(states: Iterable[UserProgressionState], user_id: str) -> Optional[int]:
    """
    1-based leaderboard position of user_id

    Ordered by prestige, then level, then total XP, all descending.
    """
    ordered = sorted(
        states,
        key=lambda s: (-s.prestige_level, -s.current_level, -s.total_xp, s.user_id),
    )
    for position, state in enumerate(ordered, start=1):
        if state.user_id == user_id:
            return position
    return None


class LevelProgressionEngine:
    """Object facade over the level functions for dependency injection"""

    def add_xp(self, state: UserProgressionState, amount: int) -> Tuple[UserProgressionState, List[LevelUpEvent]]:
        return add_xp(state, amount)

    def prestige(self, state: UserProgressionState) -> Tuple[UserProgressionState, Optional[PrestigeEvent]]:
        return prestige(state)

    def can_prestige(self, state: UserProgressionState) -> bool:
        return can_prestige(state)

    def progress_to_next_level(self, state: UserProgressionState) -> float:
        return progress_to_next_level(state)

    def xp_required(self, level: int) -> int:
        return xp_required(level)
