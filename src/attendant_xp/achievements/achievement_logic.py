"""
Achievement Engine.

Evaluates active achievements for an attendant after a ledger write,
records unlocks at most once per (attendant, achievement) and pays the
XP reward through the ledger writer.
"""

import logging
import time
from typing import Dict, Iterable, List, Optional, Union

import src.common.database as database
from src.attendant_xp import repository, settings
from src.attendant_xp.achievements.criteria import (
    Criteria,
    FiveStarStreak,
    HighAverage,
    RankingPosition,
    XpThreshold,
    criteria_to_json,
    parse_criteria,
)
from src.attendant_xp.exceptions import NotFoundError, ValidationError
from src.attendant_xp.models import AchievementConfig, UnlockedAchievement
from src.common.operation_status import OperationStatusRegistry

logger = logging.getLogger(__name__)


class UnlockBudget:
    """Caps the number of unlocks one top-level operation may produce."""

    def __init__(self, limit: int = settings.MAX_ACHIEVEMENT_ITERATIONS):
        self.limit = limit
        self.used = 0

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit

    def consume(self) -> None:
        self.used += 1


class _AlreadyUnlocked(Exception):
    """Unlock row already present; aborts the reward transaction."""


def _config_from_row(row: Dict) -> AchievementConfig:
    return AchievementConfig(
        id=row['id'],
        title=row['title'],
        description=row.get('description') or '',
        xp_reward=int(row['xp_reward']),
        active=bool(row['active']),
        criteria=parse_criteria(row['criteria']),
    )


# ===== PREDICATES =====

def crosses_threshold(criteria: XpThreshold, previous_total: int, new_total: int) -> bool:
    """True only when the total moved from below the threshold to at/above it."""
    return previous_total < criteria.threshold <= new_total


def has_five_star_streak(cursor, attendant_id: int, criteria: FiveStarStreak) -> bool:
    ratings = repository.get_recent_ratings(cursor, attendant_id, criteria.count)
    return len(ratings) == criteria.count and all(r == settings.FIVE_STAR_RATING for r in ratings)


def has_high_average(cursor, attendant_id: int, criteria: HighAverage) -> bool:
    count, average = repository.get_rating_summary(cursor, attendant_id)
    return count >= criteria.min_count and average >= criteria.rating


def _season_position(cursor, attendant_id: int) -> int:
    """Position in the active season ranking, 0 when unranked or no season."""
    # Import here to avoid circular imports
    from src.attendant_xp.leaderboard import leaderboard_logic

    season = repository.get_active_season(cursor)
    if not season:
        return 0
    for entry in leaderboard_logic.rank_with_cursor(cursor, season['id']):
        if entry.attendant_id == attendant_id:
            return entry.position
    return 0


def is_in_top_positions(cursor, attendant_id: int, criteria: RankingPosition) -> bool:
    position = _season_position(cursor, attendant_id)
    return 0 < position <= criteria.max_position


def _is_satisfied(
    cursor,
    attendant_id: int,
    criteria: Criteria,
    previous_total: int,
    new_total: int,
    depth: int
) -> bool:
    if isinstance(criteria, XpThreshold):
        # reward XP never counts towards threshold achievements
        if depth > 0:
            return False
        return crosses_threshold(criteria, previous_total, new_total)
    if isinstance(criteria, FiveStarStreak):
        return has_five_star_streak(cursor, attendant_id, criteria)
    if isinstance(criteria, HighAverage):
        return has_high_average(cursor, attendant_id, criteria)
    if isinstance(criteria, RankingPosition):
        return is_in_top_positions(cursor, attendant_id, criteria)
    raise TypeError(f"Unsupported criteria: {criteria!r}")


# ===== EVALUATION =====

def evaluate(
    attendant_id: int,
    previous_total: int,
    new_total: int,
    depth: int = 0,
    budget: Optional[UnlockBudget] = None
) -> List[UnlockedAchievement]:
    """
    Unlock every active achievement the attendant now satisfies.

    Args:
        attendant_id: Attendant whose ledger just changed.
        previous_total: All-time total before the write.
        new_total: All-time total after the write.
        depth: Reward nesting level; 0 for the write that started it all.
        budget: Shared unlock budget of the top-level operation.

    Returns:
        Newly unlocked achievements, including those unlocked by the XP
        rewards of earlier unlocks. Already-unlocked achievements are
        skipped silently.
    """
    if depth >= settings.MAX_ACHIEVEMENT_DEPTH:
        logger.warning(
            f"Achievement evaluation for attendant {attendant_id} stopped at depth {depth}"
        )
        return []
    budget = budget or UnlockBudget()

    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            configs = [_config_from_row(row) for row in repository.list_achievement_configs(cursor)]
            already = {
                row['achievement_id']
                for row in repository.list_unlocked_achievements(cursor, attendant_id)
            }
            candidates = [
                config for config in configs
                if config.id not in already
                and _is_satisfied(cursor, attendant_id, config.criteria, previous_total, new_total, depth)
            ]

    unlocked: List[UnlockedAchievement] = []
    for config in candidates:
        if budget.exhausted:
            logger.warning(
                f"Unlock limit of {budget.limit} reached for attendant {attendant_id}; "
                f"remaining achievements skipped"
            )
            break
        unlocked.extend(_unlock(attendant_id, config, depth, budget))
    return unlocked


def _unlock(
    attendant_id: int,
    config: AchievementConfig,
    depth: int,
    budget: UnlockBudget
) -> List[UnlockedAchievement]:
    """Persist one unlock with its reward event, then evaluate the reward."""
    # Import here to avoid circular imports
    from src.attendant_xp.ledger import ledger_logic
    from src.attendant_xp.seasons import season_logic

    timestamp = int(time.time())
    lock = settings.LOCK_ATTENDANT.format(attendant_id=attendant_id)
    reward_event = None
    total_before = total_after = 0
    try:
        with database.transaction(lock_names=[lock]) as cursor:
            if repository.get_unlocked_achievement(cursor, attendant_id, config.id):
                raise _AlreadyUnlocked()

            if config.xp_reward:
                reward_event, total_before, total_after = ledger_logic.write_event(
                    cursor,
                    attendant_id,
                    config.xp_reward,
                    settings.ACHIEVEMENT_REWARD_REASON.format(title=config.title),
                    settings.XP_TYPE_ACHIEVEMENT_UNLOCK,
                    related_id=str(config.id),
                    timestamp=timestamp,
                )
                season_id = reward_event.season_id
            else:
                season_id = season_logic.resolve_multiplier(cursor)[1]

            xp_gained = reward_event.final_points if reward_event else 0
            if not repository.insert_unlocked_achievement(
                cursor, attendant_id, config.id, timestamp, xp_gained, season_id
            ):
                raise _AlreadyUnlocked()
    except _AlreadyUnlocked:
        logger.debug(f"Achievement {config.id} already unlocked by attendant {attendant_id}")
        return []

    budget.consume()
    logger.info(
        f"Attendant {attendant_id} unlocked achievement {config.id} '{config.title}' (+{xp_gained} XP)"
    )
    result = [UnlockedAchievement(
        attendant_id=attendant_id,
        achievement_id=config.id,
        unlocked_timestamp=timestamp,
        xp_gained=xp_gained,
        season_id=season_id,
        title=config.title,
    )]
    if reward_event is not None:
        result.extend(evaluate(attendant_id, total_before, total_after, depth=depth + 1, budget=budget))
    return result


# ===== READS =====

def get_unlocked(attendant_id: int, season_id: Optional[int] = None) -> List[UnlockedAchievement]:
    """Unlocked achievements, oldest first, optionally for one season."""
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            rows = repository.list_unlocked_achievements(cursor, attendant_id, season_id)
            return [UnlockedAchievement.from_row(row) for row in rows]


def list_achievements(active_only: bool = False) -> List[AchievementConfig]:
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            rows = repository.list_achievement_configs(cursor, active_only=active_only)
            return [_config_from_row(row) for row in rows]


def _progress(cursor, attendant_id: int, criteria: Criteria, total_xp: int) -> float:
    if isinstance(criteria, XpThreshold):
        ratio = total_xp / criteria.threshold
    elif isinstance(criteria, FiveStarStreak):
        ratings = repository.get_recent_ratings(cursor, attendant_id, criteria.count)
        streak = 0
        for rating in ratings:
            if rating != settings.FIVE_STAR_RATING:
                break
            streak += 1
        ratio = streak / criteria.count
    elif isinstance(criteria, HighAverage):
        count, average = repository.get_rating_summary(cursor, attendant_id)
        if count < criteria.min_count:
            ratio = count / criteria.min_count
        else:
            ratio = average / criteria.rating
    elif isinstance(criteria, RankingPosition):
        position = _season_position(cursor, attendant_id)
        ratio = criteria.max_position / position if position else 0.0
    else:
        raise TypeError(f"Unsupported criteria: {criteria!r}")
    return max(0.0, min(100.0, ratio * 100))


def get_achievement_status(attendant_id: int) -> List[Dict]:
    """
    Every active achievement with the attendant's standing.

    Returns:
        List of dicts with achievement (AchievementConfig), unlocked,
        unlocked_timestamp and progress (0-100).
    """
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            configs = [_config_from_row(row) for row in repository.list_achievement_configs(cursor)]
            unlocked = {
                row['achievement_id']: row
                for row in repository.list_unlocked_achievements(cursor, attendant_id)
            }
            total_xp = repository.sum_attendant_xp(cursor, attendant_id)

            status = []
            for config in configs:
                row = unlocked.get(config.id)
                status.append({
                    'achievement': config,
                    'unlocked': row is not None,
                    'unlocked_timestamp': int(row['unlocked_timestamp']) if row else None,
                    'progress': 100.0 if row else _progress(cursor, attendant_id, config.criteria, total_xp),
                })
            return status


# ===== CONFIGURATION =====

def create_achievement(
    title: str,
    description: str,
    xp_reward: int,
    criteria: Union[Criteria, str, Dict],
    active: bool = True
) -> AchievementConfig:
    """
    Add an achievement.

    Args:
        criteria: A criteria variant, or its JSON/dict form.

    Raises:
        ValidationError: empty title, negative reward or invalid criteria.
    """
    if not title or not title.strip():
        raise ValidationError("Achievement title is required", field="title")
    if not isinstance(xp_reward, int) or xp_reward < 0:
        raise ValidationError("XP reward must be a non-negative integer", field="xp_reward")
    if isinstance(criteria, (str, dict)):
        criteria = parse_criteria(criteria)

    with database.transaction() as cursor:
        achievement_id = repository.insert_achievement_config(
            cursor, title.strip(), description or '', xp_reward,
            criteria_to_json(criteria), active, int(time.time())
        )
        config = _config_from_row(repository.get_achievement_config(cursor, achievement_id))

    logger.info(f"Achievement {config.id} '{config.title}' created")
    return config


def set_achievement_active(achievement_id: int, active: bool) -> AchievementConfig:
    with database.transaction() as cursor:
        if not repository.get_achievement_config(cursor, achievement_id):
            raise NotFoundError("Achievement", achievement_id)
        repository.set_achievement_active(cursor, achievement_id, active)
        config = _config_from_row(repository.get_achievement_config(cursor, achievement_id))
    logger.info(f"Achievement {achievement_id} {'activated' if active else 'deactivated'}")
    return config


# ===== BATCH =====

def process_attendants(
    attendant_ids: Iterable[int],
    operation_id: str,
    registry: OperationStatusRegistry
) -> Dict[int, List[UnlockedAchievement]]:
    """
    Re-run criteria evaluation for a batch of attendants.

    Totals are passed unchanged, so XP thresholds cannot fire here; only
    rating and ranking criteria can unlock. Progress is reported to
    `registry` under `operation_id`.

    Returns:
        Dict attendant_id -> newly unlocked achievements.
    """
    ids = list(attendant_ids)
    registry.start(operation_id, total=len(ids), message="Evaluating achievements")
    results: Dict[int, List[UnlockedAchievement]] = {}
    try:
        for index, attendant_id in enumerate(ids, start=1):
            total = _total_xp(attendant_id)
            results[attendant_id] = evaluate(attendant_id, total, total)
            registry.update(operation_id, processed=index)
    except Exception as e:
        registry.fail(operation_id, str(e))
        logger.error(f"Achievement batch {operation_id} failed: {e}")
        raise

    unlock_count = sum(len(items) for items in results.values())
    registry.finish(operation_id, result={'attendants': len(ids), 'unlocked': unlock_count})
    logger.info(f"Achievement batch {operation_id}: {len(ids)} attendants, {unlock_count} unlocks")
    return results


def _total_xp(attendant_id: int) -> int:
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            return repository.sum_attendant_xp(cursor, attendant_id)
