"""
Public entry points of the gamification engine.

Thin facade over the component modules. When a NotificationDispatcher is
supplied, results of record_xp and grant_xp are forwarded to it after the
operation has committed.
"""

import logging
from datetime import date
from typing import Container, List, Optional

from src.attendant_xp.achievements import achievement_logic
from src.attendant_xp.grants import grant_logic, limits as grant_limits
from src.attendant_xp.leaderboard import leaderboard_logic
from src.attendant_xp.ledger import ledger_logic
from src.attendant_xp.models import (
    DailyUsage,
    GrantResult,
    RankedEntry,
    RecordXpResult,
    Season,
    UnlockedAchievement,
)
from src.attendant_xp.notifications import dispatcher as notifications
from src.attendant_xp.seasons import season_logic

logger = logging.getLogger(__name__)


def create_season(name: str, start, end, multiplier: float = 1.0) -> Season:
    return season_logic.create_season(name, start, end, multiplier)


def activate_season(season_id: int) -> None:
    season_logic.activate_season(season_id)


def record_xp(
    attendant_id: int,
    points: int,
    reason: str,
    xp_type: str,
    related_id: Optional[str] = None,
    dispatcher: Optional[notifications.NotificationDispatcher] = None
) -> RecordXpResult:
    """Append a ledger event and evaluate achievements."""
    result = ledger_logic.record_xp(attendant_id, points, reason, xp_type, related_id)
    if dispatcher is not None:
        notifications.notify_record(dispatcher, result)
    return result


def grant_xp(
    attendant_id: int,
    type_id: int,
    granter_id: int,
    justification: Optional[str] = None,
    dispatcher: Optional[notifications.NotificationDispatcher] = None,
    holidays: Optional[Container] = None
) -> GrantResult:
    """
    Issue a manual grant.

    Notifications are skipped when the stored limits disable them.
    """
    result = grant_logic.grant_xp(attendant_id, type_id, granter_id, justification, holidays=holidays)
    if dispatcher is not None:
        if grant_limits.get_grant_limits().enable_notifications:
            notifications.notify_grant(dispatcher, result)
        else:
            logger.debug(f"Notifications disabled, grant {result.grant.id} not forwarded")
    return result


def get_unlocked(attendant_id: int, season_id: Optional[int] = None) -> List[UnlockedAchievement]:
    return achievement_logic.get_unlocked(attendant_id, season_id)


def get_leaderboard(
    season_id: Optional[int] = None,
    limit: Optional[int] = None,
    offset: int = 0
) -> List[RankedEntry]:
    return leaderboard_logic.rank(season_id, limit, offset)


def get_daily_usage(granter_id: Optional[int] = None, day: Optional[date] = None) -> DailyUsage:
    return grant_logic.get_daily_usage(granter_id, day)
