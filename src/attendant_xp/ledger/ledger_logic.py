"""
Ledger Writer.

Appends XP events, applying the active season multiplier, and hands the
attendant's before/after totals to the achievement engine. The ledger is
append-only: corrections are new (possibly negative) events.
"""

import logging
import math
import time
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import src.common.database as database
from src.attendant_xp import repository, settings
from src.attendant_xp.exceptions import NotFoundError, ValidationError
from src.attendant_xp.ledger import levels
from src.attendant_xp.models import RecordXpResult, XpEvent
from src.attendant_xp.seasons import season_logic

logger = logging.getLogger(__name__)


def compute_final_points(base_points: int, multiplier: float) -> int:
    """base × multiplier, rounded half up."""
    return int(math.floor(base_points * multiplier + 0.5))


def write_event(
    cursor,
    attendant_id: int,
    base_points: int,
    reason: str,
    xp_type: str,
    related_id: Optional[str] = None,
    timestamp: Optional[int] = None
) -> Tuple[XpEvent, int, int]:
    """
    Append one event inside the caller's transaction.

    The before/after totals are read from the ledger around the insert,
    within the same transaction, rather than derived from the points.

    Returns:
        Tuple (event, total_before, total_after).
    """
    multiplier, season_id = season_logic.resolve_multiplier(cursor)
    final_points = compute_final_points(base_points, multiplier)
    timestamp = timestamp or int(time.time())

    total_before = repository.sum_attendant_xp(cursor, attendant_id)
    event_id = repository.insert_xp_event(
        cursor,
        attendant_id=attendant_id,
        base_points=base_points,
        multiplier=multiplier,
        final_points=final_points,
        reason=reason,
        xp_type=xp_type,
        related_id=related_id,
        season_id=season_id,
        timestamp=timestamp,
    )
    total_after = repository.sum_attendant_xp(cursor, attendant_id)

    event = XpEvent(
        id=event_id,
        attendant_id=attendant_id,
        base_points=base_points,
        multiplier=multiplier,
        final_points=final_points,
        reason=reason,
        type=xp_type,
        related_id=related_id,
        season_id=season_id,
        timestamp=timestamp,
    )
    return event, total_before, total_after


def record_xp(
    attendant_id: int,
    base_points: int,
    reason: str,
    xp_type: str,
    related_id: Optional[str] = None
) -> RecordXpResult:
    """
    Record XP for an attendant and evaluate achievements.

    Args:
        attendant_id: Attendant receiving the XP.
        base_points: Points before the season multiplier (may be negative
            for compensating events).
        reason: Human readable reason stored on the event.
        xp_type: Event type tag (evaluation, manual_grant, ...).
        related_id: Optional id of the entity that caused the XP.

    Returns:
        RecordXpResult with the event, newly unlocked achievements and the
        level-up, if any.
    """
    # Import here to avoid circular imports
    from src.attendant_xp.achievements import achievement_logic

    if not isinstance(base_points, int) or isinstance(base_points, bool):
        raise ValidationError("Points must be an integer", field="points")
    if not reason or not reason.strip():
        raise ValidationError("Reason is required", field="reason")
    if not xp_type or not xp_type.strip():
        raise ValidationError("XP type is required", field="type")

    lock = settings.LOCK_ATTENDANT.format(attendant_id=attendant_id)
    with database.transaction(lock_names=[lock]) as cursor:
        if not repository.attendant_exists(cursor, attendant_id):
            raise NotFoundError("Attendant", attendant_id)
        event, total_before, total_after = write_event(
            cursor, attendant_id, base_points, reason.strip(), xp_type, related_id
        )

    logger.info(
        f"XP event {event.id}: attendant {attendant_id} {event.final_points:+d} "
        f"({base_points} x {event.multiplier}) [{xp_type}]"
    )

    unlocked = achievement_logic.evaluate(attendant_id, total_before, total_after)
    final_total = get_total_xp(attendant_id) if unlocked else total_after
    return RecordXpResult(
        event=event,
        unlocked=unlocked,
        level_up=levels.detect_level_up(total_before, final_total),
    )


# ===== READS =====

def get_total_xp(attendant_id: int, season_id: Optional[int] = None) -> int:
    """Sum of final points in the ledger, optionally for one season."""
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            return repository.sum_attendant_xp(cursor, attendant_id, season_id)


def get_xp_events(
    attendant_id: Optional[int] = None,
    season_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = None
) -> List[XpEvent]:
    """Ledger events, newest first, within [start, end)."""
    start_ts = int(start.timestamp()) if start else None
    end_ts = int(end.timestamp()) if end else None
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            rows = repository.list_xp_events(cursor, attendant_id, season_id, start_ts, end_ts, limit)
            return [XpEvent.from_row(row) for row in rows]


def get_attendant_stats(attendant_id: int, season_id: Optional[int] = None) -> Dict:
    """
    XP figures for an attendant profile.

    Returns:
        Dict with total_xp, evaluation_count, achievement_count,
        average_xp_per_evaluation and level progress.
    """
    events = get_xp_events(attendant_id=attendant_id, season_id=season_id)
    total_xp = sum(e.final_points for e in events)
    evaluation_events = [e for e in events if e.type == settings.XP_TYPE_EVALUATION]
    achievement_events = [e for e in events if e.type == settings.XP_TYPE_ACHIEVEMENT_UNLOCK]

    average = 0.0
    if evaluation_events:
        average = sum(e.final_points for e in evaluation_events) / len(evaluation_events)

    return {
        'attendant_id': attendant_id,
        'total_xp': total_xp,
        'evaluation_count': len(evaluation_events),
        'achievement_count': len(achievement_events),
        'average_xp_per_evaluation': average,
        'level': levels.get_level_progress(total_xp),
    }
