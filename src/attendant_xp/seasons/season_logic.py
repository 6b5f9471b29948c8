"""
Season management.

Owns the "at most one active season" invariant: every write that could
change which season is active, or whether two windows overlap, runs under
the seasons advisory lock.
"""

import logging
import time
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union

import src.common.database as database
from src.attendant_xp import repository, settings
from src.attendant_xp.exceptions import (
    InvalidDurationError,
    NotFoundError,
    OverlappingPeriodError,
    ValidationError,
)
from src.attendant_xp.models import Season

logger = logging.getLogger(__name__)

DateLike = Union[datetime, date]


def _to_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, datetime.min.time())


def _validate_window(name: str, start: datetime, end: datetime, multiplier: float) -> None:
    """Field-level checks shared by create and update."""
    if not name or not name.strip():
        raise ValidationError("Season name is required", field="name")
    if multiplier is None or multiplier < settings.MIN_SEASON_MULTIPLIER:
        raise ValidationError(
            f"XP multiplier must be at least {settings.MIN_SEASON_MULTIPLIER}",
            field="xp_multiplier"
        )
    if end <= start:
        raise InvalidDurationError("Season end must be after its start")
    if end - start < timedelta(days=settings.MIN_SEASON_DURATION_DAYS):
        raise InvalidDurationError(
            f"Season must last at least {settings.MIN_SEASON_DURATION_DAYS} day(s)"
        )


def _check_overlap(cursor, start_ts: int, end_ts: int, exclude_id: Optional[int] = None) -> None:
    overlapping = repository.find_overlapping_season(cursor, start_ts, end_ts, exclude_id)
    if overlapping:
        raise OverlappingPeriodError(
            f"Period overlaps season {overlapping['name']!r} (id {overlapping['id']})",
            conflicting_season_id=overlapping['id'],
        )


def _load(cursor, season_id: int) -> Season:
    row = repository.get_season(cursor, season_id)
    if not row:
        raise NotFoundError("Season", season_id)
    return Season.from_row(row)


# ===== READS =====

def get_active_season() -> Optional[Season]:
    """Currently active season, or None."""
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            row = repository.get_active_season(cursor)
            return Season.from_row(row) if row else None


def get_season(season_id: int) -> Season:
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            return _load(cursor, season_id)


def list_seasons() -> List[Season]:
    """All seasons, newest start first."""
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            return [Season.from_row(row) for row in repository.list_seasons(cursor)]


def resolve_multiplier(cursor) -> Tuple[float, Optional[int]]:
    """
    Multiplier and season id to stamp on a new ledger event.

    Uses the caller's cursor so the lookup belongs to the caller's
    transaction. Without an active season the multiplier is 1 and the
    season id is None.
    """
    row = repository.get_active_season(cursor)
    if not row:
        return settings.DEFAULT_SEASON_MULTIPLIER, None
    return float(row['xp_multiplier']), row['id']


# ===== WRITES =====

def create_season(
    name: str,
    start: DateLike,
    end: DateLike,
    xp_multiplier: float = settings.DEFAULT_SEASON_MULTIPLIER
) -> Season:
    """
    Create an inactive season.

    Raises:
        ValidationError: empty name or multiplier below the minimum.
        InvalidDurationError: end not after start, or shorter than one day.
        OverlappingPeriodError: window intersects an existing season.
    """
    start_dt, end_dt = _to_datetime(start), _to_datetime(end)
    _validate_window(name, start_dt, end_dt, xp_multiplier)
    start_ts, end_ts = int(start_dt.timestamp()), int(end_dt.timestamp())

    with database.transaction(lock_names=[settings.LOCK_SEASONS]) as cursor:
        _check_overlap(cursor, start_ts, end_ts)
        season_id = repository.insert_season(
            cursor, name.strip(), start_ts, end_ts, xp_multiplier, int(time.time())
        )
        season = _load(cursor, season_id)

    logger.info(f"Season {season.id} '{season.name}' created ({start_dt:%Y-%m-%d} to {end_dt:%Y-%m-%d})")
    return season


def update_season(
    season_id: int,
    name: Optional[str] = None,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
    xp_multiplier: Optional[float] = None
) -> Season:
    """Edit a season; the overlap check ignores the season itself."""
    with database.transaction(lock_names=[settings.LOCK_SEASONS]) as cursor:
        current = _load(cursor, season_id)
        new_name = name if name is not None else current.name
        start_dt = _to_datetime(start) if start is not None else current.start
        end_dt = _to_datetime(end) if end is not None else current.end
        multiplier = xp_multiplier if xp_multiplier is not None else current.xp_multiplier

        _validate_window(new_name, start_dt, end_dt, multiplier)
        start_ts, end_ts = int(start_dt.timestamp()), int(end_dt.timestamp())
        _check_overlap(cursor, start_ts, end_ts, exclude_id=season_id)

        repository.update_season(cursor, season_id, new_name.strip(), start_ts, end_ts, multiplier)
        return _load(cursor, season_id)


def set_multiplier(season_id: int, xp_multiplier: float) -> Season:
    """Change only the multiplier; events already written keep theirs."""
    if xp_multiplier is None or xp_multiplier < settings.MIN_SEASON_MULTIPLIER:
        raise ValidationError(
            f"XP multiplier must be at least {settings.MIN_SEASON_MULTIPLIER}",
            field="xp_multiplier"
        )
    with database.transaction() as cursor:
        _load(cursor, season_id)
        repository.set_season_multiplier(cursor, season_id, xp_multiplier)
        return _load(cursor, season_id)


def activate_season(season_id: int) -> Season:
    """
    Make `season_id` the only active season.

    Deactivation of the previous season and activation of the target
    commit together.
    """
    with database.transaction(lock_names=[settings.LOCK_SEASONS]) as cursor:
        _load(cursor, season_id)
        previous = repository.get_active_season(cursor)
        repository.deactivate_all_seasons(cursor)
        repository.set_season_active(cursor, season_id, True)
        season = _load(cursor, season_id)

    if previous and previous['id'] != season_id:
        logger.info(f"Season {previous['id']} deactivated, season {season_id} activated")
    else:
        logger.info(f"Season {season_id} activated")
    return season


def deactivate_season(season_id: int) -> Season:
    with database.transaction(lock_names=[settings.LOCK_SEASONS]) as cursor:
        _load(cursor, season_id)
        repository.set_season_active(cursor, season_id, False)
        season = _load(cursor, season_id)
    logger.info(f"Season {season_id} deactivated")
    return season


def delete_season(season_id: int) -> Tuple[bool, List[str]]:
    """
    Delete a season unless ledger events reference it.

    Returns:
        Tuple (deleted, warnings). A season with events is kept and the
        reason is returned as a warning.
    """
    with database.transaction(lock_names=[settings.LOCK_SEASONS]) as cursor:
        season = _load(cursor, season_id)
        event_count = repository.count_season_events(cursor, season_id)
        if event_count > 0:
            warning = (
                f"Season '{season.name}' has {event_count} XP event(s) and was not deleted"
            )
            logger.warning(warning)
            return False, [warning]
        repository.delete_season(cursor, season_id)

    logger.info(f"Season {season_id} deleted")
    return True, []


# ===== STATS =====

def get_season_stats(season: Season, now: Optional[datetime] = None) -> Dict:
    """
    Calendar figures for a season.

    Returns:
        Dict with duration_days, days_remaining, days_passed,
        progress (0-100) and status (upcoming/active/ended).
    """
    now = now or datetime.now()
    start, end = season.start, season.end

    duration = (end - start).days
    days_remaining = max(0, (end - now).days)
    days_passed = max(0, (now - start).days)
    progress = 0.0
    if duration > 0:
        progress = min(100.0, max(0.0, days_passed / duration * 100))

    if now > end:
        status = settings.SEASON_STATUS_ENDED
    elif now < start:
        status = settings.SEASON_STATUS_UPCOMING
    else:
        status = settings.SEASON_STATUS_ACTIVE

    return {
        'duration_days': duration,
        'days_remaining': days_remaining,
        'days_passed': days_passed,
        'progress': progress,
        'is_active': season.active,
        'status': status,
    }
