"""
Grant Engine.

Manual XP issuance by administrators. A grant is validated against the
stored limits and written together with its ledger event in one
transaction that holds the granter and attendant locks, so concurrent
requests see each other's committed totals.
"""

import logging
import time
from datetime import date, datetime, timedelta
from typing import Any, Container, Dict, List, Optional, Tuple

import src.common.database as database
from src.attendant_xp import repository, settings
from src.attendant_xp.exceptions import (
    ConflictError,
    GamificationError,
    InvalidTypeError,
    NoActiveSeasonError,
    NotFoundError,
    ValidationError,
)
from src.attendant_xp.grants import limits as grant_limits
from src.attendant_xp.ledger import levels
from src.attendant_xp.models import (
    DailyUsage,
    GrantLimitConfig,
    GrantResult,
    GrantState,
    XpGrant,
    XpTypeConfig,
)

logger = logging.getLogger(__name__)


# ===== XP TYPES =====

def _load_type(cursor, type_id: int) -> XpTypeConfig:
    row = repository.get_xp_type(cursor, type_id)
    if not row:
        raise NotFoundError("XP type", type_id)
    return XpTypeConfig.from_row(row)


def _validate_type_points(points: Any) -> None:
    if not isinstance(points, int) or isinstance(points, bool) or points < 1:
        raise ValidationError("XP type points must be a positive integer", field="points")


def create_xp_type(
    name: str,
    description: str,
    points: int,
    category: str = "general",
    created_by: Optional[int] = None
) -> XpTypeConfig:
    """
    Add a grantable XP type.

    Raises:
        ValidationError: empty name or non-positive points.
        ConflictError: a type with the same name exists.
    """
    if not name or not name.strip():
        raise ValidationError("XP type name is required", field="name")
    _validate_type_points(points)

    with database.transaction() as cursor:
        if repository.get_xp_type_by_name(cursor, name.strip()):
            raise ConflictError(f"XP type {name.strip()!r} already exists")
        type_id = repository.insert_xp_type(
            cursor, name.strip(), description or '', points, category or "general", created_by, int(time.time())
        )
        xp_type = _load_type(cursor, type_id)

    logger.info(f"XP type {xp_type.id} '{xp_type.name}' created ({xp_type.points} points)")
    return xp_type


def update_xp_type(type_id: int, **fields) -> XpTypeConfig:
    """Change name, description, points or category; past grants keep their points."""
    if 'name' in fields and (not fields['name'] or not fields['name'].strip()):
        raise ValidationError("XP type name is required", field="name")
    if 'points' in fields:
        _validate_type_points(fields['points'])

    with database.transaction() as cursor:
        _load_type(cursor, type_id)
        if 'name' in fields:
            fields['name'] = fields['name'].strip()
            other = repository.get_xp_type_by_name(cursor, fields['name'])
            if other and other['id'] != type_id:
                raise ConflictError(f"XP type {fields['name']!r} already exists")
        repository.update_xp_type(cursor, type_id, fields)
        return _load_type(cursor, type_id)


def toggle_xp_type(type_id: int) -> XpTypeConfig:
    """Flip the active flag of an XP type."""
    with database.transaction() as cursor:
        current = _load_type(cursor, type_id)
        repository.set_xp_type_active(cursor, type_id, not current.active)
        xp_type = _load_type(cursor, type_id)
    logger.info(f"XP type {type_id} {'activated' if xp_type.active else 'deactivated'}")
    return xp_type


def get_xp_type(type_id: int) -> XpTypeConfig:
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            return _load_type(cursor, type_id)


def list_xp_types(active_only: bool = False) -> List[XpTypeConfig]:
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            return [XpTypeConfig.from_row(row) for row in repository.list_xp_types(cursor, active_only)]


# ===== GRANTING =====

def _set_state(context: Dict[str, Any], state: GrantState) -> None:
    context['state'] = state
    logger.debug(
        f"Grant attendant={context['attendant_id']} type={context['type_id']} "
        f"granter={context['granter_id']}: {state}"
    )


def _validate(
    cursor,
    attendant_id: int,
    type_id: int,
    granter_id: int,
    justification: Optional[str],
    now: datetime,
    holidays: Optional[Container]
) -> Tuple[XpTypeConfig, GrantLimitConfig]:
    """Apply the grant rules in order; the first violation is raised."""
    if not repository.attendant_exists(cursor, attendant_id):
        raise NotFoundError("Attendant", attendant_id)
    xp_type = _load_type(cursor, type_id)
    if not xp_type.active:
        raise InvalidTypeError(f"XP type '{xp_type.name}' is inactive")

    if not repository.get_active_season(cursor):
        raise NoActiveSeasonError("Manual grants require an active season")

    config = grant_limits.load_grant_limits(cursor)
    if not config.min_points_per_grant <= xp_type.points <= config.max_points_per_grant:
        raise ValidationError(
            f"Grant of {xp_type.points} points is outside "
            f"[{config.min_points_per_grant}, {config.max_points_per_grant}]",
            field="points"
        )

    grant_limits.check_granter_daily(cursor, config, granter_id, xp_type.points, now)
    grant_limits.check_attendant(cursor, config, attendant_id, now)
    grant_limits.check_calendar(config, now, holidays)

    if config.require_justification and (not justification or not justification.strip()):
        raise ValidationError("Justification is required", field="justification")

    return xp_type, config


def _collect_warnings(
    cursor,
    config: GrantLimitConfig,
    granter_id: int,
    points: int,
    now: datetime
) -> List[str]:
    warnings = []
    if points > config.auto_approve_limit:
        warnings.append(
            f"Grant of {points} points exceeds the auto-approve limit of {config.auto_approve_limit}"
        )
    start_ts, end_ts = grant_limits.day_bounds(now.date())
    _, used_points = repository.get_grant_usage(cursor, start_ts, end_ts, granter_id)
    remaining = config.daily_limit_points - used_points
    if remaining <= config.daily_limit_points * settings.LOW_DAILY_BUDGET_RATIO:
        warnings.append(f"Only {remaining} of {config.daily_limit_points} daily points remain")
    return warnings


def grant_xp(
    attendant_id: int,
    type_id: int,
    granter_id: int,
    justification: Optional[str] = None,
    now: Optional[datetime] = None,
    holidays: Optional[Container] = None
) -> GrantResult:
    """
    Issue a manual XP grant.

    Args:
        attendant_id: Receiving attendant.
        type_id: XP type; its current points are snapshotted into the grant.
        granter_id: Administrator issuing the grant.
        justification: Free text, mandatory when the limits require it.
        now: Grant time (defaults to the current local time).
        holidays: Calendar consulted for the holiday rule; defaults to
            GAMIFICATION_HOLIDAYS.

    Returns:
        GrantResult with the grant, its ledger event, unlocked
        achievements, level-up and non-blocking warnings.

    Raises:
        NotFoundError, InvalidTypeError, NoActiveSeasonError,
        ValidationError, LimitExceeded: the first rule that failed.
            Nothing is written in that case.
        StorageError: the store failed; nothing was committed.
    """
    # Import here to avoid circular imports
    from src.attendant_xp.achievements import achievement_logic
    from src.attendant_xp.ledger import ledger_logic

    now = now or datetime.now()
    if holidays is None:
        holidays = grant_limits.default_holiday_calendar()
    context = {'attendant_id': attendant_id, 'type_id': type_id, 'granter_id': granter_id}
    _set_state(context, GrantState.VALIDATING)

    lock_names = [
        settings.LOCK_GRANTER.format(granter_id=granter_id),
        settings.LOCK_ATTENDANT.format(attendant_id=attendant_id),
    ]
    timestamp = int(now.timestamp())
    try:
        with database.transaction(lock_names=lock_names) as cursor:
            xp_type, config = _validate(
                cursor, attendant_id, type_id, granter_id, justification, now, holidays
            )

            _set_state(context, GrantState.PERSISTING)
            event, total_before, total_after = ledger_logic.write_event(
                cursor,
                attendant_id,
                xp_type.points,
                settings.GRANT_REASON.format(type_name=xp_type.name),
                settings.XP_TYPE_MANUAL_GRANT,
                related_id=str(type_id),
                timestamp=timestamp,
            )
            clean_justification = justification.strip() if justification and justification.strip() else None
            grant_id = repository.insert_xp_grant(
                cursor,
                attendant_id=attendant_id,
                type_id=type_id,
                points=xp_type.points,
                justification=clean_justification,
                granted_by=granter_id,
                timestamp=timestamp,
                xp_event_id=event.id,
            )
            warnings = _collect_warnings(cursor, config, granter_id, xp_type.points, now)
    except GamificationError as e:
        _set_state(context, GrantState.REJECTED)
        logger.warning(
            f"Grant rejected: attendant={attendant_id} type={type_id} granter={granter_id}: "
            f"{type(e).__name__}: {e}"
        )
        raise

    grant = XpGrant(
        id=grant_id,
        attendant_id=attendant_id,
        type_id=type_id,
        points=xp_type.points,
        justification=clean_justification,
        granted_by=granter_id,
        granted_timestamp=timestamp,
        xp_event_id=event.id,
        type_name=xp_type.name,
    )
    _set_state(context, GrantState.COMPLETED)
    logger.info(
        f"Grant {grant.id}: {granter_id} granted {xp_type.points} points ({xp_type.name}) "
        f"to attendant {attendant_id}, ledger +{event.final_points}"
    )
    for warning in warnings:
        logger.warning(f"Grant {grant.id}: {warning}")

    unlocked = achievement_logic.evaluate(attendant_id, total_before, total_after)
    final_total = ledger_logic.get_total_xp(attendant_id) if unlocked else total_after
    return GrantResult(
        grant=grant,
        event=event,
        type_name=xp_type.name,
        unlocked=unlocked,
        level_up=levels.detect_level_up(total_before, final_total),
        warnings=warnings,
        state=GrantState.COMPLETED,
    )


# ===== HISTORY & USAGE =====

def get_grants_by_attendant(attendant_id: int) -> List[XpGrant]:
    """Grants received by an attendant, newest first."""
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            return [XpGrant.from_row(row) for row in repository.list_grants_by_attendant(cursor, attendant_id)]


def get_grant_history(
    attendant_id: Optional[int] = None,
    type_id: Optional[int] = None,
    granter_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    min_points: Optional[int] = None,
    max_points: Optional[int] = None,
    page: int = 1,
    per_page: int = settings.GRANT_HISTORY_PER_PAGE,
    sort_by: str = 'granted_timestamp',
    descending: bool = True
) -> Tuple[List[XpGrant], int]:
    """
    Filtered grant history.

    Returns:
        Tuple of (grants on the requested page, total matching count).
    """
    page = max(1, page)
    per_page = max(1, min(per_page, settings.MAX_GRANT_HISTORY_PER_PAGE))
    filters = {
        'attendant_id': attendant_id,
        'type_id': type_id,
        'granter_id': granter_id,
        'start_ts': int(start.timestamp()) if start else None,
        'end_ts': int(end.timestamp()) if end else None,
        'min_points': min_points,
        'max_points': max_points,
    }
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            rows, total = repository.search_grants(
                cursor, filters, per_page, (page - 1) * per_page, sort_by, descending
            )
            return [XpGrant.from_row(row) for row in rows], total


def get_daily_usage(granter_id: Optional[int] = None, day: Optional[date] = None) -> DailyUsage:
    """
    Grants and points issued on `day` (default today), by one granter or
    by everyone. Limits are attached for per-granter usage.
    """
    day = day or date.today()
    start_ts, end_ts = grant_limits.day_bounds(day)
    with database.transaction() as cursor:
        grants, points = repository.get_grant_usage(cursor, start_ts, end_ts, granter_id)
        if granter_id is None:
            return DailyUsage(grants=grants, points=points)
        config = grant_limits.load_grant_limits(cursor)
        return DailyUsage(
            grants=grants,
            points=points,
            daily_limit_grants=config.daily_limit_grants,
            daily_limit_points=config.daily_limit_points,
        )


def get_grant_statistics(days: int = 30, now: Optional[datetime] = None) -> Dict:
    """
    Totals for the last `days` days.

    Returns:
        Dict with total_grants, total_points, average_points, by_type and
        by_granter breakdowns.
    """
    now = now or datetime.now()
    since_ts = int((now - timedelta(days=days)).timestamp())
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            by_type = repository.grant_totals_by_type(cursor, since_ts)
            by_granter = repository.grant_totals_by_granter(cursor, since_ts)

    total_grants = sum(int(row['cnt']) for row in by_type)
    total_points = sum(int(row['total_points'] or 0) for row in by_type)
    return {
        'days': days,
        'total_grants': total_grants,
        'total_points': total_points,
        'average_points': total_points / total_grants if total_grants else 0.0,
        'by_type': [
            {'type_id': row['type_id'], 'type_name': row['type_name'],
             'grants': int(row['cnt']), 'points': int(row['total_points'] or 0)}
            for row in by_type
        ],
        'by_granter': [
            {'granter_id': row['granted_by'], 'grants': int(row['cnt']),
             'points': int(row['total_points'] or 0)}
            for row in by_granter
        ],
    }
