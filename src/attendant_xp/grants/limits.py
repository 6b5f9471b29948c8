"""
Grant limits

Stored configuration for manual grants and the rule checks that use it.
Limits are read from the store on every grant attempt.
"""

import logging
import math
import time
from datetime import date, datetime, timedelta
from typing import Any, Container, Dict, Iterable, Optional, Tuple

from dateutil import parser as date_parser
from dateutil.relativedelta import MO, relativedelta

import src.common.database as database
from config import settings as app_settings
from src.attendant_xp import repository, settings
from src.attendant_xp.exceptions import LimitExceeded, LimitRule, ValidationError
from src.attendant_xp.models import GrantLimitConfig

logger = logging.getLogger(__name__)

_BOOLEAN_FIELDS = (
    "require_justification",
    "enable_notifications",
    "allow_weekend_grants",
    "allow_holiday_grants",
)


class HolidayCalendar:
    """Set of calendar dates; supports `day in calendar`."""

    def __init__(self, days: Iterable[Any] = ()):
        self._days = {self._to_date(day) for day in days}

    @staticmethod
    def _to_date(value: Any) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return date_parser.isoparse(str(value)).date()
        except ValueError as e:
            raise ValidationError(f"Invalid holiday date: {value!r}", field="holidays") from e

    def __contains__(self, day: object) -> bool:
        if isinstance(day, datetime):
            day = day.date()
        return day in self._days

    def __len__(self) -> int:
        return len(self._days)


def default_holiday_calendar() -> HolidayCalendar:
    """Calendar from GAMIFICATION_HOLIDAYS."""
    return HolidayCalendar(app_settings.HOLIDAYS)


# ===== CONFIGURATION =====

def load_grant_limits(cursor) -> GrantLimitConfig:
    """Current limits, writing the defaults on first read."""
    row = repository.get_grant_limits(cursor, settings.GRANT_LIMITS_ROW_ID)
    if row is None:
        repository.upsert_grant_limits(
            cursor, settings.GRANT_LIMITS_ROW_ID, dict(settings.DEFAULT_GRANT_LIMITS), None, int(time.time())
        )
        logger.info("Grant limits initialised with defaults")
        row = repository.get_grant_limits(cursor, settings.GRANT_LIMITS_ROW_ID)
    return GrantLimitConfig.from_row(row)


def get_grant_limits() -> GrantLimitConfig:
    with database.transaction() as cursor:
        return load_grant_limits(cursor)


def validate_limit_values(values: Dict[str, Any]) -> None:
    """
    Check a complete set of limit values.

    Raises:
        ValidationError: unknown key, wrong type, value out of range, or
            min/auto-approve above max points per grant.
    """
    for key, value in values.items():
        if key not in settings.DEFAULT_GRANT_LIMITS:
            raise ValidationError(f"Unknown grant limit: {key}", field=key)
        if key in _BOOLEAN_FIELDS:
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be true or false", field=key)
            continue
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError(f"{key} must be an integer", field=key)
        low, high = settings.GRANT_LIMIT_RANGES[key]
        if value < low or (high is not None and value > high):
            bounds = f"between {low} and {high}" if high is not None else f"at least {low}"
            raise ValidationError(f"{key} must be {bounds}", field=key)

    max_points = values.get("max_points_per_grant")
    if max_points is not None:
        if values.get("min_points_per_grant", 0) > max_points:
            raise ValidationError(
                "min_points_per_grant cannot exceed max_points_per_grant",
                field="min_points_per_grant"
            )
        if values.get("auto_approve_limit", 0) > max_points:
            raise ValidationError(
                "auto_approve_limit cannot exceed max_points_per_grant",
                field="auto_approve_limit"
            )


def update_grant_limits(updates: Dict[str, Any], updated_by: Optional[int] = None) -> GrantLimitConfig:
    """
    Change some limits; the rest keep their current values.

    Returns:
        The stored configuration after the update.
    """
    with database.transaction() as cursor:
        current = load_grant_limits(cursor)
        values = {key: getattr(current, key) for key in settings.DEFAULT_GRANT_LIMITS}
        values.update(updates)
        validate_limit_values(values)
        repository.upsert_grant_limits(cursor, settings.GRANT_LIMITS_ROW_ID, values, updated_by, int(time.time()))
        config = GrantLimitConfig.from_row(repository.get_grant_limits(cursor, settings.GRANT_LIMITS_ROW_ID))

    logger.info(f"Grant limits updated by {updated_by}: {sorted(updates)}")
    return config


def reset_grant_limits(updated_by: Optional[int] = None) -> GrantLimitConfig:
    with database.transaction() as cursor:
        repository.upsert_grant_limits(
            cursor, settings.GRANT_LIMITS_ROW_ID, dict(settings.DEFAULT_GRANT_LIMITS), updated_by, int(time.time())
        )
        config = GrantLimitConfig.from_row(repository.get_grant_limits(cursor, settings.GRANT_LIMITS_ROW_ID))
    logger.info(f"Grant limits reset to defaults by {updated_by}")
    return config


# ===== RULE CHECKS =====

def day_bounds(day: date) -> Tuple[int, int]:
    """[start, end) UNIX timestamps of a local calendar day."""
    start = datetime.combine(day, datetime.min.time())
    end = start + relativedelta(days=+1)
    return int(start.timestamp()), int(end.timestamp())


def _minutes_until(now: datetime, moment: datetime) -> int:
    return max(1, math.ceil((moment - now).total_seconds() / 60))


def _minutes_until_tomorrow(now: datetime) -> int:
    midnight = datetime.combine(now.date(), datetime.min.time()) + relativedelta(days=+1)
    return _minutes_until(now, midnight)


def check_granter_daily(cursor, limits: GrantLimitConfig, granter_id: int, points: int, now: datetime) -> None:
    start_ts, end_ts = day_bounds(now.date())
    used_grants, used_points = repository.get_grant_usage(cursor, start_ts, end_ts, granter_id)

    if used_points + points > limits.daily_limit_points:
        raise LimitExceeded(
            f"Daily point limit reached: {used_points} of {limits.daily_limit_points} used, "
            f"grant needs {points}",
            rule=LimitRule.DAILY_POINTS,
            retry_after_minutes=_minutes_until_tomorrow(now),
        )
    if used_grants + 1 > limits.daily_limit_grants:
        raise LimitExceeded(
            f"Daily grant limit of {limits.daily_limit_grants} reached",
            rule=LimitRule.DAILY_GRANTS,
            retry_after_minutes=_minutes_until_tomorrow(now),
        )


def check_attendant(cursor, limits: GrantLimitConfig, attendant_id: int, now: datetime) -> None:
    start_ts, end_ts = day_bounds(now.date())
    received = repository.count_attendant_grants(cursor, attendant_id, start_ts, end_ts)
    if received + 1 > limits.max_grants_per_attendant:
        raise LimitExceeded(
            f"Attendant {attendant_id} already received {received} grant(s) today",
            rule=LimitRule.ATTENDANT_DAILY_GRANTS,
            retry_after_minutes=_minutes_until_tomorrow(now),
        )

    if limits.cooldown_minutes > 0:
        last_ts = repository.get_last_grant_timestamp(cursor, attendant_id)
        if last_ts is not None:
            available_at = datetime.fromtimestamp(last_ts) + timedelta(minutes=limits.cooldown_minutes)
            if now < available_at:
                raise LimitExceeded(
                    f"Attendant {attendant_id} is in a {limits.cooldown_minutes} minute cooldown",
                    rule=LimitRule.COOLDOWN,
                    retry_after_minutes=_minutes_until(now, available_at),
                )


def check_calendar(limits: GrantLimitConfig, now: datetime, holidays: Optional[Container] = None) -> None:
    today = now.date()
    if not limits.allow_weekend_grants and today.weekday() >= 5:
        next_monday = datetime.combine(today, datetime.min.time()) + relativedelta(weekday=MO(+1))
        raise LimitExceeded(
            "Grants are not allowed on weekends",
            rule=LimitRule.WEEKEND,
            retry_after_minutes=_minutes_until(now, next_monday),
        )
    if not limits.allow_holiday_grants and holidays is not None and today in holidays:
        raise LimitExceeded(
            "Grants are not allowed on holidays",
            rule=LimitRule.HOLIDAY,
            retry_after_minutes=_minutes_until_tomorrow(now),
        )
