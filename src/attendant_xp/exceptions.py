"""
Gamification errors

Every expected failure of the engine is one of these types and reaches the
caller unchanged. Storage failures are reported separately as
src.common.database.StorageError.
"""

from enum import StrEnum
from typing import Optional

from src.common.database import StorageError


class LimitRule(StrEnum):
    """Grant limit that rejected a request."""
    DAILY_POINTS = "daily_points"
    DAILY_GRANTS = "daily_grants"
    ATTENDANT_DAILY_GRANTS = "attendant_daily_grants"
    COOLDOWN = "cooldown"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"


class GamificationError(Exception):
    """Base class for all typed gamification outcomes."""


class ValidationError(GamificationError):
    """Malformed input; tied to a single field or rule."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidTypeError(ValidationError):
    """XP type is inactive and cannot be granted."""

    def __init__(self, message: str):
        super().__init__(message, field="type_id")


class InvalidDurationError(ValidationError):
    """Season window is reversed or shorter than one day."""

    def __init__(self, message: str):
        super().__init__(message, field="end")


class LimitExceeded(GamificationError):
    """A daily, per-attendant, cooldown or calendar limit was hit."""

    def __init__(self, message: str, rule: LimitRule, retry_after_minutes: Optional[int] = None):
        super().__init__(message)
        self.rule = rule
        self.retry_after_minutes = retry_after_minutes


class NotFoundError(GamificationError):
    """Referenced attendant, type, season or achievement does not exist."""

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(GamificationError):
    """State conflict; re-read state instead of retrying blindly."""


class OverlappingPeriodError(ConflictError):
    """Season window intersects another season."""

    def __init__(self, message: str, conflicting_season_id: Optional[int] = None):
        super().__init__(message)
        self.conflicting_season_id = conflicting_season_id


class NoActiveSeasonError(GamificationError):
    """Operation requires an active season and none is active."""

    def __init__(self, message: str = "No active season"):
        super().__init__(message)


__all__ = [
    'LimitRule',
    'GamificationError',
    'ValidationError',
    'InvalidTypeError',
    'InvalidDurationError',
    'LimitExceeded',
    'NotFoundError',
    'ConflictError',
    'OverlappingPeriodError',
    'NoActiveSeasonError',
    'StorageError',
]
