"""
Gamification data model

Plain dataclasses for rows read from the store and for the results the
engine returns to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Season:
    id: int
    name: str
    start_timestamp: int
    end_timestamp: int
    active: bool
    xp_multiplier: float

    @property
    def start(self) -> datetime:
        return datetime.fromtimestamp(self.start_timestamp)

    @property
    def end(self) -> datetime:
        return datetime.fromtimestamp(self.end_timestamp)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Season":
        return cls(
            id=row['id'],
            name=row['name'],
            start_timestamp=int(row['start_timestamp']),
            end_timestamp=int(row['end_timestamp']),
            active=bool(row['active']),
            xp_multiplier=float(row['xp_multiplier']),
        )


@dataclass(frozen=True)
class XpEvent:
    """One immutable ledger entry."""
    id: int
    attendant_id: int
    base_points: int
    multiplier: float
    final_points: int
    reason: str
    type: str
    related_id: Optional[str]
    season_id: Optional[int]
    timestamp: int

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "XpEvent":
        return cls(
            id=row['id'],
            attendant_id=row['attendant_id'],
            base_points=int(row['base_points']),
            multiplier=float(row['multiplier']),
            final_points=int(row['final_points']),
            reason=row['reason'],
            type=row['type'],
            related_id=row.get('related_id'),
            season_id=row.get('season_id'),
            timestamp=int(row['timestamp']),
        )


@dataclass(frozen=True)
class XpTypeConfig:
    id: int
    name: str
    description: str
    points: int
    category: str
    active: bool
    created_by: Optional[int]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "XpTypeConfig":
        return cls(
            id=row['id'],
            name=row['name'],
            description=row.get('description') or '',
            points=int(row['points']),
            category=row.get('category') or 'general',
            active=bool(row['active']),
            created_by=row.get('created_by'),
        )


@dataclass(frozen=True)
class XpGrant:
    """Manual grant; points are a snapshot of the type's value at grant time."""
    id: int
    attendant_id: int
    type_id: int
    points: int
    justification: Optional[str]
    granted_by: int
    granted_timestamp: int
    xp_event_id: int
    type_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "XpGrant":
        return cls(
            id=row['id'],
            attendant_id=row['attendant_id'],
            type_id=row['type_id'],
            points=int(row['points']),
            justification=row.get('justification'),
            granted_by=row['granted_by'],
            granted_timestamp=int(row['granted_timestamp']),
            xp_event_id=row['xp_event_id'],
            type_name=row.get('type_name'),
        )


@dataclass(frozen=True)
class AchievementConfig:
    id: int
    title: str
    description: str
    xp_reward: int
    active: bool
    criteria: Any  # one of achievements.criteria.CRITERIA_TYPES


@dataclass(frozen=True)
class UnlockedAchievement:
    attendant_id: int
    achievement_id: int
    unlocked_timestamp: int
    xp_gained: int
    season_id: Optional[int] = None
    title: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UnlockedAchievement":
        return cls(
            attendant_id=row['attendant_id'],
            achievement_id=row['achievement_id'],
            unlocked_timestamp=int(row['unlocked_timestamp']),
            xp_gained=int(row['xp_gained']),
            season_id=row.get('season_id'),
            title=row.get('title'),
        )


@dataclass(frozen=True)
class GrantLimitConfig:
    daily_limit_points: int
    daily_limit_grants: int
    max_points_per_grant: int
    min_points_per_grant: int
    require_justification: bool
    auto_approve_limit: int
    audit_retention_days: int
    enable_notifications: bool
    allow_weekend_grants: bool
    allow_holiday_grants: bool
    max_grants_per_attendant: int
    cooldown_minutes: int
    updated_by: Optional[int] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "GrantLimitConfig":
        return cls(
            daily_limit_points=int(row['daily_limit_points']),
            daily_limit_grants=int(row['daily_limit_grants']),
            max_points_per_grant=int(row['max_points_per_grant']),
            min_points_per_grant=int(row['min_points_per_grant']),
            require_justification=bool(row['require_justification']),
            auto_approve_limit=int(row['auto_approve_limit']),
            audit_retention_days=int(row['audit_retention_days']),
            enable_notifications=bool(row['enable_notifications']),
            allow_weekend_grants=bool(row['allow_weekend_grants']),
            allow_holiday_grants=bool(row['allow_holiday_grants']),
            max_grants_per_attendant=int(row['max_grants_per_attendant']),
            cooldown_minutes=int(row['cooldown_minutes']),
            updated_by=row.get('updated_by'),
        )


@dataclass(frozen=True)
class LevelUp:
    previous_level: int
    new_level: int


@dataclass(frozen=True)
class RankedEntry:
    attendant_id: int
    total_xp: int
    position: int


@dataclass(frozen=True)
class DailyUsage:
    """Grants issued on one calendar day, optionally by a single granter."""
    grants: int
    points: int
    daily_limit_grants: Optional[int] = None
    daily_limit_points: Optional[int] = None

    @property
    def remaining_grants(self) -> Optional[int]:
        if self.daily_limit_grants is None:
            return None
        return max(0, self.daily_limit_grants - self.grants)

    @property
    def remaining_points(self) -> Optional[int]:
        if self.daily_limit_points is None:
            return None
        return max(0, self.daily_limit_points - self.points)


@dataclass
class RecordXpResult:
    event: XpEvent
    unlocked: List[UnlockedAchievement] = field(default_factory=list)
    level_up: Optional[LevelUp] = None


class GrantState(StrEnum):
    VALIDATING = "validating"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    REJECTED = "rejected"


@dataclass
class GrantResult:
    grant: XpGrant
    event: XpEvent
    type_name: str
    unlocked: List[UnlockedAchievement] = field(default_factory=list)
    level_up: Optional[LevelUp] = None
    warnings: List[str] = field(default_factory=list)
    state: GrantState = GrantState.COMPLETED
