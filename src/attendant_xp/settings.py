"""
Gamification engine settings

Constants shared by the seasons, ledger, grants, achievements and
leaderboard components.
"""

from typing import Final, Dict, Any

from config import settings as app_settings

# Module metadata
MODULE_NAME: Final[str] = "Attendant XP"
MODULE_DESCRIPTION: Final[str] = "XP ledger, seasons, manual grants, achievements and leaderboard"
MODULE_VERSION: Final[str] = "1.0.0"

# XP event type tags
XP_TYPE_EVALUATION: Final[str] = "evaluation"
XP_TYPE_MANUAL_GRANT: Final[str] = "manual_grant"
XP_TYPE_ACHIEVEMENT_UNLOCK: Final[str] = "achievement_unlock"

# Seasons
MIN_SEASON_MULTIPLIER: Final[float] = 0.1
MIN_SEASON_DURATION_DAYS: Final[int] = 1
DEFAULT_SEASON_MULTIPLIER: Final[float] = 1.0

# Season status labels
SEASON_STATUS_UPCOMING: Final[str] = "upcoming"
SEASON_STATUS_ACTIVE: Final[str] = "active"
SEASON_STATUS_ENDED: Final[str] = "ended"

# Levels: level = floor(sqrt(xp / LEVEL_XP_FACTOR)) + 1
LEVEL_XP_FACTOR: Final[int] = 100

# Achievement rewards
ACHIEVEMENT_REWARD_REASON: Final[str] = "Achievement unlocked: {title}"
MAX_ACHIEVEMENT_DEPTH: Final[int] = app_settings.MAX_ACHIEVEMENT_DEPTH
MAX_ACHIEVEMENT_ITERATIONS: Final[int] = app_settings.MAX_ACHIEVEMENT_ITERATIONS
FIVE_STAR_RATING: Final[int] = 5

# Grant reasons written to the ledger
GRANT_REASON: Final[str] = "Manual grant: {type_name}"

# Grant limit configuration row
GRANT_LIMITS_ROW_ID: Final[str] = "main"

# Warn when this share of the daily point budget (or less) remains
LOW_DAILY_BUDGET_RATIO: Final[float] = 0.1

# Defaults used on first read and by reset_grant_limits()
DEFAULT_GRANT_LIMITS: Final[Dict[str, Any]] = {
    "daily_limit_points": 1000,
    "daily_limit_grants": 50,
    "max_points_per_grant": 200,
    "min_points_per_grant": 1,
    "require_justification": False,
    "auto_approve_limit": 50,
    "audit_retention_days": 365,
    "enable_notifications": True,
    "allow_weekend_grants": True,
    "allow_holiday_grants": True,
    "max_grants_per_attendant": 10,
    "cooldown_minutes": 5,
}

# Accepted ranges for grant limit updates (inclusive)
GRANT_LIMIT_RANGES: Final[Dict[str, tuple]] = {
    "daily_limit_points": (100, 10000),
    "daily_limit_grants": (10, 500),
    "max_points_per_grant": (1, 1000),
    "min_points_per_grant": (1, None),
    "auto_approve_limit": (1, 500),
    "audit_retention_days": (30, 2555),
    "max_grants_per_attendant": (1, 100),
    "cooldown_minutes": (0, 1440),
}

# Advisory lock names
LOCK_SEASONS: Final[str] = "xp:seasons"
LOCK_GRANTER: Final[str] = "xp:granter:{granter_id}"
LOCK_ATTENDANT: Final[str] = "xp:attendant:{attendant_id}"

# Paging
GRANT_HISTORY_PER_PAGE: Final[int] = 20
MAX_GRANT_HISTORY_PER_PAGE: Final[int] = 100

# Notification event types
EVENT_XP_GRANTED: Final[str] = "xp_granted"
EVENT_XP_RECORDED: Final[str] = "xp_recorded"
EVENT_LEVEL_UP: Final[str] = "level_up"
EVENT_ACHIEVEMENT_UNLOCKED: Final[str] = "achievement_unlocked"
