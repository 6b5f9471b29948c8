"""
Attendant XP

Gamification accounting engine: XP ledger, seasons, manual grants,
achievements and leaderboard.
"""

from .api import (
    activate_season,
    create_season,
    get_daily_usage,
    get_leaderboard,
    get_unlocked,
    grant_xp,
    record_xp,
)
from .notifications.dispatcher import NotificationDispatcher
from . import exceptions, settings

__all__ = [
    'activate_season',
    'create_season',
    'get_daily_usage',
    'get_leaderboard',
    'get_unlocked',
    'grant_xp',
    'record_xp',
    'NotificationDispatcher',
    'exceptions',
    'settings',
]
