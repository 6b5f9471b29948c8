"""
Level math: level = floor(sqrt(xp / 100)) + 1.
"""

import math
from typing import Dict, Optional

from src.attendant_xp import settings
from src.attendant_xp.models import LevelUp


def get_level_from_xp(total_xp: int) -> int:
    if total_xp <= 0:
        return 1
    # floor(sqrt(x / f)) == isqrt(x // f) for integers
    return math.isqrt(int(total_xp) // settings.LEVEL_XP_FACTOR) + 1


def xp_required_for_level(level: int) -> int:
    if level <= 1:
        return 0
    return (level - 1) ** 2 * settings.LEVEL_XP_FACTOR


def get_level_progress(total_xp: int) -> Dict:
    """
    Position of `total_xp` inside its level.

    Returns:
        Dict with level, xp_for_current_level, xp_for_next_level and
        progress (percentage towards the next level, 0-100).
    """
    level = get_level_from_xp(total_xp)
    current_floor = xp_required_for_level(level)
    next_floor = xp_required_for_level(level + 1)
    span = next_floor - current_floor
    progress = (total_xp - current_floor) / span * 100 if span > 0 else 100.0
    return {
        'level': level,
        'total_xp': total_xp,
        'xp_for_current_level': current_floor,
        'xp_for_next_level': next_floor,
        'progress': min(100.0, max(0.0, progress)),
    }


def detect_level_up(previous_xp: int, new_xp: int) -> Optional[LevelUp]:
    """LevelUp if the level increased between the two totals."""
    previous_level = get_level_from_xp(previous_xp)
    new_level = get_level_from_xp(new_xp)
    if new_level > previous_level:
        return LevelUp(previous_level=previous_level, new_level=new_level)
    return None
