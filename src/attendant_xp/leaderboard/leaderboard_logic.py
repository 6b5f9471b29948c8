"""
Leaderboard Aggregator.

Read-only ranking of attendants by ledger total. Equal totals are ordered
by ascending attendant id, so positions are unique and repeatable.
"""

import logging
from typing import Dict, List, Optional

import src.common.database as database
from src.attendant_xp import repository
from src.attendant_xp.models import RankedEntry

logger = logging.getLogger(__name__)


def rank_with_cursor(cursor, season_id: Optional[int] = None) -> List[RankedEntry]:
    """Full ranking using an open cursor."""
    rows = repository.sum_xp_by_attendant(cursor, season_id)
    ordered = sorted(
        ((row['attendant_id'], int(row['total_xp'] or 0)) for row in rows),
        key=lambda item: (-item[1], item[0])
    )
    return [
        RankedEntry(attendant_id=attendant_id, total_xp=total_xp, position=position)
        for position, (attendant_id, total_xp) in enumerate(ordered, start=1)
    ]


def rank(
    season_id: Optional[int] = None,
    limit: Optional[int] = None,
    offset: int = 0
) -> List[RankedEntry]:
    """
    Rank attendants by total XP.

    Args:
        season_id: Only count events of this season; None ranks all-time.
        limit: Maximum number of entries to return.
        offset: Number of leading entries to skip.

    Returns:
        RankedEntry list; positions always refer to the full ranking.
    """
    with database.get_db_connection() as conn:
        with database.get_cursor(conn) as cursor:
            entries = rank_with_cursor(cursor, season_id)

    entries = entries[max(0, offset):]
    if limit is not None:
        entries = entries[:max(0, limit)]
    return entries


def find_attendant_position(attendant_id: int, season_id: Optional[int] = None) -> Dict:
    """
    Where an attendant stands.

    Returns:
        Dict with position (0 when the attendant has no events), entry
        (RankedEntry or None) and total_ranked.
    """
    entries = rank(season_id)
    for entry in entries:
        if entry.attendant_id == attendant_id:
            return {'position': entry.position, 'entry': entry, 'total_ranked': len(entries)}
    return {'position': 0, 'entry': None, 'total_ranked': len(entries)}


def get_leaderboard_stats(season_id: Optional[int] = None) -> Dict:
    entries = rank(season_id)
    total_xp = sum(entry.total_xp for entry in entries)
    return {
        'attendants_ranked': len(entries),
        'total_xp': total_xp,
        'average_xp': total_xp / len(entries) if entries else 0.0,
        'top_entry': entries[0] if entries else None,
    }
