"""
SQL access for the gamification tables.

Every function takes an open cursor so that callers decide the transaction
boundaries (see src.common.database.transaction). Rows come back as dicts.
"""

from typing import Any, Dict, List, Optional, Tuple

# ===== SEASONS =====


def get_active_season(cursor) -> Optional[Dict]:
    cursor.execute("SELECT * FROM xp_seasons WHERE active = 1 ORDER BY id LIMIT 1")
    return cursor.fetchone()


def get_season(cursor, season_id: int) -> Optional[Dict]:
    cursor.execute("SELECT * FROM xp_seasons WHERE id = %s", (season_id,))
    return cursor.fetchone()


def list_seasons(cursor) -> List[Dict]:
    cursor.execute("SELECT * FROM xp_seasons ORDER BY start_timestamp DESC, id DESC")
    return cursor.fetchall()


def find_overlapping_season(
    cursor,
    start_ts: int,
    end_ts: int,
    exclude_id: Optional[int] = None
) -> Optional[Dict]:
    """First season whose [start, end] window intersects the given one."""
    if exclude_id is not None:
        cursor.execute("""
            SELECT * FROM xp_seasons
            WHERE start_timestamp <= %s AND end_timestamp >= %s AND id <> %s
            ORDER BY start_timestamp
            LIMIT 1
        """, (end_ts, start_ts, exclude_id))
    else:
        cursor.execute("""
            SELECT * FROM xp_seasons
            WHERE start_timestamp <= %s AND end_timestamp >= %s
            ORDER BY start_timestamp
            LIMIT 1
        """, (end_ts, start_ts))
    return cursor.fetchone()


def insert_season(cursor, name: str, start_ts: int, end_ts: int, multiplier: float, timestamp: int) -> int:
    cursor.execute("""
        INSERT INTO xp_seasons (name, start_timestamp, end_timestamp, active, xp_multiplier, created_timestamp)
        VALUES (%s, %s, %s, 0, %s, %s)
    """, (name, start_ts, end_ts, multiplier, timestamp))
    return cursor.lastrowid


def update_season(cursor, season_id: int, name: str, start_ts: int, end_ts: int, multiplier: float) -> int:
    cursor.execute("""
        UPDATE xp_seasons
        SET name = %s, start_timestamp = %s, end_timestamp = %s, xp_multiplier = %s
        WHERE id = %s
    """, (name, start_ts, end_ts, multiplier, season_id))
    return cursor.rowcount


def set_season_multiplier(cursor, season_id: int, multiplier: float) -> int:
    cursor.execute(
        "UPDATE xp_seasons SET xp_multiplier = %s WHERE id = %s",
        (multiplier, season_id)
    )
    return cursor.rowcount


def deactivate_all_seasons(cursor) -> int:
    cursor.execute("UPDATE xp_seasons SET active = 0 WHERE active = 1")
    return cursor.rowcount


def set_season_active(cursor, season_id: int, active: bool) -> int:
    cursor.execute(
        "UPDATE xp_seasons SET active = %s WHERE id = %s",
        (1 if active else 0, season_id)
    )
    return cursor.rowcount


def count_season_events(cursor, season_id: int) -> int:
    cursor.execute("SELECT COUNT(*) AS cnt FROM xp_events WHERE season_id = %s", (season_id,))
    result = cursor.fetchone()
    return result['cnt'] if result else 0


def delete_season(cursor, season_id: int) -> int:
    cursor.execute("DELETE FROM xp_seasons WHERE id = %s", (season_id,))
    return cursor.rowcount


# ===== LEDGER =====


def insert_xp_event(
    cursor,
    attendant_id: int,
    base_points: int,
    multiplier: float,
    final_points: int,
    reason: str,
    xp_type: str,
    related_id: Optional[str],
    season_id: Optional[int],
    timestamp: int
) -> int:
    cursor.execute("""
        INSERT INTO xp_events
        (attendant_id, base_points, multiplier, final_points, reason, type, related_id, season_id, timestamp)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
    """, (attendant_id, base_points, multiplier, final_points, reason, xp_type,
          related_id, season_id, timestamp))
    return cursor.lastrowid


def get_xp_event(cursor, event_id: int) -> Optional[Dict]:
    cursor.execute("SELECT * FROM xp_events WHERE id = %s", (event_id,))
    return cursor.fetchone()


def sum_attendant_xp(cursor, attendant_id: int, season_id: Optional[int] = None) -> int:
    if season_id is not None:
        cursor.execute("""
            SELECT COALESCE(SUM(final_points), 0) AS total
            FROM xp_events WHERE attendant_id = %s AND season_id = %s
        """, (attendant_id, season_id))
    else:
        cursor.execute("""
            SELECT COALESCE(SUM(final_points), 0) AS total
            FROM xp_events WHERE attendant_id = %s
        """, (attendant_id,))
    result = cursor.fetchone()
    return int(result['total']) if result else 0


def list_xp_events(
    cursor,
    attendant_id: Optional[int] = None,
    season_id: Optional[int] = None,
    start_ts: Optional[int] = None,
    end_ts: Optional[int] = None,
    limit: Optional[int] = None
) -> List[Dict]:
    """Ledger events, newest first; time bounds are [start_ts, end_ts)."""
    clauses, params = [], []
    if attendant_id is not None:
        clauses.append("attendant_id = %s")
        params.append(attendant_id)
    if season_id is not None:
        clauses.append("season_id = %s")
        params.append(season_id)
    if start_ts is not None:
        clauses.append("timestamp >= %s")
        params.append(start_ts)
    if end_ts is not None:
        clauses.append("timestamp < %s")
        params.append(end_ts)

    query = "SELECT * FROM xp_events"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY timestamp DESC, id DESC"
    if limit is not None:
        query += " LIMIT %s"
        params.append(limit)
    cursor.execute(query, tuple(params))
    return cursor.fetchall()


def sum_xp_by_attendant(cursor, season_id: Optional[int] = None) -> List[Dict]:
    if season_id is not None:
        cursor.execute("""
            SELECT attendant_id, SUM(final_points) AS total_xp
            FROM xp_events WHERE season_id = %s
            GROUP BY attendant_id
        """, (season_id,))
    else:
        cursor.execute("""
            SELECT attendant_id, SUM(final_points) AS total_xp
            FROM xp_events
            GROUP BY attendant_id
        """)
    return cursor.fetchall()


# ===== ATTENDANTS & EVALUATIONS (owned by the HR application) =====


def attendant_exists(cursor, attendant_id: int) -> bool:
    cursor.execute("SELECT id FROM attendants WHERE id = %s", (attendant_id,))
    return cursor.fetchone() is not None


def get_recent_ratings(cursor, attendant_id: int, limit: int) -> List[int]:
    """Ratings of the most recent evaluations, newest first."""
    cursor.execute("""
        SELECT rating FROM evaluations
        WHERE attendant_id = %s
        ORDER BY evaluated_timestamp DESC, id DESC
        LIMIT %s
    """, (attendant_id, limit))
    return [int(row['rating']) for row in cursor.fetchall()]


def get_rating_summary(cursor, attendant_id: int) -> Tuple[int, float]:
    """(number of evaluations, mean rating)."""
    cursor.execute("""
        SELECT COUNT(*) AS cnt, COALESCE(AVG(rating), 0) AS avg_rating
        FROM evaluations WHERE attendant_id = %s
    """, (attendant_id,))
    result = cursor.fetchone()
    if not result:
        return 0, 0.0
    return int(result['cnt']), float(result['avg_rating'])


# ===== XP TYPES =====


def get_xp_type(cursor, type_id: int) -> Optional[Dict]:
    cursor.execute("SELECT * FROM xp_types WHERE id = %s", (type_id,))
    return cursor.fetchone()


def get_xp_type_by_name(cursor, name: str) -> Optional[Dict]:
    cursor.execute("SELECT * FROM xp_types WHERE name = %s", (name,))
    return cursor.fetchone()


def insert_xp_type(
    cursor,
    name: str,
    description: str,
    points: int,
    category: str,
    created_by: Optional[int],
    timestamp: int
) -> int:
    cursor.execute("""
        INSERT INTO xp_types (name, description, points, category, active, created_by, created_timestamp)
        VALUES (%s, %s, %s, %s, 1, %s, %s)
    """, (name, description, points, category, created_by, timestamp))
    return cursor.lastrowid


def update_xp_type(cursor, type_id: int, fields: Dict[str, Any]) -> int:
    """Update whitelisted columns of an XP type."""
    allowed = ('name', 'description', 'points', 'category')
    assignments = [(key, fields[key]) for key in allowed if key in fields]
    if not assignments:
        return 0
    sql = "UPDATE xp_types SET " + ", ".join(f"{key} = %s" for key, _ in assignments) + " WHERE id = %s"
    cursor.execute(sql, tuple(value for _, value in assignments) + (type_id,))
    return cursor.rowcount


def set_xp_type_active(cursor, type_id: int, active: bool) -> int:
    cursor.execute(
        "UPDATE xp_types SET active = %s WHERE id = %s",
        (1 if active else 0, type_id)
    )
    return cursor.rowcount


def list_xp_types(cursor, active_only: bool = False) -> List[Dict]:
    if active_only:
        cursor.execute("SELECT * FROM xp_types WHERE active = 1 ORDER BY category, name")
    else:
        cursor.execute("SELECT * FROM xp_types ORDER BY category, name")
    return cursor.fetchall()


# ===== GRANTS =====


def insert_xp_grant(
    cursor,
    attendant_id: int,
    type_id: int,
    points: int,
    justification: Optional[str],
    granted_by: int,
    timestamp: int,
    xp_event_id: int
) -> int:
    cursor.execute("""
        INSERT INTO xp_grants
        (attendant_id, type_id, points, justification, granted_by, granted_timestamp, xp_event_id)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
    """, (attendant_id, type_id, points, justification, granted_by, timestamp, xp_event_id))
    return cursor.lastrowid


def get_xp_grant(cursor, grant_id: int) -> Optional[Dict]:
    cursor.execute("SELECT * FROM xp_grants WHERE id = %s", (grant_id,))
    return cursor.fetchone()


def get_grant_usage(
    cursor,
    start_ts: int,
    end_ts: int,
    granter_id: Optional[int] = None
) -> Tuple[int, int]:
    """(grant count, point sum) in [start_ts, end_ts), optionally for one granter."""
    if granter_id is not None:
        cursor.execute("""
            SELECT COUNT(*) AS cnt, COALESCE(SUM(points), 0) AS total
            FROM xp_grants
            WHERE granted_by = %s AND granted_timestamp >= %s AND granted_timestamp < %s
        """, (granter_id, start_ts, end_ts))
    else:
        cursor.execute("""
            SELECT COUNT(*) AS cnt, COALESCE(SUM(points), 0) AS total
            FROM xp_grants
            WHERE granted_timestamp >= %s AND granted_timestamp < %s
        """, (start_ts, end_ts))
    result = cursor.fetchone()
    if not result:
        return 0, 0
    return int(result['cnt']), int(result['total'])


def count_attendant_grants(cursor, attendant_id: int, start_ts: int, end_ts: int) -> int:
    cursor.execute("""
        SELECT COUNT(*) AS cnt FROM xp_grants
        WHERE attendant_id = %s AND granted_timestamp >= %s AND granted_timestamp < %s
    """, (attendant_id, start_ts, end_ts))
    result = cursor.fetchone()
    return result['cnt'] if result else 0


def get_last_grant_timestamp(cursor, attendant_id: int) -> Optional[int]:
    cursor.execute(
        "SELECT MAX(granted_timestamp) AS last_ts FROM xp_grants WHERE attendant_id = %s",
        (attendant_id,)
    )
    result = cursor.fetchone()
    if not result or result['last_ts'] is None:
        return None
    return int(result['last_ts'])


def list_grants_by_attendant(cursor, attendant_id: int) -> List[Dict]:
    cursor.execute("""
        SELECT g.*, t.name AS type_name
        FROM xp_grants g
        JOIN xp_types t ON t.id = g.type_id
        WHERE g.attendant_id = %s
        ORDER BY g.granted_timestamp DESC, g.id DESC
    """, (attendant_id,))
    return cursor.fetchall()


_GRANT_SORT_COLUMNS = {
    'granted_timestamp': 'g.granted_timestamp',
    'points': 'g.points',
    'type_name': 't.name',
}


def search_grants(
    cursor,
    filters: Dict[str, Any],
    limit: int,
    offset: int,
    sort_by: str = 'granted_timestamp',
    descending: bool = True
) -> Tuple[List[Dict], int]:
    """
    Filtered, paged grant history.

    Supported filters: attendant_id, type_id, granter_id, start_ts, end_ts,
    min_points, max_points.

    Returns:
        Tuple of (rows, total matching count).
    """
    conditions = {
        'attendant_id': "g.attendant_id = %s",
        'type_id': "g.type_id = %s",
        'granter_id': "g.granted_by = %s",
        'start_ts': "g.granted_timestamp >= %s",
        'end_ts': "g.granted_timestamp < %s",
        'min_points': "g.points >= %s",
        'max_points': "g.points <= %s",
    }
    clauses, params = [], []
    for key, clause in conditions.items():
        if filters.get(key) is not None:
            clauses.append(clause)
            params.append(filters[key])
    where = (" WHERE " + " AND ".join(clauses)) if clauses else ""

    cursor.execute(f"SELECT COUNT(*) AS cnt FROM xp_grants g{where}", tuple(params))
    total = cursor.fetchone()['cnt']

    order_column = _GRANT_SORT_COLUMNS.get(sort_by, 'g.granted_timestamp')
    direction = "DESC" if descending else "ASC"
    cursor.execute(f"""
        SELECT g.*, t.name AS type_name
        FROM xp_grants g
        JOIN xp_types t ON t.id = g.type_id{where}
        ORDER BY {order_column} {direction}, g.id {direction}
        LIMIT %s OFFSET %s
    """, tuple(params) + (limit, offset))
    return cursor.fetchall(), total


def grant_totals_by_type(cursor, since_ts: int) -> List[Dict]:
    cursor.execute("""
        SELECT g.type_id, t.name AS type_name, COUNT(*) AS cnt, SUM(g.points) AS total_points
        FROM xp_grants g
        JOIN xp_types t ON t.id = g.type_id
        WHERE g.granted_timestamp >= %s
        GROUP BY g.type_id, t.name
        ORDER BY total_points DESC
    """, (since_ts,))
    return cursor.fetchall()


def grant_totals_by_granter(cursor, since_ts: int) -> List[Dict]:
    cursor.execute("""
        SELECT granted_by, COUNT(*) AS cnt, SUM(points) AS total_points
        FROM xp_grants
        WHERE granted_timestamp >= %s
        GROUP BY granted_by
        ORDER BY total_points DESC
    """, (since_ts,))
    return cursor.fetchall()


# ===== GRANT LIMITS =====


def get_grant_limits(cursor, row_id: str) -> Optional[Dict]:
    cursor.execute("SELECT * FROM xp_grant_limits WHERE id = %s", (row_id,))
    return cursor.fetchone()


def upsert_grant_limits(
    cursor,
    row_id: str,
    values: Dict[str, Any],
    updated_by: Optional[int],
    timestamp: int
) -> None:
    columns = list(values.keys())
    placeholders = ", ".join(["%s"] * (len(columns) + 3))
    updates = ", ".join(f"{col} = VALUES({col})" for col in columns + ['updated_by', 'updated_timestamp'])
    cursor.execute(f"""
        INSERT INTO xp_grant_limits (id, {", ".join(columns)}, updated_by, updated_timestamp)
        VALUES ({placeholders})
        ON DUPLICATE KEY UPDATE {updates}
    """, (row_id, *[values[col] for col in columns], updated_by, timestamp))


# ===== ACHIEVEMENTS =====


def list_achievement_configs(cursor, active_only: bool = True) -> List[Dict]:
    if active_only:
        cursor.execute("SELECT * FROM achievement_configs WHERE active = 1 ORDER BY id")
    else:
        cursor.execute("SELECT * FROM achievement_configs ORDER BY id")
    return cursor.fetchall()


def get_achievement_config(cursor, achievement_id: int) -> Optional[Dict]:
    cursor.execute("SELECT * FROM achievement_configs WHERE id = %s", (achievement_id,))
    return cursor.fetchone()


def insert_achievement_config(
    cursor,
    title: str,
    description: str,
    xp_reward: int,
    criteria_json: str,
    active: bool,
    timestamp: int
) -> int:
    cursor.execute("""
        INSERT INTO achievement_configs (title, description, xp_reward, criteria, active, created_timestamp)
        VALUES (%s, %s, %s, %s, %s, %s)
    """, (title, description, xp_reward, criteria_json, 1 if active else 0, timestamp))
    return cursor.lastrowid


def set_achievement_active(cursor, achievement_id: int, active: bool) -> int:
    cursor.execute(
        "UPDATE achievement_configs SET active = %s WHERE id = %s",
        (1 if active else 0, achievement_id)
    )
    return cursor.rowcount


def insert_unlocked_achievement(
    cursor,
    attendant_id: int,
    achievement_id: int,
    timestamp: int,
    xp_gained: int,
    season_id: Optional[int]
) -> bool:
    """
    Record an unlock. The (attendant_id, achievement_id) unique key turns a
    duplicate into a no-op.

    Returns:
        True if a new row was written.
    """
    cursor.execute("""
        INSERT IGNORE INTO unlocked_achievements
        (attendant_id, achievement_id, unlocked_timestamp, xp_gained, season_id)
        VALUES (%s, %s, %s, %s, %s)
    """, (attendant_id, achievement_id, timestamp, xp_gained, season_id))
    return cursor.rowcount == 1


def get_unlocked_achievement(cursor, attendant_id: int, achievement_id: int) -> Optional[Dict]:
    cursor.execute("""
        SELECT * FROM unlocked_achievements
        WHERE attendant_id = %s AND achievement_id = %s
    """, (attendant_id, achievement_id))
    return cursor.fetchone()


def list_unlocked_achievements(cursor, attendant_id: int, season_id: Optional[int] = None) -> List[Dict]:
    if season_id is not None:
        cursor.execute("""
            SELECT u.*, a.title
            FROM unlocked_achievements u
            JOIN achievement_configs a ON a.id = u.achievement_id
            WHERE u.attendant_id = %s AND u.season_id = %s
            ORDER BY u.unlocked_timestamp, u.achievement_id
        """, (attendant_id, season_id))
    else:
        cursor.execute("""
            SELECT u.*, a.title
            FROM unlocked_achievements u
            JOIN achievement_configs a ON a.id = u.achievement_id
            WHERE u.attendant_id = %s
            ORDER BY u.unlocked_timestamp, u.achievement_id
        """, (attendant_id,))
    return cursor.fetchall()
