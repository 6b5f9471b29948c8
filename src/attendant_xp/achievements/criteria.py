"""
Achievement criteria

Closed set of criteria variants. Stored as JSON in achievement_configs and
parsed here; nothing outside this module inspects the raw structure.
"""

import json
from dataclasses import asdict, dataclass
from typing import Any, Dict, Union

from src.attendant_xp.exceptions import ValidationError


@dataclass(frozen=True)
class XpThreshold:
    """Total XP reaches `threshold`."""
    threshold: int


@dataclass(frozen=True)
class FiveStarStreak:
    """The last `count` evaluations are all five stars."""
    count: int


@dataclass(frozen=True)
class HighAverage:
    """Mean rating of at least `rating` over at least `min_count` evaluations."""
    rating: float
    min_count: int


@dataclass(frozen=True)
class RankingPosition:
    """Position in the active season leaderboard is `max_position` or better."""
    max_position: int


Criteria = Union[XpThreshold, FiveStarStreak, HighAverage, RankingPosition]

CRITERIA_TYPES: Dict[str, type] = {
    "xp_threshold": XpThreshold,
    "five_star_streak": FiveStarStreak,
    "high_average": HighAverage,
    "ranking_position": RankingPosition,
}

_TYPE_NAMES = {cls: name for name, cls in CRITERIA_TYPES.items()}


def parse_criteria(raw: Union[str, Dict[str, Any]]) -> Criteria:
    """
    Build a criteria variant from its stored form.

    Args:
        raw: JSON string or dict such as {"type": "xp_threshold", "threshold": 500}.

    Returns:
        The matching criteria dataclass.

    Raises:
        ValidationError: unknown type, missing or out-of-range fields.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Criteria is not valid JSON: {e}", field="criteria") from e
    if not isinstance(raw, dict):
        raise ValidationError("Criteria must be an object", field="criteria")

    data = dict(raw)
    type_name = data.pop("type", None)
    cls = CRITERIA_TYPES.get(type_name)
    if cls is None:
        raise ValidationError(f"Unknown criteria type: {type_name!r}", field="criteria")

    try:
        if cls is XpThreshold:
            criteria = XpThreshold(threshold=int(data["threshold"]))
        elif cls is FiveStarStreak:
            criteria = FiveStarStreak(count=int(data["count"]))
        elif cls is HighAverage:
            criteria = HighAverage(rating=float(data["rating"]), min_count=int(data["min_count"]))
        else:
            criteria = RankingPosition(max_position=int(data["max_position"]))
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {type_name} criteria: {e}", field="criteria") from e

    _check_bounds(criteria)
    return criteria


def _check_bounds(criteria: Criteria) -> None:
    if isinstance(criteria, XpThreshold):
        ok = criteria.threshold > 0
    elif isinstance(criteria, FiveStarStreak):
        ok = criteria.count > 0
    elif isinstance(criteria, HighAverage):
        ok = 0 < criteria.rating <= 5 and criteria.min_count > 0
    elif isinstance(criteria, RankingPosition):
        ok = criteria.max_position > 0
    else:
        raise TypeError(f"Unsupported criteria: {criteria!r}")
    if not ok:
        raise ValidationError(f"Criteria out of range: {criteria!r}", field="criteria")


def criteria_to_json(criteria: Criteria) -> str:
    """Serialise a criteria variant for storage."""
    type_name = _TYPE_NAMES.get(type(criteria))
    if type_name is None:
        raise TypeError(f"Unsupported criteria: {criteria!r}")
    return json.dumps({"type": type_name, **asdict(criteria)})
