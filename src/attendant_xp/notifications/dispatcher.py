"""
Notification dispatcher

Boundary between the engine and whatever delivers notifications. The
engine returns results; the caller converts them to tagged payloads here
and hands them to subscribed listeners.
"""

import logging
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from src.attendant_xp import settings
from src.attendant_xp.models import GrantResult, LevelUp, RecordXpResult, UnlockedAchievement

logger = logging.getLogger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]


class NotificationDispatcher:
    """Fan-out of (event_type, payload) to listeners; delivery is best effort."""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)
        logger.debug(f"Notification listener subscribed: {listener!r}")

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def dispatch(self, event_type: str, payload: Dict[str, Any]) -> int:
        """
        Deliver a payload to every listener.

        Listener exceptions are logged and do not stop delivery.

        Returns:
            Number of listeners that accepted the payload.
        """
        delivered = 0
        for listener in list(self._listeners):
            try:
                listener(event_type, payload)
                delivered += 1
            except Exception as e:
                logger.error(f"Notification listener failed for {event_type}: {e}")
        return delivered


def _level_up_dict(level_up: Optional[LevelUp]) -> Optional[Dict[str, int]]:
    return asdict(level_up) if level_up else None


def _achievement_dict(achievement: UnlockedAchievement) -> Dict[str, Any]:
    return {
        'achievement_id': achievement.achievement_id,
        'title': achievement.title,
        'xp_gained': achievement.xp_gained,
    }


def build_grant_payload(result: GrantResult) -> Dict[str, Any]:
    """
    Tagged payload for a completed grant.

    Optional keys (justification, level_up, achievements_unlocked) are
    only present when they carry a value.
    """
    payload: Dict[str, Any] = {
        'event_type': settings.EVENT_XP_GRANTED,
        'attendant_id': result.grant.attendant_id,
        'xp_amount': result.event.final_points,
        'type_name': result.type_name,
    }
    if result.grant.justification:
        payload['justification'] = result.grant.justification
    if result.level_up:
        payload['level_up'] = _level_up_dict(result.level_up)
    if result.unlocked:
        payload['achievements_unlocked'] = [_achievement_dict(a) for a in result.unlocked]
    return payload


def build_record_payload(result: RecordXpResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        'event_type': settings.EVENT_XP_RECORDED,
        'attendant_id': result.event.attendant_id,
        'xp_amount': result.event.final_points,
        'type_name': result.event.type,
    }
    if result.level_up:
        payload['level_up'] = _level_up_dict(result.level_up)
    if result.unlocked:
        payload['achievements_unlocked'] = [_achievement_dict(a) for a in result.unlocked]
    return payload


def _dispatch_follow_ups(
    dispatcher: NotificationDispatcher,
    attendant_id: int,
    level_up: Optional[LevelUp],
    unlocked: List[UnlockedAchievement]
) -> None:
    if level_up:
        dispatcher.dispatch(settings.EVENT_LEVEL_UP, {
            'event_type': settings.EVENT_LEVEL_UP,
            'attendant_id': attendant_id,
            **asdict(level_up),
        })
    for achievement in unlocked:
        dispatcher.dispatch(settings.EVENT_ACHIEVEMENT_UNLOCKED, {
            'event_type': settings.EVENT_ACHIEVEMENT_UNLOCKED,
            'attendant_id': attendant_id,
            **_achievement_dict(achievement),
        })


def notify_grant(dispatcher: NotificationDispatcher, result: GrantResult) -> None:
    """xp_granted, then level_up and one achievement_unlocked per unlock."""
    dispatcher.dispatch(settings.EVENT_XP_GRANTED, build_grant_payload(result))
    _dispatch_follow_ups(dispatcher, result.grant.attendant_id, result.level_up, result.unlocked)


def notify_record(dispatcher: NotificationDispatcher, result: RecordXpResult) -> None:
    dispatcher.dispatch(settings.EVENT_XP_RECORDED, build_record_payload(result))
    _dispatch_follow_ups(dispatcher, result.event.attendant_id, result.level_up, result.unlocked)
