import unittest
from datetime import date
from unittest.mock import MagicMock, patch

from fakes import FakeStoreTestCase

import src.attendant_xp as attendant_xp
from src.attendant_xp import settings
from src.attendant_xp.exceptions import NoActiveSeasonError, OverlappingPeriodError
from src.attendant_xp.grants import limits


class TestApi(FakeStoreTestCase):

    def setUp(self):
        super().setUp()
        self.store.add_attendant(1, 2)
        self.type_id = self.store.add_xp_type("Helpful", 40)

    def _active_season(self, multiplier=1.0):
        season = attendant_xp.create_season("Current", date(2000, 1, 1), date(2100, 1, 1), multiplier)
        attendant_xp.activate_season(season.id)
        return season

    def test_create_season_overlap(self):
        self._active_season()
        with self.assertRaises(OverlappingPeriodError):
            attendant_xp.create_season("Clash", date(2024, 1, 1), date(2024, 2, 1))

    def test_record_xp_forwards_to_dispatcher(self):
        self._active_season(multiplier=2.0)
        dispatcher = attendant_xp.NotificationDispatcher()
        listener = MagicMock()
        dispatcher.subscribe(listener)

        result = attendant_xp.record_xp(1, 50, "eval", settings.XP_TYPE_EVALUATION, dispatcher=dispatcher)

        self.assertEqual(result.event.final_points, 100)
        event_type, payload = listener.call_args_list[0].args
        self.assertEqual(event_type, settings.EVENT_XP_RECORDED)
        self.assertEqual(payload['xp_amount'], 100)

    def test_grant_xp_forwards_to_dispatcher(self):
        self._active_season()
        dispatcher = attendant_xp.NotificationDispatcher()
        listener = MagicMock()
        dispatcher.subscribe(listener)

        result = attendant_xp.grant_xp(1, self.type_id, 10, "Covered a shift", dispatcher=dispatcher)

        self.assertEqual(result.grant.points, 40)
        event_type, payload = listener.call_args_list[0].args
        self.assertEqual(event_type, settings.EVENT_XP_GRANTED)
        self.assertEqual(payload['justification'], "Covered a shift")

    def test_grant_notifications_can_be_disabled(self):
        self._active_season()
        limits.update_grant_limits({'enable_notifications': False})
        dispatcher = attendant_xp.NotificationDispatcher()
        listener = MagicMock()
        dispatcher.subscribe(listener)

        attendant_xp.grant_xp(1, self.type_id, 10, dispatcher=dispatcher)

        listener.assert_not_called()

    def test_grant_without_season_creates_nothing(self):
        with self.assertRaises(NoActiveSeasonError):
            attendant_xp.grant_xp(1, self.type_id, 10)
        self.assertEqual(self.store.grants, {})
        self.assertEqual(self.store.events, {})

    def test_leaderboard_and_usage(self):
        self._active_season()
        attendant_xp.grant_xp(2, self.type_id, 10)

        board = attendant_xp.get_leaderboard()
        usage = attendant_xp.get_daily_usage(10)

        self.assertEqual(board[0].attendant_id, 2)
        self.assertEqual((usage.grants, usage.points), (1, 40))

    def test_get_unlocked(self):
        with patch("src.attendant_xp.achievements.achievement_logic.get_unlocked", return_value=[]) as mock_get:
            self.assertEqual(attendant_xp.get_unlocked(1, 5), [])
        mock_get.assert_called_once_with(1, 5)


if __name__ == "__main__":
    unittest.main(verbosity=2)
