import unittest
from unittest.mock import patch

from fakes import FakeStoreTestCase

from src.attendant_xp import settings
from src.attendant_xp.exceptions import NotFoundError, StorageError, ValidationError
from src.attendant_xp.ledger import ledger_logic
from src.attendant_xp.models import LevelUp

EVALUATION = settings.XP_TYPE_EVALUATION


class TestComputeFinalPoints(unittest.TestCase):

    def test_rounds_half_up(self):
        self.assertEqual(ledger_logic.compute_final_points(5, 1.5), 8)
        self.assertEqual(ledger_logic.compute_final_points(50, 2.0), 100)
        self.assertEqual(ledger_logic.compute_final_points(3, 0.1), 0)

    def test_negative_points(self):
        self.assertEqual(ledger_logic.compute_final_points(-10, 1.5), -15)


class TestRecordXp(FakeStoreTestCase):

    def setUp(self):
        super().setUp()
        self.store.add_attendant(1, 2)

    def test_season_multiplier_applied(self):
        season_id = self.store.add_season("Double", 0, 10 ** 10, multiplier=2.0, active=True)

        result = ledger_logic.record_xp(1, 50, "eval", EVALUATION)

        self.assertEqual(result.event.base_points, 50)
        self.assertEqual(result.event.multiplier, 2.0)
        self.assertEqual(result.event.final_points, 100)
        self.assertEqual(result.event.season_id, season_id)
        self.assertEqual(self.store.events[result.event.id]['final_points'], 100)

    def test_no_active_season_defaults(self):
        self.store.add_season("Inactive", 0, 10 ** 10, multiplier=3.0, active=False)

        event = ledger_logic.record_xp(1, 40, "eval", EVALUATION).event

        self.assertEqual(event.multiplier, 1.0)
        self.assertEqual(event.final_points, 40)
        self.assertIsNone(event.season_id)

    def test_write_holds_attendant_lock(self):
        ledger_logic.record_xp(2, 15, "eval", EVALUATION)
        self.assertEqual(self.store.lock_requests, [("xp:attendant:2",)])

    def test_achievements_evaluated_from_top_level(self):
        with patch("src.attendant_xp.achievements.achievement_logic.evaluate", return_value=[]) as mock_evaluate:
            ledger_logic.record_xp(1, 40, "eval", EVALUATION)
        mock_evaluate.assert_called_once_with(1, 0, 40)

    def test_ledger_sum_invariant(self):
        for points in (10, 25, -5, 70):
            ledger_logic.record_xp(1, points, "eval", EVALUATION)
        ledger_logic.record_xp(2, 999, "eval", EVALUATION)

        events = ledger_logic.get_xp_events(attendant_id=1)
        self.assertEqual(ledger_logic.get_total_xp(1), sum(e.final_points for e in events))
        self.assertEqual(ledger_logic.get_total_xp(1), 100)

    def test_events_newest_first(self):
        first = ledger_logic.record_xp(1, 10, "first", EVALUATION).event
        second = ledger_logic.record_xp(1, 20, "second", EVALUATION).event
        ids = [e.id for e in ledger_logic.get_xp_events(attendant_id=1)]
        self.assertEqual(ids[:2], sorted([first.id, second.id], reverse=True))

    def test_level_up_reported(self):
        ledger_logic.record_xp(1, 90, "eval", EVALUATION)
        result = ledger_logic.record_xp(1, 20, "eval", EVALUATION)
        self.assertEqual(result.level_up, LevelUp(previous_level=1, new_level=2))

    def test_no_level_up_within_level(self):
        self.assertIsNone(ledger_logic.record_xp(1, 20, "eval", EVALUATION).level_up)

    def test_unknown_attendant(self):
        with self.assertRaises(NotFoundError):
            ledger_logic.record_xp(404, 10, "eval", EVALUATION)
        self.assertEqual(self.store.events, {})

    def test_reason_required(self):
        with self.assertRaises(ValidationError) as ctx:
            ledger_logic.record_xp(1, 10, " ", EVALUATION)
        self.assertEqual(ctx.exception.field, "reason")

    def test_non_integer_points_rejected(self):
        with self.assertRaises(ValidationError):
            ledger_logic.record_xp(1, 2.5, "eval", EVALUATION)

    def test_storage_failure_writes_nothing(self):
        self.store.fail_on = {"insert_xp_event"}
        with self.assertRaises(StorageError):
            ledger_logic.record_xp(1, 10, "eval", EVALUATION)
        self.assertEqual(self.store.events, {})


class TestAttendantStats(FakeStoreTestCase):

    def test_stats(self):
        self.store.add_attendant(1)
        ledger_logic.record_xp(1, 30, "eval", EVALUATION)
        ledger_logic.record_xp(1, 50, "eval", EVALUATION)
        ledger_logic.record_xp(1, 40, "bonus", "bonus")

        stats = ledger_logic.get_attendant_stats(1)

        self.assertEqual(stats['total_xp'], 120)
        self.assertEqual(stats['evaluation_count'], 2)
        self.assertAlmostEqual(stats['average_xp_per_evaluation'], 40.0)
        self.assertEqual(stats['level']['level'], 2)


if __name__ == "__main__":
    unittest.main(verbosity=2)
