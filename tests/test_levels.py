import unittest

from src.attendant_xp.ledger import levels
from src.attendant_xp.models import LevelUp


class TestLevels(unittest.TestCase):

    def test_level_from_xp(self):
        cases = {-50: 1, 0: 1, 99: 1, 100: 2, 399: 2, 400: 3, 900: 4, 10000: 11}
        for xp, expected in cases.items():
            with self.subTest(xp=xp):
                self.assertEqual(levels.get_level_from_xp(xp), expected)

    def test_xp_required_for_level(self):
        self.assertEqual(levels.xp_required_for_level(1), 0)
        self.assertEqual(levels.xp_required_for_level(2), 100)
        self.assertEqual(levels.xp_required_for_level(3), 400)

    def test_progress_inside_level(self):
        progress = levels.get_level_progress(250)
        self.assertEqual(progress['level'], 2)
        self.assertEqual(progress['xp_for_current_level'], 100)
        self.assertEqual(progress['xp_for_next_level'], 400)
        self.assertAlmostEqual(progress['progress'], 50.0)

    def test_progress_negative_total_clamped(self):
        self.assertEqual(levels.get_level_progress(-20)['progress'], 0.0)

    def test_detect_level_up(self):
        self.assertEqual(levels.detect_level_up(90, 410), LevelUp(previous_level=1, new_level=3))
        self.assertIsNone(levels.detect_level_up(100, 399))
        self.assertIsNone(levels.detect_level_up(400, 120))


if __name__ == "__main__":
    unittest.main(verbosity=2)
