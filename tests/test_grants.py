import threading
import unittest
from datetime import date, datetime

import pytest
from fakes import FakeStoreTestCase

from src.attendant_xp import settings
from src.attendant_xp.achievements.criteria import XpThreshold
from src.attendant_xp.achievements import achievement_logic
from src.attendant_xp.exceptions import (
    ConflictError,
    InvalidTypeError,
    LimitExceeded,
    LimitRule,
    NoActiveSeasonError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from src.attendant_xp.grants import grant_logic, limits
from src.attendant_xp.models import GrantState, LevelUp

WEDNESDAY_NOON = datetime(2024, 5, 15, 12, 0)
SATURDAY_NOON = datetime(2024, 5, 18, 12, 0)
GRANTER = 10


class GrantTestCase(FakeStoreTestCase):

    def setUp(self):
        super().setUp()
        self.store.add_attendant(*range(1, 13))
        self.season_id = self.store.add_season("Current", 0, 10 ** 10, multiplier=1.0, active=True)
        self.type_id = self.store.add_xp_type("Helpful", 50)

    def grant(self, attendant_id=1, type_id=None, granter_id=GRANTER, justification=None, now=WEDNESDAY_NOON, **kwargs):
        return grant_logic.grant_xp(
            attendant_id, type_id or self.type_id, granter_id, justification, now=now, **kwargs
        )

    def assert_nothing_written(self):
        self.assertEqual(self.store.grants, {})
        self.assertEqual(self.store.events, {})


class TestGrantSuccess(GrantTestCase):

    def test_grant_and_event_written_together(self):
        result = self.grant(justification="  Covered a shift ")

        self.assertEqual(result.state, GrantState.COMPLETED)
        self.assertEqual(result.grant.points, 50)
        self.assertEqual(result.grant.justification, "Covered a shift")
        self.assertEqual(result.type_name, "Helpful")
        self.assertEqual(result.event.type, settings.XP_TYPE_MANUAL_GRANT)
        self.assertEqual(result.event.season_id, self.season_id)

        stored_grant = self.store.grants[result.grant.id]
        self.assertEqual(stored_grant['xp_event_id'], result.event.id)
        self.assertEqual(stored_grant['granted_timestamp'], int(WEDNESDAY_NOON.timestamp()))
        self.assertIn(result.event.id, self.store.events)

    def test_season_multiplier_applies_to_ledger_not_grant(self):
        self.store.seasons[self.season_id]['xp_multiplier'] = 2.0
        result = self.grant()
        self.assertEqual(result.grant.points, 50)
        self.assertEqual(result.event.final_points, 100)

    def test_points_snapshot_survives_type_change(self):
        self.grant()
        grant_logic.update_xp_type(self.type_id, points=80)

        grants = grant_logic.get_grants_by_attendant(1)

        self.assertEqual(len(grants), 1)
        self.assertEqual(grants[0].points, 50)
        self.assertEqual(grants[0].type_name, "Helpful")

    def test_level_up_returned(self):
        big = self.store.add_xp_type("Hero", 100)
        result = self.grant(type_id=big)
        self.assertEqual(result.level_up, LevelUp(previous_level=1, new_level=2))

    def test_achievements_evaluated_after_commit(self):
        achievement_logic.create_achievement("First fifty", "", 0, XpThreshold(50))
        result = self.grant()
        self.assertEqual([a.title for a in result.unlocked], ["First fifty"])

    def test_auto_approve_limit_only_warns(self):
        big = self.store.add_xp_type("Big", 120)
        with self.assertLogs("src.attendant_xp.grants.grant_logic", level="WARNING"):
            result = self.grant(type_id=big)
        self.assertTrue(any("auto-approve" in w for w in result.warnings))
        self.assertEqual(result.state, GrantState.COMPLETED)

    def test_low_daily_budget_warning(self):
        limits.update_grant_limits({'daily_limit_points': 100, 'cooldown_minutes': 0})
        big = self.store.add_xp_type("Ninety", 95)
        result = self.grant(type_id=big)
        self.assertTrue(any("daily points remain" in w for w in result.warnings))


class TestGrantValidation(GrantTestCase):

    def test_unknown_attendant(self):
        with self.assertRaises(NotFoundError):
            self.grant(attendant_id=404)
        self.assert_nothing_written()

    def test_unknown_type(self):
        with self.assertRaises(NotFoundError):
            self.grant(type_id=404)

    def test_inactive_type(self):
        grant_logic.toggle_xp_type(self.type_id)
        with self.assertRaises(InvalidTypeError):
            self.grant()
        self.assert_nothing_written()

    def test_inactive_type_reported_before_missing_season(self):
        self.store.seasons[self.season_id]['active'] = 0
        grant_logic.toggle_xp_type(self.type_id)
        with self.assertRaises(InvalidTypeError):
            self.grant()

    def test_no_active_season(self):
        self.store.seasons[self.season_id]['active'] = 0
        with self.assertRaises(NoActiveSeasonError):
            self.grant()
        self.assert_nothing_written()

    def test_points_above_maximum(self):
        huge = self.store.add_xp_type("Huge", 300)
        with self.assertRaises(ValidationError) as ctx:
            self.grant(type_id=huge)
        self.assertEqual(ctx.exception.field, "points")

    def test_justification_required(self):
        limits.update_grant_limits({'require_justification': True})
        with self.assertRaises(ValidationError) as ctx:
            self.grant(justification="   ")
        self.assertEqual(ctx.exception.field, "justification")
        self.assertEqual(self.grant(justification="Great week").grant.justification, "Great week")

    def test_rejection_logged(self):
        self.store.seasons[self.season_id]['active'] = 0
        with self.assertLogs("src.attendant_xp.grants.grant_logic", level="WARNING") as logs:
            with self.assertRaises(NoActiveSeasonError):
                self.grant()
        self.assertTrue(any("rejected" in line for line in logs.output))


class TestGrantLimits(GrantTestCase):

    def test_daily_point_limit(self):
        limits.update_grant_limits({'daily_limit_points': 100})
        sixty = self.store.add_xp_type("Sixty", 60)
        self.grant(attendant_id=1, type_id=sixty)

        with self.assertRaises(LimitExceeded) as ctx:
            self.grant(attendant_id=2, type_id=sixty)

        self.assertEqual(ctx.exception.rule, LimitRule.DAILY_POINTS)
        self.assertEqual(ctx.exception.retry_after_minutes, 12 * 60)
        self.assertEqual(len(self.store.grants), 1)

    def test_daily_limit_resets_next_day(self):
        limits.update_grant_limits({'daily_limit_points': 100})
        sixty = self.store.add_xp_type("Sixty", 60)
        self.grant(attendant_id=1, type_id=sixty)
        self.grant(attendant_id=2, type_id=sixty, now=datetime(2024, 5, 16, 0, 0))
        self.assertEqual(len(self.store.grants), 2)

    def test_daily_limits_are_per_granter(self):
        limits.update_grant_limits({'daily_limit_points': 100})
        sixty = self.store.add_xp_type("Sixty", 60)
        self.grant(attendant_id=1, type_id=sixty, granter_id=10)
        self.grant(attendant_id=2, type_id=sixty, granter_id=11)
        self.assertEqual(len(self.store.grants), 2)

    def test_daily_grant_count_limit(self):
        limits.update_grant_limits({'daily_limit_grants': 10})
        for attendant_id in range(1, 11):
            self.grant(attendant_id=attendant_id)

        with self.assertRaises(LimitExceeded) as ctx:
            self.grant(attendant_id=11)
        self.assertEqual(ctx.exception.rule, LimitRule.DAILY_GRANTS)

    def test_attendant_daily_cap(self):
        limits.update_grant_limits({'max_grants_per_attendant': 1, 'cooldown_minutes': 0})
        self.grant(attendant_id=1)
        with self.assertRaises(LimitExceeded) as ctx:
            self.grant(attendant_id=1, granter_id=11)
        self.assertEqual(ctx.exception.rule, LimitRule.ATTENDANT_DAILY_GRANTS)

    def test_cooldown(self):
        self.grant(attendant_id=1)

        with self.assertRaises(LimitExceeded) as ctx:
            self.grant(attendant_id=1, now=datetime(2024, 5, 15, 12, 3))
        self.assertEqual(ctx.exception.rule, LimitRule.COOLDOWN)
        self.assertEqual(ctx.exception.retry_after_minutes, 2)

        self.grant(attendant_id=1, now=datetime(2024, 5, 15, 12, 5))
        self.assertEqual(len(self.store.grants), 2)

    def test_cooldown_disabled(self):
        limits.update_grant_limits({'cooldown_minutes': 0})
        self.grant(attendant_id=1)
        self.grant(attendant_id=1)
        self.assertEqual(len(self.store.grants), 2)

    def test_weekend_restriction(self):
        self.grant(attendant_id=1, now=SATURDAY_NOON)
        limits.update_grant_limits({'allow_weekend_grants': False})

        with self.assertRaises(LimitExceeded) as ctx:
            self.grant(attendant_id=2, now=SATURDAY_NOON)

        self.assertEqual(ctx.exception.rule, LimitRule.WEEKEND)
        self.assertEqual(ctx.exception.retry_after_minutes, 36 * 60)

    def test_holiday_restriction(self):
        calendar = limits.HolidayCalendar(["2024-05-15"])
        self.grant(attendant_id=1, holidays=calendar)
        limits.update_grant_limits({'allow_holiday_grants': False})

        with self.assertRaises(LimitExceeded) as ctx:
            self.grant(attendant_id=2, holidays=calendar)
        self.assertEqual(ctx.exception.rule, LimitRule.HOLIDAY)

        self.grant(attendant_id=2, holidays=limits.HolidayCalendar([date(2024, 12, 25)]))

    def test_storage_failure_rolls_back_grant_and_event(self):
        self.store.fail_on = {"insert_xp_grant"}
        with self.assertRaises(StorageError):
            self.grant()
        self.assert_nothing_written()

    def test_grant_holds_granter_and_attendant_locks(self):
        self.grant(attendant_id=3, granter_id=11)
        self.assertIn(("xp:attendant:3", "xp:granter:11"), self.store.lock_requests)

    def test_rejected_grant_validated_under_granter_lock(self):
        limits.update_grant_limits({'daily_limit_points': 100})
        sixty = self.store.add_xp_type("Sixty", 60)
        self.grant(attendant_id=1, type_id=sixty)
        self.store.lock_requests.clear()

        with self.assertRaises(LimitExceeded):
            self.grant(attendant_id=2, type_id=sixty)

        self.assertEqual(self.store.lock_requests, [("xp:attendant:2", "xp:granter:10")])

    @pytest.mark.concurrency
    def test_concurrent_grants_respect_daily_limit(self):
        limits.update_grant_limits({'daily_limit_points': 100})
        sixty = self.store.add_xp_type("Sixty", 60)
        barrier = threading.Barrier(2)
        outcomes = []

        def attempt(attendant_id):
            barrier.wait()
            try:
                self.grant(attendant_id=attendant_id, type_id=sixty)
                outcomes.append("ok")
            except LimitExceeded as e:
                outcomes.append(e.rule)

        threads = [threading.Thread(target=attempt, args=(a,)) for a in (1, 2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(outcomes), sorted(["ok", LimitRule.DAILY_POINTS]))
        self.assertEqual(len(self.store.grants), 1)
        self.assertEqual(len(self.store.events), 1)


class TestGrantLimitConfiguration(GrantTestCase):

    def test_defaults_created_on_first_read(self):
        config = limits.get_grant_limits()
        self.assertEqual(config.daily_limit_points, 1000)
        self.assertEqual(config.cooldown_minutes, 5)
        self.assertIn(settings.GRANT_LIMITS_ROW_ID, self.store.grant_limits)

    def test_update_out_of_range(self):
        for updates, field in (
            ({'daily_limit_points': 50}, 'daily_limit_points'),
            ({'cooldown_minutes': 2000}, 'cooldown_minutes'),
            ({'max_grants_per_attendant': 0}, 'max_grants_per_attendant'),
            ({'nonsense': 1}, 'nonsense'),
        ):
            with self.subTest(updates=updates):
                with self.assertRaises(ValidationError) as ctx:
                    limits.update_grant_limits(updates)
                self.assertEqual(ctx.exception.field, field)

    def test_min_above_max_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            limits.update_grant_limits({'min_points_per_grant': 300, 'max_points_per_grant': 200})
        self.assertEqual(ctx.exception.field, "min_points_per_grant")

    def test_auto_approve_above_max_rejected(self):
        with self.assertRaises(ValidationError):
            limits.update_grant_limits({'max_points_per_grant': 40})

    def test_reset(self):
        limits.update_grant_limits({'daily_limit_points': 5000}, updated_by=7)
        config = limits.reset_grant_limits(updated_by=7)
        self.assertEqual(config.daily_limit_points, 1000)
        self.assertEqual(config.updated_by, 7)


class TestXpTypes(GrantTestCase):

    def test_create_and_list(self):
        created = grant_logic.create_xp_type("Mentoring", "Helped a newcomer", 30, "teamwork", created_by=GRANTER)
        names = [t.name for t in grant_logic.list_xp_types()]
        self.assertIn("Mentoring", names)
        self.assertEqual(created.category, "teamwork")

    def test_duplicate_name(self):
        with self.assertRaises(ConflictError):
            grant_logic.create_xp_type("Helpful", "", 10)

    def test_points_must_be_positive(self):
        with self.assertRaises(ValidationError):
            grant_logic.create_xp_type("Zero", "", 0)

    def test_toggle(self):
        self.assertFalse(grant_logic.toggle_xp_type(self.type_id).active)
        self.assertEqual(grant_logic.list_xp_types(active_only=True), [])
        self.assertTrue(grant_logic.toggle_xp_type(self.type_id).active)


class TestUsageAndHistory(GrantTestCase):

    def test_daily_usage_for_granter(self):
        self.grant(attendant_id=1)
        self.grant(attendant_id=2)
        self.grant(attendant_id=3, granter_id=11)

        usage = grant_logic.get_daily_usage(GRANTER, WEDNESDAY_NOON.date())

        self.assertEqual((usage.grants, usage.points), (2, 100))
        self.assertEqual(usage.remaining_points, 900)
        self.assertEqual(usage.remaining_grants, 48)

    def test_daily_usage_all_granters(self):
        self.grant(attendant_id=1)
        self.grant(attendant_id=2, granter_id=11)
        usage = grant_logic.get_daily_usage(day=WEDNESDAY_NOON.date())
        self.assertEqual((usage.grants, usage.points), (2, 100))
        self.assertIsNone(usage.remaining_points)

    def test_history_paging(self):
        for attendant_id in range(1, 6):
            self.grant(attendant_id=attendant_id)

        page, total = grant_logic.get_grant_history(granter_id=GRANTER, page=2, per_page=2)

        self.assertEqual(total, 5)
        self.assertEqual(len(page), 2)

    def test_statistics(self):
        other = self.store.add_xp_type("Other", 20)
        self.grant(attendant_id=1)
        self.grant(attendant_id=2, type_id=other, granter_id=11)

        stats = grant_logic.get_grant_statistics(days=30, now=datetime(2024, 5, 20))

        self.assertEqual(stats['total_grants'], 2)
        self.assertEqual(stats['total_points'], 70)
        self.assertAlmostEqual(stats['average_points'], 35.0)
        self.assertEqual(stats['by_type'][0]['type_name'], "Helpful")
        self.assertEqual({row['granter_id'] for row in stats['by_granter']}, {10, 11})


if __name__ == "__main__":
    unittest.main(verbosity=2)
