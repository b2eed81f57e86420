import unittest
from unittest.mock import patch
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from tests.helpers import make_user

from app.core.errors import EntitlementError  # noqa: E402
from app.db.store import utc_now  # noqa: E402
from app.db.users import get_user, increment_usage, set_usage  # noqa: E402
from app.services.usage import check_usage_limit, next_reset_boundary, record_usage, usage_snapshot  # noqa: E402


class UsageQuotaTests(unittest.TestCase):
    def test_fourth_analysis_of_the_day_is_rejected(self):
        user = make_user()
        for _ in range(3):
            check_usage_limit(get_user(user.id))
            self.assertTrue(record_usage(get_user(user.id)))

        with self.assertRaises(EntitlementError) as ctx:
            check_usage_limit(get_user(user.id))
        error = ctx.exception
        self.assertEqual(error.code, "USAGE_LIMIT_EXCEEDED")
        self.assertEqual(error.context["usageCount"], 3)
        self.assertEqual(error.context["usageLimit"], 3)
        self.assertEqual(error.context["currentTier"], "free")
        self.assertEqual(get_user(user.id).usage_count, 3)

    def test_counter_restarts_after_reset_boundary(self):
        user = make_user()
        past_boundary = utc_now() - timedelta(minutes=5)
        set_usage(user.id, usage_count=3, usage_reset_at=past_boundary)

        snapshot = check_usage_limit(get_user(user.id))
        self.assertEqual(snapshot["usageCount"], 0)
        self.assertTrue(record_usage(get_user(user.id)))
        fresh = get_user(user.id)
        self.assertEqual(fresh.usage_count, 1)
        self.assertGreater(fresh.usage_reset_at, utc_now())

    def test_reset_applies_once_when_two_requests_race(self):
        user = make_user()
        set_usage(user.id, usage_count=2, usage_reset_at=utc_now() - timedelta(seconds=1))
        stale = get_user(user.id)
        first = usage_snapshot(stale)
        record_usage(get_user(user.id))
        second = usage_snapshot(stale)
        self.assertEqual(first["usageCount"], 0)
        self.assertEqual(second["usageCount"], 1)

    def test_atomic_increment_never_passes_ceiling(self):
        user = make_user()
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: increment_usage(user.id, ceiling=3), range(20)))
        self.assertEqual(sum(results), 3)
        self.assertEqual(get_user(user.id).usage_count, 3)

    def test_anonymous_callers_are_not_accounted(self):
        self.assertIsNone(check_usage_limit(None))
        self.assertFalse(record_usage(None))

    def test_increment_failure_is_swallowed(self):
        user = make_user()
        with patch("app.services.usage.increment_usage", side_effect=RuntimeError("db down")):
            self.assertFalse(record_usage(user))

    def test_reset_boundary_is_in_the_future(self):
        now = utc_now()
        boundary = next_reset_boundary(now)
        self.assertGreater(boundary, now)
        self.assertLessEqual(boundary - now, timedelta(days=1, hours=1))


if __name__ == "__main__":
    unittest.main()
