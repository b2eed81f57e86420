import unittest
from datetime import timedelta

from fastapi.testclient import TestClient

from tests.helpers import make_user

from app.core.lifespan import run_maintenance  # noqa: E402
from app.db.store import utc_now  # noqa: E402
from app.db.users import get_user, set_subscription  # noqa: E402
from app.main import app  # noqa: E402


class MaintenanceTests(unittest.TestCase):
    def test_sweep_expires_lapsed_subscriptions_only(self):
        lapsed = make_user(tier="premium")
        current = make_user(tier="premium")
        lifetime = make_user(tier="premium")
        set_subscription(lapsed.id, tier="premium", status="active", plan="monthly", expires_at=utc_now() - timedelta(hours=1))
        set_subscription(current.id, tier="premium", status="active", plan="monthly", expires_at=utc_now() + timedelta(days=5))

        result = run_maintenance()
        self.assertGreaterEqual(result["subscriptions"], 1)
        self.assertEqual(get_user(lapsed.id).subscription_status, "expired")
        self.assertEqual(get_user(current.id).subscription_status, "active")
        self.assertEqual(get_user(lifetime.id).subscription_status, "active")

    def test_app_starts_and_reports_health(self):
        with TestClient(app) as client:
            response = client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "healthy")


if __name__ == "__main__":
    unittest.main()
