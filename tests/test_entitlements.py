import asyncio
import unittest
from datetime import timedelta

from fastapi.testclient import TestClient

from tests.helpers import SAMPLE_RESUME_TEXT, auth_headers, make_user

from app.core.entitlements import (  # noqa: E402
    ALL_FEATURES,
    BASIC_FEATURES,
    ENTITLEMENT_TABLE,
    SUBSCRIPTION_STATUSES,
    TIERS,
    evaluate_entitlement,
    feature_flags,
    refresh_subscription,
    require_premium,
    usage_limit_for,
)
from app.core.errors import EntitlementError  # noqa: E402
from app.db.analyses import create_analysis  # noqa: E402
from app.db.store import utc_now  # noqa: E402
from app.db.users import get_user, set_subscription  # noqa: E402
from app.main import app  # noqa: E402
from app.parsing.parse import parse_text  # noqa: E402
from app.scoring.ats import calculate_score  # noqa: E402


class EntitlementTableTests(unittest.TestCase):
    def test_table_covers_every_tier_and_status(self):
        for tier in TIERS:
            for status in SUBSCRIPTION_STATUSES:
                self.assertIn((tier, status), ENTITLEMENT_TABLE)

    def test_premium_features_follow_subscription_status(self):
        self.assertTrue(evaluate_entitlement("premium", "active", "job_description_matching").allowed)
        for status in ("cancelled", "expired"):
            decision = evaluate_entitlement("premium", status, "job_description_matching")
            self.assertFalse(decision.allowed)
            self.assertEqual(decision.code, "SUBSCRIPTION_INACTIVE")
            self.assertTrue(evaluate_entitlement("premium", status, "pdf_reports").allowed)

    def test_free_and_admin_rows(self):
        decision = evaluate_entitlement("free", "active", "ai_rewrite")
        self.assertEqual((decision.allowed, decision.code), (False, "PREMIUM_FEATURE_LOCKED"))
        for status in SUBSCRIPTION_STATUSES:
            self.assertEqual(ENTITLEMENT_TABLE[("admin", status)], ALL_FEATURES)
        self.assertEqual({k for k, v in feature_flags("free", "active").items() if v}, set(BASIC_FEATURES))

    def test_unknown_combination_denies(self):
        self.assertFalse(evaluate_entitlement("ghost", "active", "basic_analysis").allowed)

    def test_usage_limits_per_tier(self):
        self.assertEqual(usage_limit_for("anonymous"), 1)
        self.assertEqual(usage_limit_for("free"), 3)
        self.assertEqual(usage_limit_for("premium"), 999)


class PremiumGateTests(unittest.TestCase):
    def test_require_premium_codes(self):
        free = make_user()
        with self.assertRaises(EntitlementError) as ctx:
            asyncio.run(require_premium(free))
        self.assertEqual(ctx.exception.code, "PREMIUM_REQUIRED")
        self.assertEqual(ctx.exception.context["upgradeUrl"], "/pricing")

        cancelled = make_user(tier="premium", status="cancelled")
        with self.assertRaises(EntitlementError) as ctx:
            asyncio.run(require_premium(cancelled))
        self.assertEqual(ctx.exception.code, "SUBSCRIPTION_INACTIVE")

        active = make_user(tier="premium")
        self.assertEqual(asyncio.run(require_premium(active)).id, active.id)

    def test_lapsed_subscription_is_expired_lazily(self):
        user = make_user(tier="premium")
        set_subscription(user.id, tier="premium", status="active", plan="monthly", expires_at=utc_now() - timedelta(minutes=1))
        refreshed = refresh_subscription(get_user(user.id))
        self.assertEqual(refreshed.subscription_status, "expired")
        self.assertEqual(get_user(user.id).subscription_status, "expired")


class JobMatchRouteGateTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def _analysis_for(self, user):
        parsed = parse_text(SAMPLE_RESUME_TEXT)
        return create_analysis(
            user_id=user.id,
            file_key=f"resumes/{user.id}/1-abc.pdf",
            file_name="resume.pdf",
            file_size=100,
            mime_type="application/pdf",
            score=calculate_score(parsed),
            parsed=parsed.model_dump(),
            recommendations=[],
        )

    def _match(self, user):
        analysis = self._analysis_for(user)
        return self.client.post(
            "/api/resume/match-jd",
            json={"analysisId": analysis.id, "jobDescription": "Python, AWS, Kubernetes, Terraform"},
            headers=auth_headers(user),
        )

    def test_free_user_is_locked_out(self):
        response = self._match(make_user())
        self.assertEqual(response.status_code, 403)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["code"], "PREMIUM_FEATURE_LOCKED")
        self.assertEqual(body["error"]["upgradeUrl"], "/pricing")

    def test_cancelled_premium_is_reported_inactive(self):
        response = self._match(make_user(tier="premium", status="cancelled"))
        self.assertEqual(response.status_code, 403)
        error = response.json()["error"]
        self.assertEqual(error["code"], "SUBSCRIPTION_INACTIVE")
        self.assertEqual(error["feature"], "job_description_matching")
        self.assertEqual(error["currentTier"], "premium")
        self.assertEqual(error["subscriptionStatus"], "cancelled")

    def test_active_premium_gets_match_stored_on_analysis(self):
        user = make_user(tier="premium")
        analysis = self._analysis_for(user)
        response = self.client.post(
            "/api/resume/match-jd",
            json={"analysisId": analysis.id, "jobDescription": "Python, AWS, Kubernetes, Terraform"},
            headers=auth_headers(user),
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertGreater(data["matchPercentage"], 0)
        detail = self.client.get(f"/api/resume/analysis/{analysis.id}", headers=auth_headers(user)).json()["data"]
        self.assertEqual(detail["jdMatch"]["matchPercentage"], data["matchPercentage"])
        self.assertEqual(detail["jobDescription"], "Python, AWS, Kubernetes, Terraform")

    def test_other_users_analysis_is_not_found(self):
        owner = make_user(tier="premium")
        analysis = self._analysis_for(owner)
        stranger = make_user(tier="premium")
        response = self.client.post(
            "/api/resume/match-jd",
            json={"analysisId": analysis.id, "jobDescription": "Python"},
            headers=auth_headers(stranger),
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "NOT_FOUND")

    def test_oversized_jd_returns_jd_too_long(self):
        user = make_user(tier="premium")
        analysis = self._analysis_for(user)
        response = self.client.post(
            "/api/resume/match-jd",
            json={"analysisId": analysis.id, "jobDescription": "x" * 10001},
            headers=auth_headers(user),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "JD_TOO_LONG")

    def test_features_endpoint_reflects_tier(self):
        user = make_user(tier="premium")
        data = self.client.get("/api/resume/features", headers=auth_headers(user)).json()["data"]
        self.assertTrue(data["features"]["ai_rewrite"])
        self.assertEqual(data["usageLimit"], 999)


if __name__ == "__main__":
    unittest.main()
