import hashlib
import hmac
import json
import unittest
from dataclasses import replace
from datetime import timedelta
from unittest.mock import patch

import stripe
from fastapi.testclient import TestClient

from tests.helpers import auth_headers, make_user

from app.core.config import settings  # noqa: E402
from app.core.errors import ApiError  # noqa: E402
from app.db import payments as payment_repo  # noqa: E402
from app.db.store import utc_now  # noqa: E402
from app.db.users import get_user, set_subscription  # noqa: E402
from app.main import app  # noqa: E402
from app.services import payments as payment_service  # noqa: E402

KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "rzp_webhook_secret"
PAYMENT_SETTINGS = replace(
    settings,
    razorpay_key_id="rzp_test_key",
    razorpay_key_secret=KEY_SECRET,
    razorpay_webhook_secret=WEBHOOK_SECRET,
    stripe_secret_key="sk_test_123",
    stripe_webhook_secret="whsec_123",
)


def _sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class PaymentApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def setUp(self):
        patcher = patch("app.services.payments.settings", PAYMENT_SETTINGS)
        patcher.start()
        self.addCleanup(patcher.stop)
        self._orders = 0

    def _create_razorpay_order(self, user, plan_id="monthly"):
        self._orders += 1
        order_id = f"order_{user.id[:8]}_{self._orders}"
        with patch("app.services.payments.razorpay_request", return_value={"id": order_id}) as request:
            response = self.client.post(
                "/api/payments/create-intent",
                json={"planId": plan_id, "provider": "razorpay"},
                headers=auth_headers(user),
            )
        self.assertEqual(response.status_code, 200)
        sent = request.call_args.args[1]
        self.assertEqual(sent["amount"], payment_service.PLANS[plan_id]["amount"])
        return response.json()["data"]

    def test_plans_are_public(self):
        data = self.client.get("/api/payments/plans").json()["data"]
        self.assertEqual({plan["id"] for plan in data}, {"one-time", "monthly"})
        self.assertEqual(next(p for p in data if p["id"] == "monthly")["amount"], 499)

    def test_unknown_plan_is_rejected(self):
        response = self.client.post(
            "/api/payments/create-intent",
            json={"planId": "gold", "provider": "razorpay"},
            headers=auth_headers(make_user()),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "PAYMENT_ERROR")

    def test_razorpay_verification_upgrades_once(self):
        user = make_user()
        order = self._create_razorpay_order(user)
        self.assertEqual(order["keyId"], "rzp_test_key")
        payload = {
            "razorpay_order_id": order["orderId"],
            "razorpay_payment_id": "pay_001",
            "razorpay_signature": _sign(KEY_SECRET, f"{order['orderId']}|pay_001".encode("utf-8")),
        }
        first = self.client.post("/api/payments/verify-razorpay", json=payload, headers=auth_headers(user))
        self.assertEqual(first.status_code, 200)
        self.assertFalse(first.json()["data"]["alreadyProcessed"])

        upgraded = get_user(user.id)
        self.assertEqual((upgraded.tier, upgraded.subscription_status), ("premium", "active"))
        self.assertEqual(upgraded.subscription_plan, "monthly")
        remaining = upgraded.subscription_expires_at - utc_now()
        self.assertTrue(timedelta(days=29) < remaining <= timedelta(days=30))

        second = self.client.post("/api/payments/verify-razorpay", json=payload, headers=auth_headers(user))
        self.assertTrue(second.json()["data"]["alreadyProcessed"])

        history = self.client.get("/api/payments/history", headers=auth_headers(user)).json()["data"]
        self.assertEqual([item["status"] for item in history], ["completed"])

    def test_one_time_plan_has_no_expiry(self):
        user = make_user()
        order = self._create_razorpay_order(user, plan_id="one-time")
        payment_service.verify_razorpay(
            get_user(user.id),
            order_id=order["orderId"],
            payment_id="pay_lifetime",
            signature=_sign(KEY_SECRET, f"{order['orderId']}|pay_lifetime".encode("utf-8")),
        )
        upgraded = get_user(user.id)
        self.assertEqual(upgraded.tier, "premium")
        self.assertIsNone(upgraded.subscription_expires_at)

    def test_bad_signature_is_rejected(self):
        user = make_user()
        order = self._create_razorpay_order(user)
        response = self.client.post(
            "/api/payments/verify-razorpay",
            json={
                "razorpay_order_id": order["orderId"],
                "razorpay_payment_id": "pay_x",
                "razorpay_signature": "0" * 64,
            },
            headers=auth_headers(user),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "INVALID_SIGNATURE")
        self.assertEqual(get_user(user.id).tier, "free")

    def test_stripe_intent_and_confirmation(self):
        user = make_user()
        intent_id = f"pi_{user.id[:10]}"
        with patch.object(stripe.PaymentIntent, "create", return_value={"id": intent_id, "client_secret": "cs_1"}) as create:
            response = self.client.post(
                "/api/payments/create-intent",
                json={"planId": "monthly", "provider": "stripe"},
                headers=auth_headers(user),
            )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(create.call_args.kwargs["amount"], 599)
        self.assertEqual(response.json()["data"]["clientSecret"], "cs_1")

        with patch.object(stripe.PaymentIntent, "retrieve", return_value={"id": intent_id, "status": "processing"}):
            pending = self.client.post(
                "/api/payments/confirm-stripe", json={"paymentIntentId": intent_id}, headers=auth_headers(user)
            )
        self.assertEqual(pending.json()["error"]["code"], "PAYMENT_ERROR")

        with patch.object(stripe.PaymentIntent, "retrieve", return_value={"id": intent_id, "status": "succeeded"}):
            done = self.client.post(
                "/api/payments/confirm-stripe", json={"paymentIntentId": intent_id}, headers=auth_headers(user)
            )
        self.assertEqual(done.status_code, 200)
        self.assertEqual(get_user(user.id).tier, "premium")

    def test_razorpay_webhook_requires_signature_and_settles(self):
        user = make_user()
        order = self._create_razorpay_order(user)
        body = json.dumps(
            {
                "event": "payment.captured",
                "payload": {"payment": {"entity": {"id": "pay_hook", "order_id": order["orderId"]}}},
            }
        ).encode("utf-8")

        rejected = self.client.post(
            "/api/payments/webhook/razorpay", content=body, headers={"X-Razorpay-Signature": "bad"}
        )
        self.assertEqual(rejected.status_code, 400)
        self.assertEqual(get_user(user.id).tier, "free")

        accepted = self.client.post(
            "/api/payments/webhook/razorpay",
            content=body,
            headers={"X-Razorpay-Signature": _sign(WEBHOOK_SECRET, body), "Content-Type": "application/json"},
        )
        self.assertEqual(accepted.status_code, 200)
        self.assertEqual(get_user(user.id).tier, "premium")
        payment = payment_repo.get_payment_by_transaction("razorpay", order["orderId"])
        self.assertEqual(payment.provider_reference, "pay_hook")

    def test_razorpay_webhook_marks_failures(self):
        user = make_user()
        order = self._create_razorpay_order(user)
        body = json.dumps(
            {"event": "payment.failed", "payload": {"payment": {"entity": {"order_id": order["orderId"]}}}}
        ).encode("utf-8")
        self.client.post(
            "/api/payments/webhook/razorpay", content=body, headers={"X-Razorpay-Signature": _sign(WEBHOOK_SECRET, body)}
        )
        self.assertEqual(payment_repo.get_payment_by_transaction("razorpay", order["orderId"]).status, "failed")

    def test_stripe_webhook_uses_sdk_verification(self):
        user = make_user()
        set_subscription(user.id, tier="premium", status="active", plan="monthly", expires_at=utc_now() + timedelta(days=3))
        event = {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_1", "metadata": {"userId": user.id}}}}
        with patch.object(stripe.Webhook, "construct_event", return_value=event) as construct:
            response = self.client.post(
                "/api/payments/webhook/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"}
            )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(construct.call_args.kwargs["sig_header"], "t=1,v1=abc")
        self.assertEqual(get_user(user.id).subscription_status, "cancelled")

        with patch.object(
            stripe.Webhook, "construct_event", side_effect=stripe.SignatureVerificationError("bad", "sig")
        ):
            response = self.client.post("/api/payments/webhook/stripe", content=b"{}", headers={"Stripe-Signature": "x"})
        self.assertEqual(response.json()["error"]["code"], "INVALID_SIGNATURE")

    def test_refund_within_window_downgrades(self):
        user = make_user()
        order = self._create_razorpay_order(user)
        payment_service.process_successful_payment("razorpay", order["orderId"], reference="pay_refund")
        payment = payment_repo.get_payment_by_transaction("razorpay", order["orderId"])

        with patch("app.services.payments.razorpay_request", return_value={"id": "rfnd_1"}) as request:
            response = self.client.post(
                "/api/payments/refund",
                json={"paymentId": payment.id, "reason": "changed my mind"},
                headers=auth_headers(get_user(user.id)),
            )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(request.call_args.args[0], "payments/pay_refund/refund")
        self.assertEqual(response.json()["data"]["refundId"], "rfnd_1")
        refunded_user = get_user(user.id)
        self.assertEqual((refunded_user.tier, refunded_user.subscription_status), ("free", "cancelled"))
        self.assertEqual(payment_repo.get_payment(payment.id).status, "refunded")

        again = self.client.post(
            "/api/payments/refund", json={"paymentId": payment.id}, headers=auth_headers(get_user(user.id))
        )
        self.assertEqual(again.json()["error"]["code"], "PAYMENT_ERROR")

    def test_admin_keeps_tier_through_payment_and_refund(self):
        admin = make_user(tier="admin")
        order = self._create_razorpay_order(admin)
        payment_service.process_successful_payment("razorpay", order["orderId"], reference="pay_admin")
        self.assertEqual(get_user(admin.id).tier, "admin")

        payment = payment_repo.get_payment_by_transaction("razorpay", order["orderId"])
        with patch("app.services.payments.razorpay_request", return_value={"id": "rfnd_admin"}):
            payment_service.refund_payment(get_user(admin.id), payment_id=payment.id, reason="duplicate")
        refunded = get_user(admin.id)
        self.assertEqual(refunded.tier, "admin")
        self.assertEqual(refunded.subscription_status, "cancelled")

    def test_refund_after_window_is_rejected(self):
        user = make_user()
        order = self._create_razorpay_order(user)
        payment_service.process_successful_payment("razorpay", order["orderId"], reference="pay_late")
        payment = payment_repo.get_payment_by_transaction("razorpay", order["orderId"])
        with self.assertRaises(ApiError) as ctx:
            payment_service.refund_payment(
                get_user(user.id), payment_id=payment.id, reason="late", now=utc_now() + timedelta(days=8)
            )
        self.assertIn("Refund window expired", ctx.exception.message)

    def test_cancel_and_subscription_details(self):
        user = make_user(tier="premium")
        response = self.client.post("/api/payments/cancel-subscription", headers=auth_headers(user))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["subscriptionStatus"], "cancelled")
        self.assertEqual(response.json()["data"]["tier"], "premium")

        details = self.client.get("/api/payments/subscription", headers=auth_headers(user)).json()["data"]
        self.assertEqual(details["subscriptionStatus"], "cancelled")

        again = self.client.post("/api/payments/cancel-subscription", headers=auth_headers(user))
        self.assertEqual(again.json()["error"]["code"], "PAYMENT_ERROR")

    def test_refund_rate_is_admin_only(self):
        response = self.client.get("/api/payments/refund-rate", headers=auth_headers(make_user()))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")

        admin = make_user(tier="admin")
        with patch("app.services.payments.payment_repo.status_counts", return_value={"completed": 18, "refunded": 2}):
            data = self.client.get("/api/payments/refund-rate", headers=auth_headers(admin)).json()["data"]
        self.assertEqual(data["totalPayments"], 20)
        self.assertEqual(data["refundRate"], 10.0)
        self.assertTrue(data["shouldAlert"])
        self.assertEqual(data["period"], "30 days")

    def test_unconfigured_provider_is_unavailable(self):
        with patch("app.services.payments.settings", settings):
            response = self.client.post(
                "/api/payments/create-intent",
                json={"planId": "monthly", "provider": "stripe"},
                headers=auth_headers(make_user()),
            )
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"]["code"], "PAYMENT_PROVIDER_UNAVAILABLE")

    def test_signature_helper(self):
        with patch("app.services.payments.settings", PAYMENT_SETTINGS):
            good = _sign(KEY_SECRET, b"order_1|pay_1")
            self.assertTrue(payment_service.razorpay_signature_valid("order_1", "pay_1", good))
            self.assertFalse(payment_service.razorpay_signature_valid("order_1", "pay_2", good))


if __name__ == "__main__":
    unittest.main()
