from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import urllib.error
import urllib.request
from datetime import datetime, timedelta, timezone
from typing import Any

import stripe

from app.core.config import settings
from app.core.errors import ApiError, NotFound
from app.db import payments as payment_repo
from app.db.payments import Payment
from app.db.users import User, expire_lapsed_subscriptions, get_user, set_subscription

logger = logging.getLogger(__name__)

RAZORPAY_API_BASE = "https://api.razorpay.com/v1"
REFUND_WINDOW_DAYS = 7
MONTHLY_PERIOD_DAYS = 30
REFUND_ALERT_THRESHOLD = 3.0
INR_TO_USD = 0.012

PLANS: dict[str, dict[str, Any]] = {
    "one-time": {
        "id": "one-time",
        "name": "One-Time Premium",
        "amount": 9900,
        "currency": "INR",
        "duration": "lifetime",
        "tier": "premium",
    },
    "monthly": {
        "id": "monthly",
        "name": "Monthly Subscription",
        "amount": 49900,
        "currency": "INR",
        "duration": "monthly",
        "tier": "premium",
    },
}


def payment_error(message: str, *, status_code: int = 400, **context: Any) -> ApiError:
    return ApiError("PAYMENT_ERROR", message, status_code=status_code, **context)


def provider_unavailable(provider: str) -> ApiError:
    return ApiError(
        "PAYMENT_PROVIDER_UNAVAILABLE",
        f"{provider.title()} is not configured yet.",
        status_code=503,
        provider=provider,
    )


def _require_plan(plan_id: str) -> dict[str, Any]:
    plan = PLANS.get(plan_id)
    if plan is None:
        raise payment_error("Invalid plan ID", planId=plan_id)
    return plan


def list_plans() -> list[dict[str, Any]]:
    return [
        {
            "id": plan["id"],
            "name": plan["name"],
            "amount": plan["amount"] / 100,
            "currency": plan["currency"],
            "duration": plan["duration"],
            "tier": plan["tier"],
        }
        for plan in PLANS.values()
    ]


def serialize_payment(payment: Payment) -> dict[str, Any]:
    return {
        "id": payment.id,
        "provider": payment.provider,
        "transactionId": payment.transaction_id,
        "amount": payment.amount / 100,
        "currency": payment.currency,
        "planId": payment.plan_id,
        "status": payment.status,
        "createdAt": payment.created_at.isoformat(),
        "completedAt": payment.completed_at.isoformat() if payment.completed_at else None,
        "refundReason": payment.refund_reason,
        "refundedAt": payment.refunded_at.isoformat() if payment.refunded_at else None,
    }


def _razorpay_enabled() -> bool:
    return bool(settings.razorpay_key_id and settings.razorpay_key_secret)


def _stripe_enabled() -> bool:
    return bool(settings.stripe_secret_key)


def _configure_stripe() -> None:
    if not _stripe_enabled():
        raise provider_unavailable("stripe")
    stripe.api_key = settings.stripe_secret_key


def razorpay_request(path: str, payload: dict[str, Any]) -> dict[str, Any]:
    if not _razorpay_enabled():
        raise provider_unavailable("razorpay")
    url = f"{RAZORPAY_API_BASE}/{path.lstrip('/')}"
    basic_token = base64.b64encode(
        f"{settings.razorpay_key_id}:{settings.razorpay_key_secret}".encode("utf-8")
    ).decode("utf-8")
    req = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers={
            "Authorization": f"Basic {basic_token}",
            "Content-Type": "application/json",
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=20) as resp:
            raw = resp.read().decode("utf-8", errors="ignore")
            return json.loads(raw or "{}")
    except urllib.error.HTTPError as exc:
        logger.exception("razorpay_http_error path=%s status=%s", path, exc.code)
        raise payment_error("Razorpay rejected the request.", status_code=502) from exc
    except (urllib.error.URLError, TimeoutError) as exc:
        logger.exception("razorpay_network_error path=%s", path)
        raise payment_error("Unable to reach Razorpay right now. Please retry.", status_code=502) from exc
    except ValueError as exc:
        logger.exception("razorpay_bad_response path=%s", path)
        raise payment_error("Unexpected response from Razorpay.", status_code=502) from exc


def razorpay_signature_valid(order_id: str, payment_id: str, signature: str) -> bool:
    if not settings.razorpay_key_secret:
        return False
    expected = hmac.new(
        settings.razorpay_key_secret.encode("utf-8"),
        f"{order_id}|{payment_id}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected, signature or "")


def razorpay_webhook_signature_valid(raw_body: bytes, signature: str) -> bool:
    if not settings.razorpay_webhook_secret:
        return False
    expected = hmac.new(settings.razorpay_webhook_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature or "")


def create_intent(user: User, *, plan_id: str, provider: str) -> dict[str, Any]:
    plan = _require_plan(plan_id)
    if provider == "razorpay":
        order = razorpay_request(
            "orders",
            {
                "amount": plan["amount"],
                "currency": plan["currency"],
                "receipt": f"receipt_{user.id[:12]}_{int(datetime.now(timezone.utc).timestamp())}",
                "notes": {"userId": user.id, "planId": plan_id},
            },
        )
        order_id = str(order.get("id") or "")
        if not order_id:
            raise payment_error("Unable to initialize Razorpay checkout.", status_code=502)
        payment = payment_repo.create_payment(
            user_id=user.id,
            provider="razorpay",
            transaction_id=order_id,
            amount=plan["amount"],
            currency=plan["currency"],
            plan_id=plan_id,
        )
        logger.info("payment_intent_created provider=razorpay user_id=%s plan=%s", user.id, plan_id)
        return {
            "provider": "razorpay",
            "orderId": order_id,
            "amount": plan["amount"],
            "currency": plan["currency"],
            "keyId": settings.razorpay_key_id,
            "planName": plan["name"],
            "paymentId": payment.id,
        }

    if provider == "stripe":
        _configure_stripe()
        amount_usd_cents = round(plan["amount"] * INR_TO_USD)
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_usd_cents,
                currency="usd",
                metadata={"userId": user.id, "planId": plan_id},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as exc:
            logger.exception("stripe_intent_failed user_id=%s", user.id)
            raise payment_error("Unable to initialize payment right now.", status_code=502) from exc
        payment = payment_repo.create_payment(
            user_id=user.id,
            provider="stripe",
            transaction_id=str(intent["id"]),
            amount=amount_usd_cents,
            currency="usd",
            plan_id=plan_id,
        )
        logger.info("payment_intent_created provider=stripe user_id=%s plan=%s", user.id, plan_id)
        return {
            "provider": "stripe",
            "clientSecret": intent["client_secret"],
            "paymentIntentId": intent["id"],
            "amount": amount_usd_cents,
            "currency": "usd",
            "planName": plan["name"],
            "paymentId": payment.id,
        }

    raise payment_error("Unsupported payment provider", provider=provider)


def upgrade_user(user_id: str, plan_id: str, *, now: datetime | None = None) -> User | None:
    plan = _require_plan(plan_id)
    current = now or datetime.now(timezone.utc)
    expires_at = current + timedelta(days=MONTHLY_PERIOD_DAYS) if plan["duration"] == "monthly" else None
    owner = get_user(user_id)
    tier = "admin" if owner is not None and owner.tier == "admin" else plan["tier"]
    return set_subscription(user_id, tier=tier, status="active", plan=plan_id, expires_at=expires_at)


def process_successful_payment(provider: str, transaction_id: str, *, reference: str | None = None) -> dict[str, Any]:
    """Settle a pending payment and upgrade its owner. Repeated calls are no-ops."""
    payment = payment_repo.get_payment_by_transaction(provider, transaction_id)
    if payment is None:
        raise NotFound("Payment record not found", code="PAYMENT_NOT_FOUND")
    if payment.status == "completed":
        return {"alreadyProcessed": True, "payment": serialize_payment(payment)}
    if not payment_repo.mark_completed(payment.id, reference=reference):
        fresh = payment_repo.get_payment(payment.id) or payment
        return {"alreadyProcessed": True, "payment": serialize_payment(fresh)}

    upgrade_user(payment.user_id, payment.plan_id)
    logger.info("payment_completed provider=%s payment_id=%s user_id=%s", provider, payment.id, payment.user_id)
    settled = payment_repo.get_payment(payment.id) or payment
    return {"alreadyProcessed": False, "payment": serialize_payment(settled)}


def _owned_pending(user: User, provider: str, transaction_id: str) -> Payment:
    payment = payment_repo.get_payment_by_transaction(provider, transaction_id)
    if payment is None or payment.user_id != user.id:
        raise NotFound("Payment record not found", code="PAYMENT_NOT_FOUND")
    return payment


def verify_razorpay(user: User, *, order_id: str, payment_id: str, signature: str) -> dict[str, Any]:
    _owned_pending(user, "razorpay", order_id)
    if not razorpay_signature_valid(order_id, payment_id, signature):
        logger.warning("razorpay_signature_invalid user_id=%s order_id=%s", user.id, order_id)
        raise ApiError("INVALID_SIGNATURE", "Payment signature verification failed", status_code=400)
    return process_successful_payment("razorpay", order_id, reference=payment_id)


def confirm_stripe(user: User, *, payment_intent_id: str) -> dict[str, Any]:
    _owned_pending(user, "stripe", payment_intent_id)
    _configure_stripe()
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as exc:
        logger.exception("stripe_retrieve_failed intent=%s", payment_intent_id)
        raise payment_error("Unable to confirm payment right now.", status_code=502) from exc
    if intent["status"] != "succeeded":
        raise payment_error("Payment has not succeeded", paymentStatus=intent["status"])
    return process_successful_payment("stripe", payment_intent_id, reference=payment_intent_id)


def handle_payment_failure(provider: str, transaction_id: str) -> None:
    payment = payment_repo.get_payment_by_transaction(provider, transaction_id)
    if payment is not None and payment_repo.mark_failed(payment.id):
        logger.info("payment_failed provider=%s payment_id=%s", provider, payment.id)


def _extend_subscription(user_id: str | None) -> None:
    user = get_user(user_id) if user_id else None
    if user is None:
        return
    set_subscription(
        user.id,
        tier="premium",
        status="active",
        plan="monthly",
        expires_at=datetime.now(timezone.utc) + timedelta(days=MONTHLY_PERIOD_DAYS),
    )
    logger.info("subscription_renewed user_id=%s", user.id)


def _cancel_subscription_for(user_id: str | None) -> None:
    user = get_user(user_id) if user_id else None
    if user is None:
        return
    set_subscription(
        user.id,
        tier=user.tier,
        status="cancelled",
        plan=user.subscription_plan,
        expires_at=user.subscription_expires_at,
    )
    logger.info("subscription_cancelled_by_provider user_id=%s", user.id)


def handle_razorpay_webhook(raw_body: bytes, signature: str) -> dict[str, Any]:
    if not razorpay_webhook_signature_valid(raw_body, signature):
        raise ApiError("INVALID_SIGNATURE", "Invalid webhook signature", status_code=400)
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except ValueError as exc:
        raise ApiError("INVALID_PAYLOAD", "Webhook body is not valid JSON", status_code=400) from exc

    event = str(payload.get("event") or "")
    entity = ((payload.get("payload") or {}).get("payment") or {}).get("entity") or {}
    order_id = str(entity.get("order_id") or "")
    if event == "payment.captured" and order_id:
        process_successful_payment("razorpay", order_id, reference=entity.get("id"))
    elif event == "payment.failed" and order_id:
        handle_payment_failure("razorpay", order_id)
    elif event == "subscription.charged":
        _extend_subscription((entity.get("notes") or {}).get("userId"))
    else:
        logger.info("razorpay_webhook_ignored event=%s", event)
    return {"received": True, "event": event}


def handle_stripe_webhook(raw_body: bytes, signature: str) -> dict[str, Any]:
    if not settings.stripe_webhook_secret:
        raise provider_unavailable("stripe")
    try:
        event = stripe.Webhook.construct_event(
            payload=raw_body, sig_header=signature, secret=settings.stripe_webhook_secret
        )
    except (ValueError, stripe.SignatureVerificationError) as exc:
        raise ApiError("INVALID_SIGNATURE", "Invalid webhook signature", status_code=400) from exc

    event_type = str(event["type"])
    obj = event["data"]["object"]
    metadata = obj.get("metadata") or {}
    if event_type == "payment_intent.succeeded":
        process_successful_payment("stripe", str(obj["id"]), reference=str(obj["id"]))
    elif event_type == "payment_intent.payment_failed":
        handle_payment_failure("stripe", str(obj["id"]))
    elif event_type == "invoice.payment_succeeded":
        _extend_subscription(metadata.get("userId"))
    elif event_type == "customer.subscription.deleted":
        _cancel_subscription_for(metadata.get("userId"))
    else:
        logger.info("stripe_webhook_ignored type=%s", event_type)
    return {"received": True, "event": event_type}


def _refund_with_provider(payment: Payment, reason: str, requested_by: str) -> str:
    if payment.provider == "razorpay":
        if not payment.provider_reference:
            raise payment_error("Payment has no captured Razorpay reference")
        result = razorpay_request(
            f"payments/{payment.provider_reference}/refund",
            {"amount": payment.amount, "notes": {"reason": reason, "requestedBy": requested_by}},
        )
        return str(result.get("id") or "")

    _configure_stripe()
    try:
        refund = stripe.Refund.create(
            payment_intent=payment.transaction_id,
            reason="requested_by_customer",
            metadata={"reason": reason, "requestedBy": requested_by},
        )
    except stripe.StripeError as exc:
        logger.exception("stripe_refund_failed payment_id=%s", payment.id)
        raise payment_error("Unable to process refund right now.", status_code=502) from exc
    return str(refund["id"])


def refund_payment(
    user: User,
    *,
    payment_id: str,
    reason: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    payment = payment_repo.get_payment(payment_id)
    if payment is None or (payment.user_id != user.id and user.tier != "admin"):
        raise NotFound("Payment not found", code="PAYMENT_NOT_FOUND")
    if payment.status == "refunded":
        raise payment_error("Payment already refunded")
    if payment.status != "completed":
        raise payment_error("Only completed payments can be refunded", paymentStatus=payment.status)

    current = now or datetime.now(timezone.utc)
    paid_at = payment.completed_at or payment.created_at
    if (current - paid_at).days > REFUND_WINDOW_DAYS:
        raise payment_error(f"Refund window expired ({REFUND_WINDOW_DAYS} days)")

    refund_id = _refund_with_provider(payment, reason, user.id)
    payment_repo.mark_refunded(payment.id, reason=reason)
    owner = get_user(payment.user_id)
    tier = "admin" if owner is not None and owner.tier == "admin" else "free"
    set_subscription(payment.user_id, tier=tier, status="cancelled", plan=None, expires_at=None)
    logger.info("payment_refunded payment_id=%s user_id=%s", payment.id, payment.user_id)
    refunded = payment_repo.get_payment(payment.id) or payment
    return {"refundId": refund_id, "payment": serialize_payment(refunded)}


def cancel_subscription(user: User) -> dict[str, Any]:
    if user.tier != "premium" or user.subscription_status != "active":
        raise payment_error("No active subscription to cancel", subscriptionStatus=user.subscription_status)
    updated = set_subscription(
        user.id,
        tier=user.tier,
        status="cancelled",
        plan=user.subscription_plan,
        expires_at=user.subscription_expires_at,
    )
    logger.info("subscription_cancelled user_id=%s", user.id)
    return subscription_details(updated or user)


def subscription_details(user: User) -> dict[str, Any]:
    latest = payment_repo.latest_completed_payment(user.id)
    return {
        "tier": user.tier,
        "subscriptionStatus": user.subscription_status,
        "plan": user.subscription_plan,
        "expiresAt": user.subscription_expires_at.isoformat() if user.subscription_expires_at else None,
        "lastPayment": serialize_payment(latest) if latest else None,
    }


def refund_rate(days: int = 30, *, now: datetime | None = None) -> dict[str, Any]:
    current = now or datetime.now(timezone.utc)
    counts = payment_repo.status_counts(since=current - timedelta(days=days))
    refunded = counts.get("refunded", 0)
    total = counts.get("completed", 0) + refunded
    rate = (refunded / total * 100) if total else 0.0
    return {
        "totalPayments": total,
        "refundedPayments": refunded,
        "refundRate": round(rate, 2),
        "period": f"{days} days",
        "alertThreshold": REFUND_ALERT_THRESHOLD,
        "shouldAlert": rate > REFUND_ALERT_THRESHOLD,
    }


def sweep_expired_subscriptions(now: datetime | None = None) -> int:
    expired = expire_lapsed_subscriptions(now)
    if expired:
        logger.info("subscriptions_expired count=%s", expired)
    return expired
