from fastapi import APIRouter, Depends, Header, Query, Request

from app.core.errors import success
from app.core.rate_limit import rate_limit
from app.core.security import current_user, require_admin
from app.db.payments import list_payments
from app.db.users import User
from app.schemas.payments import ConfirmStripeRequest, CreateIntentRequest, RefundRequest, VerifyRazorpayRequest
from app.services.payments import (
    cancel_subscription,
    confirm_stripe,
    create_intent,
    handle_razorpay_webhook,
    handle_stripe_webhook,
    list_plans,
    refund_payment,
    refund_rate,
    serialize_payment,
    subscription_details,
    verify_razorpay,
)

router = APIRouter()


@router.get("/plans")
async def plans():
    return success(list_plans())


@router.post("/create-intent")
@rate_limit()
async def create_payment_intent(request: Request, payload: CreateIntentRequest, user: User = Depends(current_user)):
    return success(create_intent(user, plan_id=payload.plan_id, provider=payload.provider))


@router.post("/verify-razorpay")
async def verify_razorpay_payment(payload: VerifyRazorpayRequest, user: User = Depends(current_user)):
    return success(
        verify_razorpay(
            user,
            order_id=payload.order_id,
            payment_id=payload.payment_id,
            signature=payload.signature,
        )
    )


@router.post("/confirm-stripe")
async def confirm_stripe_payment(payload: ConfirmStripeRequest, user: User = Depends(current_user)):
    return success(confirm_stripe(user, payment_intent_id=payload.payment_intent_id))


@router.post("/webhook/razorpay")
async def razorpay_webhook(request: Request, x_razorpay_signature: str = Header(default="")):
    raw_body = await request.body()
    return success(handle_razorpay_webhook(raw_body, x_razorpay_signature))


@router.post("/webhook/stripe")
async def stripe_webhook(request: Request, stripe_signature: str = Header(default="")):
    raw_body = await request.body()
    return success(handle_stripe_webhook(raw_body, stripe_signature))


@router.post("/refund")
async def refund(payload: RefundRequest, user: User = Depends(current_user)):
    return success(refund_payment(user, payment_id=payload.payment_id, reason=payload.reason))


@router.get("/history")
async def history(user: User = Depends(current_user), limit: int = Query(default=50, ge=1, le=200)):
    return success([serialize_payment(item) for item in list_payments(user.id, limit=limit)])


@router.post("/cancel-subscription")
async def cancel(user: User = Depends(current_user)):
    return success(cancel_subscription(user))


@router.get("/subscription")
async def subscription(user: User = Depends(current_user)):
    return success(subscription_details(user))


@router.get("/refund-rate")
async def refund_rate_report(admin: User = Depends(require_admin), days: int = Query(default=30, ge=1, le=365)):
    return success(refund_rate(days))
