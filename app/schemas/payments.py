from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Provider = Literal["razorpay", "stripe"]


class CreateIntentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: str = Field(alias="planId", min_length=1, max_length=40)
    provider: Provider = "razorpay"


class VerifyRazorpayRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="razorpay_order_id", min_length=1, max_length=120)
    payment_id: str = Field(alias="razorpay_payment_id", min_length=1, max_length=120)
    signature: str = Field(alias="razorpay_signature", min_length=1, max_length=256)


class ConfirmStripeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_intent_id: str = Field(alias="paymentIntentId", min_length=1, max_length=120)


class RefundRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(alias="paymentId", min_length=1, max_length=64)
    reason: str = Field(default="requested_by_customer", max_length=500)
