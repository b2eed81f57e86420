"""Tier and subscription entitlements.

Every gate in the API resolves through ``evaluate_entitlement``, which reads the
``ENTITLEMENT_TABLE`` below. The table maps ``(tier, subscription_status)`` to the
set of features that combination may use.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable

from fastapi import Depends

from app.core.errors import EntitlementError
from app.core.security import current_user
from app.db.users import User, set_subscription_status

logger = logging.getLogger(__name__)

TIERS = ("anonymous", "free", "premium", "admin")
SUBSCRIPTION_STATUSES = ("active", "cancelled", "expired")
INACTIVE_STATUSES = frozenset({"cancelled", "expired"})

USAGE_LIMITS = {
    "anonymous": 1,
    "free": 3,
    "premium": 999,
    "admin": 999,
}

BASIC_FEATURES = frozenset({"basic_analysis", "pdf_reports", "email_support"})
PREMIUM_FEATURES = frozenset(
    {
        "job_description_matching",
        "ai_rewrite",
        "unlimited_analyses",
        "priority_support",
        "advanced_reports",
        "export_formats",
    }
)
ALL_FEATURES = BASIC_FEATURES | PREMIUM_FEATURES

_ANONYMOUS = frozenset({"basic_analysis"})

ENTITLEMENT_TABLE: dict[tuple[str, str], frozenset[str]] = {
    ("anonymous", "active"): _ANONYMOUS,
    ("anonymous", "cancelled"): _ANONYMOUS,
    ("anonymous", "expired"): _ANONYMOUS,
    ("free", "active"): BASIC_FEATURES,
    ("free", "cancelled"): BASIC_FEATURES,
    ("free", "expired"): BASIC_FEATURES,
    ("premium", "active"): ALL_FEATURES,
    ("premium", "cancelled"): BASIC_FEATURES,
    ("premium", "expired"): BASIC_FEATURES,
    ("admin", "active"): ALL_FEATURES,
    ("admin", "cancelled"): ALL_FEATURES,
    ("admin", "expired"): ALL_FEATURES,
}


@dataclass(frozen=True)
class EntitlementDecision:
    allowed: bool
    code: str | None = None


def evaluate_entitlement(tier: str, subscription_status: str, feature: str) -> EntitlementDecision:
    granted = ENTITLEMENT_TABLE.get((tier, subscription_status), frozenset())
    if feature in granted:
        return EntitlementDecision(allowed=True)
    if tier == "premium" and subscription_status in INACTIVE_STATUSES:
        return EntitlementDecision(allowed=False, code="SUBSCRIPTION_INACTIVE")
    return EntitlementDecision(allowed=False, code="PREMIUM_FEATURE_LOCKED")


def feature_flags(tier: str, subscription_status: str) -> dict[str, bool]:
    granted = ENTITLEMENT_TABLE.get((tier, subscription_status), frozenset())
    return {feature: feature in granted for feature in sorted(ALL_FEATURES)}


def usage_limit_for(tier: str) -> int:
    return USAGE_LIMITS.get(tier, USAGE_LIMITS["free"])


def refresh_subscription(user: User, *, now: datetime | None = None) -> User:
    """Mark an active premium subscription as expired once its end date has passed."""
    current = now or datetime.now(timezone.utc)
    expires_at = user.subscription_expires_at
    if (
        user.tier == "premium"
        and user.subscription_status == "active"
        and expires_at is not None
        and expires_at <= current
    ):
        set_subscription_status(user.id, "expired")
        logger.info("subscription_expired user_id=%s", user.id)
        return replace(user, subscription_status="expired")
    return user


def _inactive_error(user: User, feature: str | None = None) -> EntitlementError:
    context = {"feature": feature} if feature else {}
    return EntitlementError(
        "SUBSCRIPTION_INACTIVE",
        "Your subscription is not active. Please renew to access premium features.",
        **context,
        subscriptionStatus=user.subscription_status,
        currentTier=user.tier,
    )


async def require_premium(user: User = Depends(current_user)) -> User:
    user = refresh_subscription(user)
    if user.tier == "admin":
        return user
    if user.tier != "premium":
        raise EntitlementError(
            "PREMIUM_REQUIRED",
            "This feature requires a premium subscription",
            feature="premium_feature",
            currentTier=user.tier,
        )
    if user.subscription_status in INACTIVE_STATUSES:
        raise _inactive_error(user)
    return user


def require_feature(feature: str) -> Callable[..., object]:
    async def dependency(user: User = Depends(current_user)) -> User:
        user = refresh_subscription(user)
        decision = evaluate_entitlement(user.tier, user.subscription_status, feature)
        if decision.allowed:
            return user
        if decision.code == "SUBSCRIPTION_INACTIVE":
            raise _inactive_error(user, feature=feature)
        raise EntitlementError(
            "PREMIUM_FEATURE_LOCKED",
            f"{feature} is a premium feature. Upgrade to access it.",
            feature=feature,
            currentTier=user.tier,
            subscriptionStatus=user.subscription_status,
        )

    return dependency
