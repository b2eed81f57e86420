from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any

from app.core.entitlements import usage_limit_for
from app.core.errors import EntitlementError
from app.db.users import User, get_user, increment_usage, reset_usage

logger = logging.getLogger(__name__)


def next_reset_boundary(now: datetime | None = None) -> datetime:
    """Next midnight in server-local time, returned in UTC."""
    current = now or datetime.now(timezone.utc)
    local = current.astimezone()
    tomorrow = local.date() + timedelta(days=1)
    boundary = datetime.combine(tomorrow, time.min, tzinfo=local.tzinfo)
    return boundary.astimezone(timezone.utc)


def usage_snapshot(user: User, *, now: datetime | None = None) -> dict[str, Any]:
    """Apply the lazy daily reset and return the caller's current usage window."""
    current = now or datetime.now(timezone.utc)
    count = user.usage_count
    reset_at = user.usage_reset_at
    if current >= reset_at:
        next_reset = next_reset_boundary(current)
        if reset_usage(user.id, previous_reset_at=reset_at, next_reset_at=next_reset):
            logger.info("usage_reset user_id=%s next_reset=%s", user.id, next_reset.isoformat())
            count, reset_at = 0, next_reset
        else:
            fresh = get_user(user.id)
            if fresh is not None:
                count, reset_at = fresh.usage_count, fresh.usage_reset_at
    return {
        "usageCount": count,
        "usageLimit": usage_limit_for(user.tier),
        "resetAt": reset_at.isoformat(),
        "tier": user.tier,
    }


def check_usage_limit(user: User | None, *, now: datetime | None = None) -> dict[str, Any] | None:
    """Gate an analysis against the tier's daily quota.

    Anonymous callers are allowed without accounting. Returns the usage window
    for authenticated callers, or raises ``USAGE_LIMIT_EXCEEDED``.
    """
    if user is None:
        return None
    snapshot = usage_snapshot(user, now=now)
    if snapshot["usageCount"] >= snapshot["usageLimit"]:
        raise EntitlementError(
            "USAGE_LIMIT_EXCEEDED",
            "Daily analysis limit reached. Upgrade to premium for more analyses.",
            usageCount=snapshot["usageCount"],
            usageLimit=snapshot["usageLimit"],
            resetAt=snapshot["resetAt"],
            currentTier=user.tier,
        )
    return snapshot


def record_usage(user: User | None) -> bool:
    """Count one completed analysis. Failures are logged and never raised."""
    if user is None:
        return False
    try:
        counted = increment_usage(user.id, ceiling=usage_limit_for(user.tier))
    except Exception:
        logger.warning("usage_increment_failed user_id=%s", user.id, exc_info=True)
        return False
    if not counted:
        logger.warning("usage_increment_rejected user_id=%s reason=ceiling", user.id)
    return counted
