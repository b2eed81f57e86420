import logging

from fastapi import APIRouter, Depends, Query

from app.core.errors import NotFound, success
from app.core.security import require_admin
from app.db.audit import append_audit_log, count_audit_logs, list_audit_logs
from app.db.users import User, get_user, list_users, set_subscription
from app.schemas.admin import TierUpdateRequest
from app.services.auth_service import serialize_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/users")
async def users(
    admin: User = Depends(require_admin),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    return success([serialize_user(item) for item in list_users(limit=limit, offset=offset)])


@router.get("/audit-logs")
async def audit_logs(
    admin: User = Depends(require_admin),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    action: str | None = Query(default=None, max_length=60),
):
    return success(
        {
            "items": list_audit_logs(limit=limit, offset=offset, action=action),
            "total": count_audit_logs(),
            "limit": limit,
            "offset": offset,
        }
    )


@router.put("/users/{user_id}/tier")
async def change_tier(user_id: str, payload: TierUpdateRequest, admin: User = Depends(require_admin)):
    target = get_user(user_id)
    if target is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    updated = set_subscription(
        target.id,
        tier=payload.tier,
        status=payload.subscription_status,
        plan=target.subscription_plan if payload.tier == "premium" else None,
        expires_at=target.subscription_expires_at if payload.tier == "premium" else None,
    )
    append_audit_log(
        actor_id=admin.id,
        action="user.tier_changed",
        target_user_id=target.id,
        detail={
            "from": {"tier": target.tier, "subscriptionStatus": target.subscription_status},
            "to": {"tier": payload.tier, "subscriptionStatus": payload.subscription_status},
            "reason": payload.reason,
        },
    )
    logger.info("admin_tier_changed actor=%s target=%s tier=%s", admin.id, target.id, payload.tier)
    return success(serialize_user(updated or target))
