from __future__ import annotations

import logging
import sqlite3
from typing import Any

from app.core.errors import ApiError, AuthError, ValidationFailed
from app.core.security import create_access_token, hash_password, verify_password
from app.db.users import User, create_user, get_user_by_email, update_password, update_profile
from app.services.usage import next_reset_boundary

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def serialize_user(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "tier": user.tier,
        "subscriptionStatus": user.subscription_status,
        "subscriptionPlan": user.subscription_plan,
        "subscriptionExpiresAt": user.subscription_expires_at.isoformat() if user.subscription_expires_at else None,
        "usageCount": user.usage_count,
        "usageResetAt": user.usage_reset_at.isoformat(),
        "createdAt": user.created_at.isoformat(),
    }


def _check_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(
            "VALIDATION_ERROR",
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            field="password",
        )


def _email_in_use() -> ApiError:
    return ApiError("EMAIL_IN_USE", "An account with this email already exists", status_code=409)


def _session(user: User) -> dict[str, Any]:
    return {"token": create_access_token(user), "user": serialize_user(user)}


def register(*, email: str, password: str, name: str) -> dict[str, Any]:
    clean_email = normalize_email(email)
    _check_password(password)
    try:
        user = create_user(
            email=clean_email,
            password_hash=hash_password(password),
            name=(name or "").strip(),
            usage_reset_at=next_reset_boundary(),
        )
    except sqlite3.IntegrityError as exc:
        raise _email_in_use() from exc
    logger.info("user_registered user_id=%s", user.id)
    return _session(user)


def login(*, email: str, password: str) -> dict[str, Any]:
    user = get_user_by_email(normalize_email(email))
    if user is None or not verify_password(password, user.password_hash):
        logger.info("login_failed")
        raise AuthError("INVALID_CREDENTIALS", "Invalid email or password")
    logger.info("user_logged_in user_id=%s", user.id)
    return _session(user)


def change_profile(user: User, *, name: str | None, email: str | None) -> User:
    clean_email = normalize_email(email) if email is not None else None
    try:
        updated = update_profile(user.id, name=name.strip() if name is not None else None, email=clean_email)
    except sqlite3.IntegrityError as exc:
        raise _email_in_use() from exc
    return updated or user


def change_password(user: User, *, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise AuthError("INVALID_CREDENTIALS", "Current password is incorrect")
    _check_password(new_password)
    update_password(user.id, hash_password(new_password))
    logger.info("password_changed user_id=%s", user.id)
