from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.errors import ApiError, AuthError
from app.db.users import User, get_user

logger = logging.getLogger(__name__)

PASSWORD_ITERATIONS = 190_000
_PASSWORD_SCHEME = "pbkdf2_sha256"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Identity attached to a request by a valid bearer token."""

    user_id: str
    email: str
    tier: str


def hash_password(password: str, *, iterations: int = PASSWORD_ITERATIONS) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations).hex()
    return f"{_PASSWORD_SCHEME}${iterations}${salt}${digest}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, iterations, salt, expected = stored.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if scheme != _PASSWORD_SCHEME:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), rounds).hex()
    return hmac.compare_digest(digest, expected)


def create_access_token(user: User, *, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "email": user.email,
        "tier": user.tier,
        "type": "access",
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=settings.jwt_expiry_hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Principal:
    try:
        payload: dict[str, Any] = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("INVALID_TOKEN", "Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("INVALID_TOKEN", "Invalid or expired token") from exc

    if payload.get("type") != "access" or not payload.get("sub"):
        raise AuthError("INVALID_TOKEN", "Invalid or expired token")
    return Principal(
        user_id=str(payload["sub"]),
        email=str(payload.get("email") or ""),
        tier=str(payload.get("tier") or "free"),
    )


async def optional_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal | None:
    if credentials is None or not credentials.credentials:
        return None
    try:
        return decode_access_token(credentials.credentials)
    except AuthError:
        logger.debug("optional_auth_invalid_token")
        return None


async def optional_user(principal: Principal | None = Depends(optional_principal)) -> User | None:
    if principal is None:
        return None
    return get_user(principal.user_id)


async def current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise AuthError("AUTHENTICATION_REQUIRED", "Please login to access this feature")
    return decode_access_token(credentials.credentials)


async def current_user(principal: Principal = Depends(current_principal)) -> User:
    user = get_user(principal.user_id)
    if user is None:
        raise ApiError("USER_NOT_FOUND", "User not found", status_code=404)
    return user


async def require_admin(user: User = Depends(current_user)) -> User:
    if user.tier != "admin":
        raise ApiError("FORBIDDEN", "Admin access required", status_code=403)
    return user
