from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime

from app.db.store import execute, fetch_all, fetch_one, from_iso, to_iso, utc_now


@dataclass(frozen=True)
class User:
    id: str
    email: str
    password_hash: str
    name: str
    tier: str
    subscription_status: str
    subscription_plan: str | None
    subscription_expires_at: datetime | None
    usage_count: int
    usage_reset_at: datetime
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "User":
        return cls(
            id=row["id"],
            email=row["email"],
            password_hash=row["password_hash"],
            name=row["name"] or "",
            tier=row["tier"],
            subscription_status=row["subscription_status"],
            subscription_plan=row["subscription_plan"],
            subscription_expires_at=from_iso(row["subscription_expires_at"]),
            usage_count=int(row["usage_count"] or 0),
            usage_reset_at=from_iso(row["usage_reset_at"]) or utc_now(),
            created_at=from_iso(row["created_at"]) or utc_now(),
        )


def create_user(
    *,
    email: str,
    password_hash: str,
    name: str,
    usage_reset_at: datetime,
    tier: str = "free",
) -> User:
    """Insert a user; raises sqlite3.IntegrityError when the email is taken."""
    user_id = uuid.uuid4().hex
    now_iso = to_iso(utc_now())
    execute(
        """
        INSERT INTO users (
            id, email, password_hash, name, tier, subscription_status,
            usage_count, usage_reset_at, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, 'active', 0, ?, ?, ?)
        """,
        (user_id, email, password_hash, name, tier, to_iso(usage_reset_at), now_iso, now_iso),
    )
    user = get_user(user_id)
    if user is None:
        raise RuntimeError(f"User {user_id} vanished after insert")
    return user


def get_user(user_id: str) -> User | None:
    row = fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
    return User.from_row(row) if row else None


def get_user_by_email(email: str) -> User | None:
    row = fetch_one("SELECT * FROM users WHERE email = ?", (email,))
    return User.from_row(row) if row else None


def list_users(*, limit: int = 50, offset: int = 0) -> list[User]:
    rows = fetch_all("SELECT * FROM users ORDER BY created_at DESC LIMIT ? OFFSET ?", (limit, offset))
    return [User.from_row(row) for row in rows]


def update_profile(user_id: str, *, name: str | None = None, email: str | None = None) -> User | None:
    current = get_user(user_id)
    if current is None:
        return None
    execute(
        "UPDATE users SET name = ?, email = ?, updated_at = ? WHERE id = ?",
        (
            current.name if name is None else name,
            current.email if email is None else email,
            to_iso(utc_now()),
            user_id,
        ),
    )
    return get_user(user_id)


def update_password(user_id: str, password_hash: str) -> None:
    execute(
        "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
        (password_hash, to_iso(utc_now()), user_id),
    )


def set_subscription(
    user_id: str,
    *,
    tier: str,
    status: str,
    plan: str | None = None,
    expires_at: datetime | None = None,
) -> User | None:
    execute(
        """
        UPDATE users
        SET tier = ?, subscription_status = ?, subscription_plan = ?,
            subscription_expires_at = ?, updated_at = ?
        WHERE id = ?
        """,
        (tier, status, plan, to_iso(expires_at), to_iso(utc_now()), user_id),
    )
    return get_user(user_id)


def set_subscription_status(user_id: str, status: str) -> None:
    execute(
        "UPDATE users SET subscription_status = ?, updated_at = ? WHERE id = ?",
        (status, to_iso(utc_now()), user_id),
    )


def reset_usage(user_id: str, *, previous_reset_at: datetime, next_reset_at: datetime) -> bool:
    """Zero the counter unless another request already rolled the window forward."""
    changed = execute(
        """
        UPDATE users
        SET usage_count = 0, usage_reset_at = ?, updated_at = ?
        WHERE id = ? AND usage_reset_at = ?
        """,
        (to_iso(next_reset_at), to_iso(utc_now()), user_id, to_iso(previous_reset_at)),
    )
    return changed == 1


def increment_usage(user_id: str, *, ceiling: int) -> bool:
    """Atomically add one use while the counter is below ``ceiling``."""
    changed = execute(
        """
        UPDATE users
        SET usage_count = usage_count + 1, updated_at = ?
        WHERE id = ? AND usage_count < ?
        """,
        (to_iso(utc_now()), user_id, ceiling),
    )
    return changed == 1


def set_usage(user_id: str, *, usage_count: int, usage_reset_at: datetime) -> None:
    execute(
        "UPDATE users SET usage_count = ?, usage_reset_at = ?, updated_at = ? WHERE id = ?",
        (usage_count, to_iso(usage_reset_at), to_iso(utc_now()), user_id),
    )


def expire_lapsed_subscriptions(now: datetime | None = None) -> int:
    now_iso = to_iso(now or utc_now())
    return execute(
        """
        UPDATE users
        SET subscription_status = 'expired', updated_at = ?
        WHERE tier = 'premium'
          AND subscription_status = 'active'
          AND subscription_expires_at IS NOT NULL
          AND subscription_expires_at <= ?
        """,
        (now_iso, now_iso),
    )


def delete_user(user_id: str) -> bool:
    execute("UPDATE analyses SET user_id = NULL WHERE user_id = ?", (user_id,))
    execute("DELETE FROM share_links WHERE owner_id = ?", (user_id,))
    return execute("DELETE FROM users WHERE id = ?", (user_id,)) == 1
