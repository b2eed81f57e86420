from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Any

from app.core.config import settings
from app.db.store import execute, fetch_one, from_iso, to_iso, utc_now


def purge_expired_share_links(now: datetime | None = None) -> int:
    return execute("DELETE FROM share_links WHERE expires_at <= ?", (to_iso(now or utc_now()),))


def create_share_link(*, analysis_id: str, owner_id: str) -> tuple[str, datetime]:
    purge_expired_share_links()
    ttl_days = max(1, int(settings.share_ttl_days))
    created_at = utc_now()
    expires_at = created_at + timedelta(days=ttl_days)
    token = secrets.token_urlsafe(max(16, int(settings.share_token_bytes)))
    execute(
        """
        INSERT INTO share_links (token, analysis_id, owner_id, created_at, expires_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (token, analysis_id, owner_id, to_iso(created_at), to_iso(expires_at)),
    )
    return token, expires_at


def resolve_share_link(token: str) -> dict[str, Any] | None:
    row = fetch_one(
        "SELECT analysis_id, expires_at FROM share_links WHERE token = ?",
        ((token or "").strip(),),
    )
    if row is None:
        return None
    expires_at = from_iso(row["expires_at"])
    if expires_at is None or expires_at <= utc_now():
        return None
    return {"analysis_id": row["analysis_id"], "expires_at": expires_at}
