from __future__ import annotations

from typing import Any

from app.db.store import dump_json, execute, fetch_all, fetch_one, load_json, to_iso, utc_now


def append_audit_log(
    *,
    actor_id: str,
    action: str,
    target_user_id: str | None = None,
    detail: dict[str, Any] | None = None,
) -> None:
    execute(
        """
        INSERT INTO audit_logs (actor_id, action, target_user_id, detail_json, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (actor_id, action, target_user_id, dump_json(detail or {}), to_iso(utc_now())),
    )


def list_audit_logs(*, limit: int = 50, offset: int = 0, action: str | None = None) -> list[dict[str, Any]]:
    if action:
        rows = fetch_all(
            "SELECT * FROM audit_logs WHERE action = ? ORDER BY id DESC LIMIT ? OFFSET ?",
            (action, limit, offset),
        )
    else:
        rows = fetch_all("SELECT * FROM audit_logs ORDER BY id DESC LIMIT ? OFFSET ?", (limit, offset))
    return [
        {
            "id": row["id"],
            "actorId": row["actor_id"],
            "action": row["action"],
            "targetUserId": row["target_user_id"],
            "detail": load_json(row["detail_json"], {}),
            "createdAt": row["created_at"],
        }
        for row in rows
    ]


def count_audit_logs() -> int:
    row = fetch_one("SELECT COUNT(1) AS total FROM audit_logs")
    return int(row["total"]) if row else 0
