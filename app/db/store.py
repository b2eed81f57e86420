from __future__ import annotations

import json
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any

from app.core.config import settings

_conn: sqlite3.Connection | None = None
_conn_lock = threading.Lock()

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        name TEXT NOT NULL DEFAULT '',
        tier TEXT NOT NULL DEFAULT 'free',
        subscription_status TEXT NOT NULL DEFAULT 'active',
        subscription_plan TEXT,
        subscription_expires_at TEXT,
        usage_count INTEGER NOT NULL DEFAULT 0,
        usage_reset_at TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS analyses (
        id TEXT PRIMARY KEY,
        user_id TEXT,
        file_key TEXT NOT NULL,
        file_name TEXT NOT NULL,
        file_size INTEGER NOT NULL,
        mime_type TEXT NOT NULL,
        total_score INTEGER NOT NULL,
        structure_score INTEGER NOT NULL,
        keyword_score INTEGER NOT NULL,
        readability_score INTEGER NOT NULL,
        formatting_score INTEGER NOT NULL,
        breakdown_json TEXT NOT NULL,
        parsed_json TEXT NOT NULL,
        recommendations_json TEXT NOT NULL,
        job_description TEXT,
        jd_match_json TEXT,
        ai_suggestions_json TEXT,
        cover_letter TEXT,
        report_key TEXT,
        report_url TEXT,
        report_expires_at TEXT,
        report_fingerprint TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_analyses_user_created
    ON analyses (user_id, created_at);
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        provider TEXT NOT NULL,
        transaction_id TEXT NOT NULL,
        amount INTEGER NOT NULL,
        currency TEXT NOT NULL,
        plan_id TEXT NOT NULL,
        status TEXT NOT NULL,
        provider_reference TEXT,
        refund_reason TEXT,
        refunded_at TEXT,
        completed_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (provider, transaction_id)
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_payments_user_created
    ON payments (user_id, created_at);
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        actor_id TEXT NOT NULL,
        action TEXT NOT NULL,
        target_user_id TEXT,
        detail_json TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS share_links (
        token TEXT PRIMARY KEY,
        analysis_id TEXT NOT NULL,
        owner_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_share_links_expiry
    ON share_links (expires_at);
    """,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def dump_json(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def load_json(value: str | None, default: Any = None) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except ValueError:
        return default


def get_connection() -> sqlite3.Connection:
    global _conn
    with _conn_lock:
        if _conn is not None:
            return _conn

        db_path = settings.database_path
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        _conn = sqlite3.connect(
            db_path,
            check_same_thread=False,
            timeout=5,
            isolation_level=None,
        )
        _conn.row_factory = sqlite3.Row
        _conn.execute("PRAGMA journal_mode=WAL;")
        _conn.execute("PRAGMA synchronous=NORMAL;")
        _conn.execute("PRAGMA busy_timeout=5000;")
        for statement in _SCHEMA:
            _conn.execute(statement)
        return _conn


def init_db() -> None:
    get_connection()


def execute(sql: str, params: tuple[Any, ...] = ()) -> int:
    """Run a write statement and return the number of affected rows."""
    conn = get_connection()
    with _conn_lock:
        cursor = conn.execute(sql, params)
        return cursor.rowcount


def fetch_one(sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
    conn = get_connection()
    with _conn_lock:
        return conn.execute(sql, params).fetchone()


def fetch_all(sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
    conn = get_connection()
    with _conn_lock:
        return conn.execute(sql, params).fetchall()


def close_connection() -> None:
    global _conn
    with _conn_lock:
        if _conn is not None:
            _conn.close()
            _conn = None
