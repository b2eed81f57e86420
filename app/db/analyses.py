from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.db.store import dump_json, execute, fetch_all, fetch_one, from_iso, load_json, to_iso, utc_now


@dataclass(frozen=True)
class Analysis:
    id: str
    user_id: str | None
    file_key: str
    file_name: str
    file_size: int
    mime_type: str
    total_score: int
    structure_score: int
    keyword_score: int
    readability_score: int
    formatting_score: int
    breakdown: dict[str, Any]
    parsed: dict[str, Any]
    recommendations: list[dict[str, Any]]
    created_at: datetime
    job_description: str | None = None
    jd_match: dict[str, Any] | None = None
    ai_suggestions: list[dict[str, Any]] = field(default_factory=list)
    cover_letter: str | None = None
    report_key: str | None = None
    report_url: str | None = None
    report_expires_at: datetime | None = None
    report_fingerprint: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Analysis":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            file_key=row["file_key"],
            file_name=row["file_name"],
            file_size=int(row["file_size"]),
            mime_type=row["mime_type"],
            total_score=int(row["total_score"]),
            structure_score=int(row["structure_score"]),
            keyword_score=int(row["keyword_score"]),
            readability_score=int(row["readability_score"]),
            formatting_score=int(row["formatting_score"]),
            breakdown=load_json(row["breakdown_json"], {}),
            parsed=load_json(row["parsed_json"], {}),
            recommendations=load_json(row["recommendations_json"], []),
            created_at=from_iso(row["created_at"]) or utc_now(),
            job_description=row["job_description"],
            jd_match=load_json(row["jd_match_json"]),
            ai_suggestions=load_json(row["ai_suggestions_json"], []),
            cover_letter=row["cover_letter"],
            report_key=row["report_key"],
            report_url=row["report_url"],
            report_expires_at=from_iso(row["report_expires_at"]),
            report_fingerprint=row["report_fingerprint"],
        )


def create_analysis(
    *,
    user_id: str | None,
    file_key: str,
    file_name: str,
    file_size: int,
    mime_type: str,
    score: dict[str, Any],
    parsed: dict[str, Any],
    recommendations: list[dict[str, Any]],
) -> Analysis:
    analysis_id = uuid.uuid4().hex
    now_iso = to_iso(utc_now())
    execute(
        """
        INSERT INTO analyses (
            id, user_id, file_key, file_name, file_size, mime_type,
            total_score, structure_score, keyword_score, readability_score, formatting_score,
            breakdown_json, parsed_json, recommendations_json, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            analysis_id,
            user_id,
            file_key,
            file_name,
            file_size,
            mime_type,
            score["total"],
            score["structure"],
            score["keywords"],
            score["readability"],
            score["formatting"],
            dump_json(score.get("breakdown", {})),
            dump_json(parsed),
            dump_json(recommendations),
            now_iso,
            now_iso,
        ),
    )
    analysis = get_analysis(analysis_id)
    if analysis is None:
        raise RuntimeError(f"Analysis {analysis_id} vanished after insert")
    return analysis


def get_analysis(analysis_id: str) -> Analysis | None:
    row = fetch_one("SELECT * FROM analyses WHERE id = ?", (analysis_id,))
    return Analysis.from_row(row) if row else None


def list_analyses(user_id: str, *, limit: int = 20, offset: int = 0) -> list[Analysis]:
    rows = fetch_all(
        """
        SELECT * FROM analyses
        WHERE user_id = ?
        ORDER BY created_at DESC
        LIMIT ? OFFSET ?
        """,
        (user_id, limit, offset),
    )
    return [Analysis.from_row(row) for row in rows]


def count_analyses(user_id: str) -> int:
    row = fetch_one("SELECT COUNT(1) AS total FROM analyses WHERE user_id = ?", (user_id,))
    return int(row["total"]) if row else 0


def set_jd_match(analysis_id: str, *, job_description: str, match: dict[str, Any]) -> None:
    execute(
        "UPDATE analyses SET job_description = ?, jd_match_json = ?, updated_at = ? WHERE id = ?",
        (job_description, dump_json(match), to_iso(utc_now()), analysis_id),
    )


def set_ai_suggestions(analysis_id: str, suggestions: list[dict[str, Any]]) -> None:
    execute(
        "UPDATE analyses SET ai_suggestions_json = ?, updated_at = ? WHERE id = ?",
        (dump_json(suggestions), to_iso(utc_now()), analysis_id),
    )


def set_cover_letter(analysis_id: str, cover_letter: str) -> None:
    execute(
        "UPDATE analyses SET cover_letter = ?, updated_at = ? WHERE id = ?",
        (cover_letter, to_iso(utc_now()), analysis_id),
    )


def set_report(
    analysis_id: str,
    *,
    report_key: str,
    report_url: str,
    expires_at: datetime,
    fingerprint: str,
) -> None:
    execute(
        """
        UPDATE analyses
        SET report_key = ?, report_url = ?, report_expires_at = ?, report_fingerprint = ?, updated_at = ?
        WHERE id = ?
        """,
        (report_key, report_url, to_iso(expires_at), fingerprint, to_iso(utc_now()), analysis_id),
    )


def set_report_url(analysis_id: str, *, report_url: str, expires_at: datetime) -> None:
    execute(
        "UPDATE analyses SET report_url = ?, report_expires_at = ?, updated_at = ? WHERE id = ?",
        (report_url, to_iso(expires_at), to_iso(utc_now()), analysis_id),
    )
