from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from app.core.config import settings
from app.db.analyses import Analysis, count_analyses, get_analysis, list_analyses, set_jd_match
from app.db.users import User
from app.core.errors import NotFound
from app.scoring.jd_match import match_job_description
from app.storage.object_store import get_object_store

logger = logging.getLogger(__name__)


def serialize_analysis(analysis: Analysis, *, include_parsed: bool = True) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": analysis.id,
        "fileName": analysis.file_name,
        "fileSize": analysis.file_size,
        "mimeType": analysis.mime_type,
        "fileKey": analysis.file_key,
        "createdAt": analysis.created_at.isoformat(),
        "score": {
            "total": analysis.total_score,
            "structure": analysis.structure_score,
            "keywords": analysis.keyword_score,
            "readability": analysis.readability_score,
            "formatting": analysis.formatting_score,
            "breakdown": analysis.breakdown,
        },
        "recommendations": analysis.recommendations,
        "jobDescription": analysis.job_description,
        "jdMatch": analysis.jd_match,
        "aiSuggestions": analysis.ai_suggestions,
        "coverLetter": analysis.cover_letter,
        "report": (
            {
                "reportUrl": analysis.report_url,
                "expiresAt": analysis.report_expires_at.isoformat() if analysis.report_expires_at else None,
            }
            if analysis.report_key
            else None
        ),
    }
    if include_parsed:
        payload["parsed"] = analysis.parsed
    return payload


def summarize_analysis(analysis: Analysis) -> dict[str, Any]:
    return {
        "id": analysis.id,
        "fileName": analysis.file_name,
        "createdAt": analysis.created_at.isoformat(),
        "totalScore": analysis.total_score,
        "hasJdMatch": analysis.jd_match is not None,
        "hasReport": bool(analysis.report_key),
    }


def get_owned_analysis(analysis_id: str, user: User) -> Analysis:
    """Return the analysis if the caller owns it; admins may read any. Others see NOT_FOUND."""
    analysis = get_analysis(analysis_id)
    if analysis is None:
        raise NotFound("Analysis not found")
    if analysis.user_id != user.id and user.tier != "admin":
        raise NotFound("Analysis not found")
    return analysis


def list_user_analyses(user: User, *, limit: int, offset: int) -> dict[str, Any]:
    items = list_analyses(user.id, limit=limit, offset=offset)
    return {
        "items": [summarize_analysis(item) for item in items],
        "total": count_analyses(user.id),
        "limit": limit,
        "offset": offset,
    }


def match_analysis(analysis_id: str, job_description: str, user: User) -> dict[str, Any]:
    analysis = get_owned_analysis(analysis_id, user)
    resume_text = str((analysis.parsed or {}).get("text") or "")
    result = match_job_description(resume_text, job_description)
    set_jd_match(analysis.id, job_description=job_description, match=result)
    logger.info(
        "jd_matched analysis_id=%s user_id=%s match=%s",
        analysis.id,
        user.id,
        result["matchPercentage"],
    )
    return result


def source_file_link(analysis_id: str, user: User) -> dict[str, Any]:
    """Short-lived download link for the uploaded file itself."""
    analysis = get_owned_analysis(analysis_id, user)
    ttl = settings.upload_url_ttl_seconds
    url = get_object_store().signed_url(analysis.file_key, expires_in=ttl)
    return {
        "url": url,
        "fileName": analysis.file_name,
        "expiresAt": (datetime.now(timezone.utc) + timedelta(seconds=ttl)).isoformat(),
    }
