from __future__ import annotations

from typing import Any

from app.core.config import settings
from app.core.errors import NotFound
from app.db.analyses import get_analysis
from app.db.share_links import create_share_link, resolve_share_link
from app.db.users import User
from app.services.resume_service import get_owned_analysis


def share_analysis(analysis_id: str, user: User) -> dict[str, Any]:
    analysis = get_owned_analysis(analysis_id, user)
    token, expires_at = create_share_link(analysis_id=analysis.id, owner_id=user.id)
    return {
        "token": token,
        "url": f"{settings.public_base_url}/api/share/{token}",
        "expiresAt": expires_at.isoformat(),
    }


def shared_view(token: str) -> dict[str, Any]:
    link = resolve_share_link(token)
    analysis = get_analysis(link["analysis_id"]) if link else None
    if link is None or analysis is None:
        raise NotFound("Share link not found or expired")
    match = analysis.jd_match or {}
    return {
        "fileName": analysis.file_name,
        "createdAt": analysis.created_at.isoformat(),
        "score": {
            "total": analysis.total_score,
            "structure": analysis.structure_score,
            "keywords": analysis.keyword_score,
            "readability": analysis.readability_score,
            "formatting": analysis.formatting_score,
        },
        "recommendations": analysis.recommendations,
        "jdMatchPercentage": match.get("matchPercentage"),
        "expiresAt": link["expires_at"].isoformat(),
    }
