from fastapi import APIRouter, Depends, Request

from app.ai.rewriter import get_rewriter, require_rewriter
from app.core.config import settings
from app.core.entitlements import require_feature
from app.core.errors import ValidationFailed, success
from app.core.rate_limit import rate_limit
from app.db.analyses import Analysis, set_ai_suggestions, set_cover_letter
from app.db.users import User
from app.schemas.ai import BulletRewriteRequest, CoverLetterRequest, SectionImproveRequest, SummaryRewriteRequest
from app.services.resume_service import get_owned_analysis

router = APIRouter()

ai_user = require_feature("ai_rewrite")


def _owned(analysis_id: str | None, user: User) -> Analysis | None:
    return get_owned_analysis(analysis_id, user) if analysis_id else None


def _attach_suggestions(analysis: Analysis | None, kind: str, items: list[dict]) -> None:
    if analysis is None:
        return
    kept = [item for item in analysis.ai_suggestions if item.get("type") != kind]
    set_ai_suggestions(analysis.id, kept + [{"type": kind, **item} for item in items])


@router.get("/health")
async def ai_health():
    return success({"available": get_rewriter() is not None, "model": settings.ai_model})


@router.post("/rewrite/bullet-points")
@rate_limit()
async def rewrite_bullets(request: Request, payload: BulletRewriteRequest, user: User = Depends(ai_user)):
    analysis = _owned(payload.analysis_id, user)
    rewritten = require_rewriter().rewrite_bullets(payload.bullet_points, job_title=payload.job_title)
    _attach_suggestions(analysis, "bullet", rewritten)
    return success({"bulletPoints": rewritten})


@router.post("/rewrite/summary")
@rate_limit()
async def rewrite_summary(request: Request, payload: SummaryRewriteRequest, user: User = Depends(ai_user)):
    analysis = _owned(payload.analysis_id, user)
    result = require_rewriter().rewrite_summary(payload.summary, job_title=payload.job_title)
    _attach_suggestions(analysis, "summary", [result])
    return success(result)


@router.post("/cover-letter")
@rate_limit()
async def cover_letter(request: Request, payload: CoverLetterRequest, user: User = Depends(ai_user)):
    analysis = _owned(payload.analysis_id, user)
    resume_text = payload.resume_text or (str(analysis.parsed.get("text") or "") if analysis else "")
    if not resume_text.strip():
        raise ValidationFailed("VALIDATION_ERROR", "Provide resumeText or an analysisId with parsed text")
    letter = require_rewriter().generate_cover_letter(
        resume_text,
        payload.job_description,
        company=payload.company_name,
    )
    if analysis is not None:
        set_cover_letter(analysis.id, letter)
    return success({"coverLetter": letter})


@router.post("/improve/section")
@rate_limit()
async def improve_section(request: Request, payload: SectionImproveRequest, user: User = Depends(ai_user)):
    analysis = _owned(payload.analysis_id, user)
    result = require_rewriter().improve_section(payload.section, payload.content)
    _attach_suggestions(analysis, "section", [result])
    return success(result)
