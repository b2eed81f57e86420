import logging

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status

from app.core.entitlements import feature_flags, refresh_subscription, require_feature, usage_limit_for
from app.core.errors import ValidationFailed, success
from app.core.rate_limit import rate_limit
from app.core.security import current_user, optional_user
from app.db.users import User, get_user
from app.schemas.resume import JobMatchRequest
from app.services.ingest import analyze_upload, check_declared_type, read_upload_capped, validate_upload
from app.services.resume_service import (
    get_owned_analysis,
    list_user_analyses,
    match_analysis,
    serialize_analysis,
    source_file_link,
)
from app.services.usage import check_usage_limit, usage_snapshot

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/upload", status_code=status.HTTP_201_CREATED)
@rate_limit()
async def upload_resume(
    request: Request,
    resume: UploadFile | None = File(default=None),
    user: User | None = Depends(optional_user),
):
    check_usage_limit(user)
    if resume is None:
        raise ValidationFailed("NO_FILE", "No file uploaded. Send the resume in the 'resume' field.")
    try:
        check_declared_type(resume.filename, resume.content_type)
        content = await read_upload_capped(resume)
    finally:
        await resume.close()
    upload = validate_upload(resume.filename, resume.content_type, content)
    analysis = analyze_upload(upload, user)

    usage = None
    if user is not None:
        fresh = get_user(user.id) or user
        usage = usage_snapshot(fresh)
    return success({"analysis": serialize_analysis(analysis), "usage": usage})


@router.get("/analysis/{analysis_id}")
async def get_analysis_detail(analysis_id: str, user: User = Depends(current_user)):
    return success(serialize_analysis(get_owned_analysis(analysis_id, user)))


@router.get("/analysis/{analysis_id}/file-url")
async def get_source_file_url(analysis_id: str, user: User = Depends(current_user)):
    return success(source_file_link(analysis_id, user))


@router.get("/analyses")
async def list_my_analyses(
    user: User = Depends(current_user),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    return success(list_user_analyses(user, limit=limit, offset=offset))


@router.post("/match-jd")
@rate_limit()
async def match_jd(
    request: Request,
    payload: JobMatchRequest,
    user: User = Depends(require_feature("job_description_matching")),
):
    return success(match_analysis(payload.analysis_id, payload.job_description, user))


@router.get("/usage")
async def usage(user: User = Depends(current_user)):
    return success(usage_snapshot(user))


@router.get("/features")
async def features(user: User = Depends(current_user)):
    user = refresh_subscription(user)
    return success(
        {
            "tier": user.tier,
            "subscriptionStatus": user.subscription_status,
            "usageLimit": usage_limit_for(user.tier),
            "features": feature_flags(user.tier, user.subscription_status),
        }
    )
