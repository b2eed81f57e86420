from fastapi import APIRouter, Depends

from app.core.entitlements import refresh_subscription
from app.core.errors import success
from app.core.security import current_user
from app.db.users import User
from app.services.reports import build_preview, generate_report, regenerate_link
from app.services.resume_service import get_owned_analysis

router = APIRouter()


@router.post("/generate/{analysis_id}")
async def generate(analysis_id: str, user: User = Depends(current_user)):
    analysis = get_owned_analysis(analysis_id, user)
    user = refresh_subscription(user)
    tier = user.tier if user.subscription_status == "active" or user.tier == "admin" else "free"
    return success(generate_report(analysis, tier))


@router.get("/preview/{analysis_id}")
async def preview(analysis_id: str, user: User = Depends(current_user)):
    return success(build_preview(get_owned_analysis(analysis_id, user)))


@router.post("/regenerate-link/{analysis_id}")
async def regenerate(analysis_id: str, user: User = Depends(current_user)):
    return success(regenerate_link(get_owned_analysis(analysis_id, user)))
