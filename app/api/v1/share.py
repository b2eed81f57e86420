from fastapi import APIRouter, Depends, Request, status

from app.core.errors import success
from app.core.rate_limit import rate_limit
from app.core.security import current_user
from app.db.users import User
from app.services.share_service import share_analysis, shared_view

router = APIRouter()


@router.post("/{analysis_id}", status_code=status.HTTP_201_CREATED)
async def create_share(analysis_id: str, user: User = Depends(current_user)):
    return success(share_analysis(analysis_id, user))


@router.get("/{token}")
@rate_limit()
async def read_share(request: Request, token: str):
    return success(shared_view(token))
