import logging

from fastapi import APIRouter, Depends

from app.core.errors import ApiError, success
from app.core.security import current_user
from app.db.users import User, delete_user
from app.schemas.auth import PasswordChangeRequest, ProfileUpdateRequest
from app.services.auth_service import change_password, change_profile, serialize_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def get_profile(user: User = Depends(current_user)):
    return success(serialize_user(user))


@router.put("")
async def update_profile(payload: ProfileUpdateRequest, user: User = Depends(current_user)):
    return success(serialize_user(change_profile(user, name=payload.name, email=payload.email)))


@router.put("/password")
async def update_password(payload: PasswordChangeRequest, user: User = Depends(current_user)):
    change_password(user, current_password=payload.current_password, new_password=payload.new_password)
    return success({"passwordChanged": True})


@router.delete("")
async def delete_account(user: User = Depends(current_user)):
    if not delete_user(user.id):
        raise ApiError("USER_NOT_FOUND", "User not found", status_code=404)
    logger.info("account_deleted user_id=%s", user.id)
    return success({"deleted": True})
