from fastapi import APIRouter, Depends, Request, status

from app.core.errors import success
from app.core.rate_limit import auth_rate_limit
from app.core.security import current_user
from app.db.users import User
from app.schemas.auth import LoginRequest, RegisterRequest
from app.services.auth_service import login, register, serialize_user
from app.services.usage import usage_snapshot

router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
@auth_rate_limit()
async def register_user(request: Request, payload: RegisterRequest):
    return success(register(email=payload.email, password=payload.password, name=payload.name))


@router.post("/login")
@auth_rate_limit()
async def login_user(request: Request, payload: LoginRequest):
    return success(login(email=payload.email, password=payload.password))


@router.post("/logout")
async def logout_user(user: User = Depends(current_user)):
    # tokens are stateless; the client discards its copy
    return success({"loggedOut": True})


@router.get("/me")
async def me(user: User = Depends(current_user)):
    return success({"user": serialize_user(user), "usage": usage_snapshot(user)})
