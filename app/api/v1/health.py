from fastapi import APIRouter

from app.core.config import settings
from app.db.store import fetch_one

router = APIRouter()


@router.get("", summary="Health Check", description="Check the health status of the application.")
async def health_check():
    fetch_one("SELECT 1 AS ok")
    return {"status": "healthy", "environment": settings.app_env, "storage": settings.storage_backend}
