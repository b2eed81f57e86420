import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware
import sentry_sdk

from app.api.v1.admin import router as admin_router
from app.api.v1.ai import router as ai_router
from app.api.v1.auth import router as auth_router
from app.api.v1.files import router as files_router
from app.api.v1.health import router as health_router
from app.api.v1.payments import router as payments_router
from app.api.v1.profile import router as profile_router
from app.api.v1.reports import router as reports_router
from app.api.v1.resume import router as resume_router
from app.api.v1.share import router as share_router
from app.core.cors import cors_allowed_origins
from app.core.errors import register_error_handlers
from app.core.rate_limit import limiter
from app.core.config import settings
from dotenv import load_dotenv
from app.core.lifespan import lifespan

load_dotenv()
logging.basicConfig(level=settings.log_level, format="%(message)s")
if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.app_env)

app = FastAPI(title="Resume Analyzer API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.state.limiter = limiter
register_error_handlers(app)
app.add_middleware(SlowAPIMiddleware)

app.include_router(health_router, prefix="/api/health", tags=["Health"])
app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(resume_router, prefix="/api/resume", tags=["Resume"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])
app.include_router(payments_router, prefix="/api/payments", tags=["Payments"])
app.include_router(share_router, prefix="/api/share", tags=["Share"])
app.include_router(profile_router, prefix="/api/profile", tags=["Profile"])
app.include_router(ai_router, prefix="/api/ai", tags=["AI"])
app.include_router(admin_router, prefix="/api/admin", tags=["Admin"])
app.include_router(files_router, prefix="/api/files", tags=["Files"])
