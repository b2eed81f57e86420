from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

_INSECURE_JWT_SECRET = "dev-only-change-me"


def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    app_env: str
    log_level: str
    sentry_dsn: str | None
    database_path: str
    jwt_secret: str
    jwt_algorithm: str
    jwt_expiry_hours: int
    rate_limit: str
    rate_limit_enabled: bool
    auth_rate_limit: str
    cors_allowed_origins: tuple[str, ...]
    storage_backend: str
    aws_region: str
    aws_s3_bucket: str
    aws_access_key_id: str | None
    aws_secret_access_key: str | None
    storage_local_root: str
    storage_signing_secret: str
    public_base_url: str
    upload_url_ttl_seconds: int
    report_url_ttl_days: int
    share_ttl_days: int
    share_token_bytes: int
    razorpay_key_id: str | None
    razorpay_key_secret: str | None
    razorpay_webhook_secret: str | None
    stripe_secret_key: str | None
    stripe_webhook_secret: str | None
    ai_rewrite_enabled: bool
    ai_model: str
    openai_api_key: str | None
    ai_timeout_s: int

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


settings = Settings(
    app_env=(_get_env("APP_ENV", "development") or "development").strip().lower(),
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    database_path=_get_env("DATABASE_PATH", "data/app.db") or "data/app.db",
    jwt_secret=_get_env("JWT_SECRET", _INSECURE_JWT_SECRET) or _INSECURE_JWT_SECRET,
    jwt_algorithm=_get_env("JWT_ALGORITHM", "HS256") or "HS256",
    jwt_expiry_hours=_get_env_int("JWT_EXPIRY_HOURS", 24),
    rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    auth_rate_limit=_get_env("AUTH_RATE_LIMIT", "10/minute") or "10/minute",
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:4200",
            "http://127.0.0.1:4200",
        ],
    ),
    storage_backend=(_get_env("STORAGE_BACKEND", "s3") or "s3").strip().lower(),
    aws_region=_get_env("AWS_REGION", "us-east-1") or "us-east-1",
    aws_s3_bucket=_get_env("AWS_S3_BUCKET", "resume-analyzer-uploads") or "resume-analyzer-uploads",
    aws_access_key_id=_get_env("AWS_ACCESS_KEY_ID"),
    aws_secret_access_key=_get_env("AWS_SECRET_ACCESS_KEY"),
    storage_local_root=_get_env("STORAGE_LOCAL_ROOT", "data/objects") or "data/objects",
    storage_signing_secret=_get_env("STORAGE_SIGNING_SECRET", _INSECURE_JWT_SECRET) or _INSECURE_JWT_SECRET,
    public_base_url=(_get_env("PUBLIC_BASE_URL", "http://localhost:8000") or "http://localhost:8000").rstrip("/"),
    upload_url_ttl_seconds=_get_env_int("UPLOAD_URL_TTL_SECONDS", 3600),
    report_url_ttl_days=_get_env_int("REPORT_URL_TTL_DAYS", 7),
    share_ttl_days=_get_env_int("SHARE_TTL_DAYS", 30),
    share_token_bytes=_get_env_int("SHARE_TOKEN_BYTES", 18),
    razorpay_key_id=_get_env("RAZORPAY_KEY_ID"),
    razorpay_key_secret=_get_env("RAZORPAY_KEY_SECRET"),
    razorpay_webhook_secret=_get_env("RAZORPAY_WEBHOOK_SECRET"),
    stripe_secret_key=_get_env("STRIPE_SECRET_KEY"),
    stripe_webhook_secret=_get_env("STRIPE_WEBHOOK_SECRET"),
    ai_rewrite_enabled=_get_env_bool("AI_REWRITE_ENABLED", True),
    ai_model=_get_env("AI_MODEL", "gpt-4o-mini") or "gpt-4o-mini",
    openai_api_key=_get_env("OPENAI_API_KEY"),
    ai_timeout_s=_get_env_int("AI_TIMEOUT_S", 30),
)

if settings.storage_backend not in {"s3", "local"}:
    raise RuntimeError("STORAGE_BACKEND must be either 's3' or 'local'.")

if settings.is_production and settings.jwt_secret == _INSECURE_JWT_SECRET:
    raise RuntimeError("APP_ENV=production requires JWT_SECRET to be set.")
