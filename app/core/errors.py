from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from app.core.config import settings

logger = logging.getLogger(__name__)

UPGRADE_URL = "/pricing"

_STATUS_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "AUTHENTICATION_REQUIRED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: "FILE_TOO_LARGE",
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMITED",
}


class ApiError(Exception):
    """Failure with a stable machine-readable code, rendered in the error envelope."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, message: str, *, status_code: int | None = None, **context: Any):
        super().__init__(message)
        self.code = code
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.context = context

    def to_payload(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        for key, value in self.context.items():
            if value is not None:
                error[key] = value
        return {"success": False, "error": error}


class AuthError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED


class EntitlementError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, code: str, message: str, **context: Any):
        context.setdefault("upgradeUrl", UPGRADE_URL)
        super().__init__(code, message, **context)


class ValidationFailed(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Resource not found", *, code: str = "NOT_FOUND", **context: Any):
        super().__init__(code, message, **context)


def success(data: Any = None, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": True, "data": data if data is not None else {}}
    payload.update({key: value for key, value in extra.items() if value is not None})
    return payload


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("api_error code=%s path=%s message=%s", exc.code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        fields.append({"field": location, "message": item.get("msg", "")})
    body = ApiError(
        "VALIDATION_ERROR",
        "Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        fields=fields,
    )
    return JSONResponse(status_code=body.status_code, content=body.to_payload())


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = _STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    body = ApiError(code, message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=body.to_payload(), headers=exc.headers)


async def _rate_limited_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    body = ApiError(
        "RATE_LIMITED",
        f"Rate limit exceeded: {exc.detail}",
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    )
    return JSONResponse(status_code=body.status_code, content=body.to_payload())


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error path=%s", request.url.path)
    message = "An unexpected error occurred"
    if not settings.is_production:
        message = str(exc) or message
    body = ApiError("INTERNAL_SERVER_ERROR", message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(status_code=body.status_code, content=body.to_payload())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limited_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
