from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import UploadFile

from app.core.errors import ValidationFailed
from app.db.analyses import Analysis, create_analysis
from app.db.users import User
from app.parsing.parse import Parser, get_parser
from app.scoring.ats import calculate_score
from app.scoring.recommendations import generate_recommendations
from app.services.file_security import (
    RESUME_CONTENT_TYPE_EXTENSIONS,
    extension_from_filename,
    normalize_content_type,
    safe_display_name,
    validate_upload_signature,
)
from app.services.usage import record_usage
from app.storage.object_store import ObjectStore, generate_storage_key, get_object_store

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
READ_CHUNK_BYTES = 64 * 1024


@dataclass(frozen=True)
class ValidatedUpload:
    file_name: str
    extension: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def _invalid_file(message: str) -> ValidationFailed:
    return ValidationFailed("INVALID_FILE", message, allowedTypes=["pdf", "docx"])


def check_declared_type(filename: str | None, content_type: str | None) -> tuple[str, str]:
    """Accept only PDF/DOCX by MIME type, with a matching file extension."""
    mime = normalize_content_type(content_type)
    expected_ext = RESUME_CONTENT_TYPE_EXTENSIONS.get(mime)
    if expected_ext is None:
        raise _invalid_file("Invalid file type. Only PDF and DOCX files are allowed.")
    ext = extension_from_filename(filename or "")
    if ext and ext != expected_ext:
        raise _invalid_file(f"File extension '.{ext}' does not match the {expected_ext.upper()} content type.")
    return expected_ext, mime


def _too_large() -> ValidationFailed:
    return ValidationFailed(
        "FILE_TOO_LARGE",
        "File size exceeds the 5MB limit.",
        maxSizeBytes=MAX_UPLOAD_BYTES,
    )


async def read_upload_capped(upload: UploadFile, max_bytes: int = MAX_UPLOAD_BYTES) -> bytes:
    buffer = bytearray()
    while True:
        chunk = await upload.read(READ_CHUNK_BYTES)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise _too_large()
    return bytes(buffer)


def validate_upload(filename: str | None, content_type: str | None, content: bytes) -> ValidatedUpload:
    extension, mime = check_declared_type(filename, content_type)
    if len(content) > MAX_UPLOAD_BYTES:
        raise _too_large()
    if not content:
        raise _invalid_file("Uploaded file is empty.")
    try:
        validate_upload_signature(extension=extension, content=content)
    except ValueError as exc:
        raise _invalid_file(str(exc)) from exc
    return ValidatedUpload(
        file_name=safe_display_name(filename),
        extension=extension,
        content_type=mime,
        content=content,
    )


def store_upload(upload: ValidatedUpload, user: User | None, *, store: ObjectStore | None = None) -> str:
    target = store or get_object_store()
    key = generate_storage_key(user.id if user else None, upload.extension)
    target.put_object(
        key,
        upload.content,
        content_type=upload.content_type,
        metadata={
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
            "userId": user.id if user else "anonymous",
        },
    )
    logger.info("resume_stored key=%s size=%s", key, upload.size)
    return key


def analyze_upload(
    upload: ValidatedUpload,
    user: User | None,
    *,
    parser: Parser | None = None,
    store: ObjectStore | None = None,
) -> Analysis:
    """Store, parse, score and persist one validated upload, then count it against the quota."""
    key = store_upload(upload, user, store=store)
    parsed = (parser or get_parser()).parse(upload.content, upload.extension)
    score = calculate_score(parsed)
    recommendations = generate_recommendations(score, parsed)
    analysis = create_analysis(
        user_id=user.id if user else None,
        file_key=key,
        file_name=upload.file_name,
        file_size=upload.size,
        mime_type=upload.content_type,
        score=score,
        parsed=parsed.model_dump(),
        recommendations=recommendations,
    )
    logger.info(
        "resume_analyzed analysis_id=%s user_id=%s total=%s warnings=%s",
        analysis.id,
        user.id if user else "anonymous",
        score["total"],
        len(parsed.parsing_warnings),
    )
    record_usage(user)
    return analysis
