from __future__ import annotations

from io import BytesIO
from typing import Any
from zipfile import BadZipFile, ZipFile

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

RESUME_CONTENT_TYPE_EXTENSIONS = {
    PDF_MIME: "pdf",
    DOCX_MIME: "docx",
}

PDF_MAGIC = b"%PDF-"
ZIP_MAGICS = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")


def _safe_str(value: Any, max_len: int = 255) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if not text:
        return ""
    return text[:max_len]


def extension_from_filename(filename: str) -> str:
    if "." not in filename:
        return ""
    return _safe_str(filename.rsplit(".", 1)[-1], 20).lower()


def safe_display_name(filename: str | None) -> str:
    name = _safe_str((filename or "").replace("\\", "/").split("/")[-1], 200)
    return name or "resume"


def normalize_content_type(content_type: str | None) -> str:
    return _safe_str((content_type or "").split(";")[0], 120).lower()


def _is_zip_payload(content: bytes) -> bool:
    return any(content.startswith(prefix) for prefix in ZIP_MAGICS)


def _zip_has_paths(content: bytes, prefixes: tuple[str, ...]) -> bool:
    try:
        with ZipFile(BytesIO(content)) as archive:
            names = archive.namelist()
    except (BadZipFile, OSError, ValueError):
        return False
    return any(any(name.startswith(prefix) for prefix in prefixes) for name in names)


def validate_upload_signature(*, extension: str, content: bytes) -> None:
    """Raise ValueError when the bytes do not look like the declared file type."""
    ext = extension.lower().lstrip(".")
    if ext == "doc":
        raise ValueError("Legacy .doc is not supported. Convert to .docx.")

    if ext == "pdf":
        if not content.startswith(PDF_MAGIC):
            raise ValueError("File signature does not match .pdf content.")
        return

    if ext == "docx":
        if not _is_zip_payload(content) or not _zip_has_paths(content, ("word/",)):
            raise ValueError("File signature does not match .docx content.")
        return

    raise ValueError(f"Unsupported file type '.{ext}'.")
