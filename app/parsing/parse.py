from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from io import BytesIO
from typing import Protocol

from docx import Document
from pypdf import PdfReader

from .models import ContactInfo, EducationEntry, ExperienceEntry, ParsedResume, ResumeSections

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ("pdf", "docx")

_SECTION_PATTERNS = {
    "summary": re.compile(r"^(summary|professional summary|profile|objective|about me|career objective)\b", re.IGNORECASE),
    "experience": re.compile(
        r"^(experience|work experience|employment history|professional experience|work history)\b", re.IGNORECASE
    ),
    "education": re.compile(r"^(education|academic background|qualifications|academic qualifications)\b", re.IGNORECASE),
    "skills": re.compile(r"^(skills|technical skills|core competencies|expertise|proficiencies)\b", re.IGNORECASE),
}
_HEADING_MAX_CHARS = 40

_BULLET_RE = re.compile(r"^\s*(?:[•▪◦●■*]\s*|-\s+|\d+[.)]\s+)")
_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_PHONE_RE = re.compile(r"(\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
_LINKEDIN_RE = re.compile(r"linkedin\.com/(?:in|pub)/[A-Za-z0-9-]+", re.IGNORECASE)
_GITHUB_RE = re.compile(r"github\.com/[A-Za-z0-9-]+", re.IGNORECASE)
_WEBSITE_RE = re.compile(r"(?:https?://)?(?:www\.)?[A-Za-z0-9-]+\.[A-Za-z]{2,}(?:/\S*)?")
_LOCATION_RE = re.compile(r"\b([A-Z][a-z]+(?:\s[A-Z][a-z]+)*),\s*([A-Z]{2}|[A-Z][a-z]+)\b")
_SKILL_SPLIT_RE = re.compile(r"[,;|•]|\s-\s")


class Parser(Protocol):
    def parse(self, content: bytes, extension: str) -> ParsedResume: ...


def _extract_pdf(content: bytes) -> tuple[str, int, list[str]]:
    warnings: list[str] = []
    try:
        reader = PdfReader(BytesIO(content))
        text_parts: list[str] = []
        for page in reader.pages:
            page_text = (page.extract_text() or "").strip()
            if page_text:
                text_parts.append(page_text)
        if not text_parts:
            warnings.append("No extractable text found in PDF.")
        return "\n".join(text_parts), len(reader.pages), warnings
    except Exception as exc:
        warnings.append(f"PDF parsing failed: {exc}")
        return "", 0, warnings


def _extract_docx(content: bytes) -> tuple[str, int, list[str]]:
    warnings: list[str] = []
    try:
        document = Document(BytesIO(content))
        paragraphs = [p.text.strip() for p in document.paragraphs if p.text and p.text.strip()]
        if not paragraphs:
            warnings.append("No extractable text found in DOCX.")
        return "\n".join(paragraphs), 1 if paragraphs else 0, warnings
    except Exception as exc:
        warnings.append(f"DOCX parsing failed: {exc}")
        return "", 0, warnings


def _strip_bullet(line: str) -> str:
    return _BULLET_RE.sub("", line).strip()


def _is_bullet(line: str) -> bool:
    return bool(_BULLET_RE.match(line))


def _match_heading(line: str) -> str | None:
    if len(line) > _HEADING_MAX_CHARS:
        return None
    candidate = line.rstrip(":").strip()
    for name, pattern in _SECTION_PATTERNS.items():
        if pattern.match(candidate):
            return name
    return None


def _group_entries(lines: list[str]) -> list[tuple[str, list[str]]]:
    entries: list[tuple[str, list[str]]] = []
    for line in lines:
        if not _is_bullet(line):
            entries.append((line, []))
        elif entries:
            entries[-1][1].append(_strip_bullet(line))
    return entries


def _split_skills(lines: list[str]) -> list[str]:
    skills: list[str] = []
    for line in lines:
        for item in _SKILL_SPLIT_RE.split(_strip_bullet(line)):
            skill = item.strip()
            if skill and skill not in skills:
                skills.append(skill)
    return skills


def extract_sections(text: str) -> ResumeSections:
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    collected: dict[str, list[str]] = {}
    order: list[str] = []
    current: str | None = None

    for line in lines:
        heading = _match_heading(line)
        if heading:
            current = heading
            collected.setdefault(heading, [])
            if heading not in order:
                order.append(heading)
            continue
        if current:
            collected[current].append(line)

    experience = [
        ExperienceEntry(title=title, description=details)
        for title, details in _group_entries(collected.get("experience", []))
    ]
    education = [
        EducationEntry(degree=degree, details=details)
        for degree, details in _group_entries(collected.get("education", []))
    ]
    return ResumeSections(
        summary=" ".join(collected.get("summary", [])),
        experience=experience,
        education=education,
        skills=_split_skills(collected.get("skills", [])),
        order=order,
    )


def extract_contact(text: str) -> ContactInfo:
    contact = ContactInfo()
    if match := _EMAIL_RE.search(text):
        contact.email = match.group(0)
    if match := _PHONE_RE.search(text):
        contact.phone = match.group(0).strip()
    if match := _LINKEDIN_RE.search(text):
        contact.linkedin = match.group(0)
    if match := _GITHUB_RE.search(text):
        contact.github = match.group(0)

    email_domain = contact.email.split("@", 1)[1].lower() if contact.email else ""
    for candidate in _WEBSITE_RE.findall(text):
        lowered = candidate.lower()
        if "linkedin.com" in lowered or "github.com" in lowered or "@" in lowered:
            continue
        if email_domain and lowered.endswith(email_domain):
            continue
        contact.website = candidate
        break

    if match := _LOCATION_RE.search(text):
        contact.location = match.group(0)
    return contact


def extract_bullet_points(text: str) -> list[str]:
    return [_strip_bullet(line) for line in text.split("\n") if _is_bullet(line) and _strip_bullet(line)]


def parse_text(text: str, *, file_type: str = "txt", page_count: int = 0, warnings: list[str] | None = None) -> ParsedResume:
    normalized = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    sections = extract_sections(normalized)
    sections.contact = extract_contact(normalized)
    words = normalized.split()
    return ParsedResume(
        text=normalized,
        sections=sections,
        bullet_points=extract_bullet_points(normalized),
        metadata={
            "fileType": file_type,
            "parsedAt": datetime.now(timezone.utc).isoformat(),
            "textLength": len(normalized),
            "wordCount": len(words),
            "pageCount": page_count,
        },
        parsing_warnings=list(warnings or []),
    )


class DocumentParser:
    """Text extraction for PDF and DOCX uploads followed by section detection."""

    def parse(self, content: bytes, extension: str) -> ParsedResume:
        ext = (extension or "").lower().lstrip(".")
        if ext not in SUPPORTED_EXTENSIONS:
            text, pages, warnings = "", 0, [f"Unsupported file type '{ext}'."]
        elif ext == "pdf":
            text, pages, warnings = _extract_pdf(content)
        else:
            text, pages, warnings = _extract_docx(content)

        if warnings:
            logger.info("resume_parse_degraded ext=%s warnings=%s", ext, warnings)
        try:
            return parse_text(text, file_type=ext, page_count=pages, warnings=warnings)
        except Exception as exc:
            logger.warning("resume_structure_failed ext=%s", ext, exc_info=True)
            return parse_text("", file_type=ext, warnings=[*warnings, f"Structure extraction failed: {exc}"])


_default_parser: Parser = DocumentParser()


def get_parser() -> Parser:
    return _default_parser
