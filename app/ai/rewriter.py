from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Sequence

from openai import OpenAI, OpenAIError

from app.ai.types import Rewriter
from app.core.config import settings
from app.core.errors import ApiError

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 12000

_BULLETS_PROMPT = (
    "You rewrite resume bullet points so they pass applicant tracking systems. "
    "Start each with a strong action verb, keep facts unchanged and quantify impact where the "
    'original implies it. Reply as JSON: {"bullets": [{"original": str, "improved": str, "reason": str}]}.'
)
_SUMMARY_PROMPT = (
    "You rewrite professional summaries for resumes. Keep it under 80 words and factual. "
    'Reply as JSON: {"improved": str, "keywords": [str], "reason": str}.'
)
_COVER_LETTER_PROMPT = (
    "You write concise, specific cover letters from a resume and a job description. "
    'Use only facts present in the resume. Reply as JSON: {"coverLetter": str}.'
)
_SECTION_PROMPT = (
    "You improve one section of a resume for clarity and ATS keyword coverage. "
    'Reply as JSON: {"improved": str, "changes": [str]}.'
)


class AIUnavailable(ApiError):
    def __init__(self, message: str = "AI rewriting is not available right now."):
        super().__init__("AI_UNAVAILABLE", message, status_code=503)


class AIServiceError(ApiError):
    def __init__(self, message: str = "The AI service returned an unusable response."):
        super().__init__("AI_SERVICE_ERROR", message, status_code=502)


def _clip(text: str) -> str:
    return (text or "").strip()[:MAX_INPUT_CHARS]


class OpenAIRewriter:
    def __init__(self, client: OpenAI, model: str, temperature: float = 0.4):
        self._client = client
        self._model = model
        self._temperature = temperature

    def _complete(self, system_prompt: str, user_prompt: str, *, max_tokens: int = 900) -> dict[str, Any]:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self._temperature,
                response_format={"type": "json_object"},
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            logger.warning("rewriter_request_failed model=%s: %s", self._model, exc)
            raise AIServiceError() from exc

        content = response.choices[0].message.content if response.choices else ""
        if not content:
            raise AIServiceError()
        try:
            payload = json.loads(content)
        except ValueError as exc:
            raise AIServiceError() from exc
        if not isinstance(payload, dict):
            raise AIServiceError()
        return payload

    def rewrite_bullets(self, bullets: Sequence[str], *, job_title: str | None = None) -> list[dict[str, Any]]:
        lines = "\n".join(f"- {_clip(item)}" for item in bullets if item and item.strip())
        prompt = f"Target role: {job_title or 'not specified'}\nBullet points:\n{lines}"
        payload = self._complete(_BULLETS_PROMPT, prompt)
        rewritten = payload.get("bullets")
        if not isinstance(rewritten, list):
            raise AIServiceError()
        out = []
        for item in rewritten:
            if isinstance(item, dict) and item.get("improved"):
                out.append(
                    {
                        "original": str(item.get("original") or ""),
                        "improved": str(item["improved"]),
                        "reason": str(item.get("reason") or ""),
                    }
                )
        return out

    def rewrite_summary(self, summary: str, *, job_title: str | None = None) -> dict[str, Any]:
        prompt = f"Target role: {job_title or 'not specified'}\nCurrent summary:\n{_clip(summary)}"
        payload = self._complete(_SUMMARY_PROMPT, prompt, max_tokens=500)
        improved = str(payload.get("improved") or "").strip()
        if not improved:
            raise AIServiceError()
        keywords = payload.get("keywords") if isinstance(payload.get("keywords"), list) else []
        return {
            "original": summary,
            "improved": improved,
            "keywords": [str(k) for k in keywords],
            "reason": str(payload.get("reason") or ""),
        }

    def generate_cover_letter(self, resume_text: str, job_description: str, *, company: str | None = None) -> str:
        prompt = (
            f"Company: {company or 'the hiring company'}\n"
            f"Job description:\n{_clip(job_description)}\n\nResume:\n{_clip(resume_text)}"
        )
        payload = self._complete(_COVER_LETTER_PROMPT, prompt, max_tokens=1200)
        letter = str(payload.get("coverLetter") or "").strip()
        if not letter:
            raise AIServiceError()
        return letter

    def improve_section(self, section: str, content: str) -> dict[str, Any]:
        prompt = f"Section: {section}\nContent:\n{_clip(content)}"
        payload = self._complete(_SECTION_PROMPT, prompt)
        improved = str(payload.get("improved") or "").strip()
        if not improved:
            raise AIServiceError()
        changes = payload.get("changes") if isinstance(payload.get("changes"), list) else []
        return {"section": section, "original": content, "improved": improved, "changes": [str(c) for c in changes]}


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def rewriter_enabled() -> bool:
    if not settings.ai_rewrite_enabled:
        return False
    key = (settings.openai_api_key or "").strip()
    return bool(key) and not _looks_like_placeholder(key)


@lru_cache(maxsize=1)
def _default_rewriter() -> OpenAIRewriter:
    client = OpenAI(
        api_key=(settings.openai_api_key or "").strip(),
        timeout=float(settings.ai_timeout_s),
        max_retries=2,
    )
    return OpenAIRewriter(client, settings.ai_model)


_override: Rewriter | None = None


def set_rewriter(rewriter: Rewriter | None) -> None:
    global _override
    _override = rewriter


def get_rewriter() -> Rewriter | None:
    if _override is not None:
        return _override
    if not rewriter_enabled():
        return None
    return _default_rewriter()


def require_rewriter() -> Rewriter:
    rewriter = get_rewriter()
    if rewriter is None:
        raise AIUnavailable()
    return rewriter
