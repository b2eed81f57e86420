from __future__ import annotations

import re
from collections import Counter
from functools import lru_cache
from typing import Any

from app.core.config.scoring import get_scoring_list, get_scoring_value
from app.core.errors import ValidationFailed

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9+#./-]*")
_EXPERIENCE_RES = (
    re.compile(r"(\d+)\+?\s*years?\s+(?:of\s+)?experience", re.IGNORECASE),
    re.compile(r"experience\s+of\s+(\d+)\+?\s*years?", re.IGNORECASE),
    re.compile(r"minimum\s+(?:of\s+)?(\d+)\s*years?", re.IGNORECASE),
)


@lru_cache(maxsize=1)
def _skill_patterns() -> tuple[re.Pattern[str], ...]:
    raw = get_scoring_value("matching.skill_patterns", []) or []
    return tuple(re.compile(str(pattern), re.IGNORECASE) for pattern in raw)


@lru_cache(maxsize=1)
def _stop_words() -> frozenset[str]:
    return frozenset(get_scoring_list("matching.stop_words"))


def extract_skills(text: str) -> list[str]:
    found: list[str] = []
    for pattern in _skill_patterns():
        for match in pattern.finditer(text or ""):
            skill = match.group(0).lower().strip()
            if skill not in found:
                found.append(skill)
    return found


def extract_keywords(text: str) -> Counter[str]:
    """Lowercase keyword frequencies, stop words and short noise removed."""
    lowered = (text or "").lower()
    short_skills = {skill for skill in extract_skills(lowered) if len(skill) <= 2}
    stop_words = _stop_words()
    counts: Counter[str] = Counter()
    for raw in _TOKEN_RE.findall(lowered):
        token = raw.rstrip(".-/")
        if not token or token in stop_words:
            continue
        if len(token) > 2 or token in short_skills:
            counts[token] += 1
    return counts


def extract_experience(text: str) -> dict[str, Any]:
    years = [int(match.group(1)) for pattern in _EXPERIENCE_RES for match in pattern.finditer(text or "")]
    min_years = min(years) if years else None
    return {"minYears": min_years, "found": min_years is not None}


def extract_education(text: str) -> list[str]:
    lowered = (text or "").lower()
    return [keyword for keyword in get_scoring_list("matching.education_keywords") if keyword in lowered]


def keyword_importance(word: str, jd_frequency: int, skills: set[str]) -> float:
    score = float(jd_frequency)
    if word in skills:
        score *= float(get_scoring_value("matching.skill_boost", 2.0))
    if jd_frequency > int(get_scoring_value("matching.repeat_threshold", 3)):
        score *= float(get_scoring_value("matching.repeat_boost", 1.5))
    return round(score, 1)


def generate_match_suggestions(match_percentage: int, missing: list[dict[str, Any]]) -> list[dict[str, str]]:
    suggestions: list[dict[str, str]] = []
    if match_percentage < 70:
        suggestions.append(
            {
                "priority": "critical",
                "category": "keywords",
                "message": "Your resume match is below 70%. Consider adding more relevant keywords from the job description.",
                "action": "Review the missing keywords list and incorporate relevant ones into your resume.",
            }
        )
    if len(missing) > 10:
        top_missing = ", ".join(item["word"] for item in missing[:5])
        suggestions.append(
            {
                "priority": "important",
                "category": "keywords",
                "message": f"You're missing several important keywords: {top_missing}",
                "action": "Add these keywords naturally in your experience and skills sections.",
            }
        )
    if 70 <= match_percentage < 85:
        suggestions.append(
            {
                "priority": "suggested",
                "category": "optimization",
                "message": "Good match! You can improve further by emphasizing matched keywords.",
                "action": "Increase the frequency of matched keywords in your resume where relevant.",
            }
        )
    elif match_percentage >= 85:
        suggestions.append(
            {
                "priority": "suggested",
                "category": "optimization",
                "message": "Excellent match! Your resume aligns well with the job description.",
                "action": "Review the formatting and ensure your resume is ATS-friendly.",
            }
        )
    return suggestions


def match_job_description(resume_text: str, job_description: str) -> dict[str, Any]:
    """Compare résumé keyword coverage against a job description.

    The match percentage is importance-weighted coverage of the JD keywords:
    each keyword contributes ``importance * min(resume_freq / jd_freq, 1)``.
    """
    jd_text = job_description or ""
    max_chars = int(get_scoring_value("matching.max_jd_chars", 10000))
    if not jd_text.strip():
        raise ValidationFailed("VALIDATION_ERROR", "Job description is required")
    if len(jd_text) > max_chars:
        raise ValidationFailed(
            "JD_TOO_LONG",
            f"Job description exceeds maximum length of {max_chars:,} characters",
            maxLength=max_chars,
            length=len(jd_text),
        )

    jd_keywords = extract_keywords(jd_text)
    resume_keywords = extract_keywords(resume_text)
    skills = extract_skills(jd_text)
    skill_set = set(skills)

    matched: list[dict[str, Any]] = []
    missing: list[dict[str, Any]] = []
    total_weight = 0.0
    matched_weight = 0.0
    for word, jd_frequency in jd_keywords.items():
        importance = keyword_importance(word, jd_frequency, skill_set)
        total_weight += importance
        resume_frequency = resume_keywords.get(word, 0)
        if resume_frequency:
            matched_weight += importance * min(resume_frequency / jd_frequency, 1.0)
            matched.append(
                {
                    "word": word,
                    "resumeFrequency": resume_frequency,
                    "jdFrequency": jd_frequency,
                    "importance": importance,
                }
            )
        else:
            missing.append({"word": word, "frequency": jd_frequency, "importance": importance})

    percentage = round(matched_weight / total_weight * 100) if total_weight > 0 else 0
    percentage = max(0, min(100, int(percentage)))

    matched.sort(key=lambda item: (-item["importance"], item["word"]))
    missing.sort(key=lambda item: (-item["importance"], item["word"]))
    missing = missing[: int(get_scoring_value("matching.max_missing", 20))]

    return {
        "matchPercentage": percentage,
        "matchedKeywords": matched,
        "missingKeywords": missing,
        "suggestions": generate_match_suggestions(percentage, missing),
        "jdRequirements": {
            "totalKeywords": len(jd_keywords),
            "skills": skills,
            "experience": extract_experience(jd_text),
            "education": extract_education(jd_text),
        },
    }
