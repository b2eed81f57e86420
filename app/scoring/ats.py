from __future__ import annotations

import re
from functools import lru_cache
from typing import Any

from app.core.config.scoring import get_scoring_list, get_scoring_value
from app.parsing.models import ParsedResume

CATEGORY_MAX = {
    "structure": 25,
    "keywords": 30,
    "readability": 25,
    "formatting": 20,
}

_HEADING_RE = re.compile(
    r"^(contact|summary|objective|experience|work history|education|skills|certifications)\b",
    re.IGNORECASE,
)
_ACHIEVEMENT_RE = re.compile(
    r"\d+%|\$\d+|\d+\+|increased by \d+|reduced by \d+|saved \d+",
    re.IGNORECASE,
)
_BULLET_LINE_RE = re.compile(r"^\s*[•\-*◦▪]\s", re.MULTILINE)
_DATE_RES = (
    re.compile(r"\d{4}\s*[-–]\s*\d{4}"),
    re.compile(r"[A-Za-z]+\s+\d{4}"),
    re.compile(r"\d{1,2}/\d{4}"),
)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_SPECIAL_CHAR_RE = re.compile(r"[^\w\s\-.,;:()\[\]/]")
_UPPER_HEADING_RE = re.compile(r"^[A-Z\s]+$")
_TITLE_HEADING_RE = re.compile(r"^[A-Z][a-z\s]+$")
_SYLLABLE_SUFFIX_RE = re.compile(r"(?:[^laeiouy]es|ed|[^laeiouy]e)$")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]{1,2}")


def _policy_int(path: str, default: int) -> int:
    return int(get_scoring_value(path, default))


def _policy_range(path: str, default: tuple[float, float]) -> tuple[float, float]:
    value = get_scoring_value(path, list(default))
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return default
    return float(value[0]), float(value[1])


def _structure_points(key: str, default: int) -> int:
    return _policy_int(f"structure.points.{key}", default)


def _clamp(value: float, max_value: int) -> int:
    return max(0, min(int(round(value)), max_value))


@lru_cache(maxsize=None)
def _term_pattern(term: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(term)}(?![a-z0-9])")


def _count_terms(text_lower: str, terms: tuple[str, ...]) -> int:
    return sum(1 for term in terms if _term_pattern(term).search(text_lower))


def count_word_syllables(word: str) -> int:
    letters = re.sub(r"[^a-z]", "", word.lower())
    if len(letters) <= 3:
        return 1
    letters = _SYLLABLE_SUFFIX_RE.sub("", letters)
    letters = re.sub(r"^y", "", letters)
    groups = _VOWEL_GROUP_RE.findall(letters)
    return len(groups) if groups else 1


def date_format(value: str) -> str:
    if _DATE_RES[0].search(value):
        return "year-range"
    if _DATE_RES[1].search(value):
        return "month-year"
    if _DATE_RES[2].search(value):
        return "numeric"
    return "unknown"


def analyze_structure(parsed: ParsedResume) -> tuple[int, dict[str, Any]]:
    sections = parsed.sections
    details = {
        "hasContact": not sections.contact.is_empty(),
        "hasSummary": bool(sections.summary.strip()),
        "hasExperience": bool(sections.experience),
        "hasEducation": bool(sections.education),
        "hasSkills": bool(sections.skills),
        "properHeadings": False,
        "logicalOrder": False,
    }
    score = 0
    score += _structure_points("contact", 4) if details["hasContact"] else 0
    score += _structure_points("summary", 3) if details["hasSummary"] else 0
    score += _structure_points("experience", 6) if details["hasExperience"] else 0
    score += _structure_points("education", 4) if details["hasEducation"] else 0
    score += _structure_points("skills", 4) if details["hasSkills"] else 0

    if any(_HEADING_RE.match(line.strip()) for line in parsed.text.split("\n")):
        details["properHeadings"] = True
        score += _structure_points("headings", 2)

    ideal = list(get_scoring_list("structure.ideal_order")) or ["contact", "summary", "experience", "education", "skills"]
    present = (["contact"] if details["hasContact"] else []) + [name for name in sections.order if name in ideal]
    ordered_pairs = sum(
        1 for current, following in zip(present, present[1:]) if ideal.index(current) < ideal.index(following)
    )
    if ordered_pairs >= 2:
        details["logicalOrder"] = True
        score += _structure_points("order", 2)

    return _clamp(score, CATEGORY_MAX["structure"]), details


def analyze_keywords(parsed: ParsedResume) -> tuple[int, dict[str, Any]]:
    text = parsed.text.lower()
    details = {
        "actionVerbCount": _count_terms(text, get_scoring_list("keywords.action_verbs")),
        "industryKeywordCount": _count_terms(text, get_scoring_list("keywords.industry")),
        "technicalSkillCount": _count_terms(text, get_scoring_list("keywords.technical")),
        "quantifiableAchievements": len(_ACHIEVEMENT_RE.findall(text)),
        "keywordDensity": 0.0,
    }

    def scaled(count: int, name: str, default_points: int, default_full: int) -> float:
        max_points = _policy_int(f"keywords.{name}_points", default_points)
        full_at = max(1, _policy_int(f"keywords.{name}_full_at", default_full))
        return min(count / full_at * max_points, max_points)

    score = 0.0
    score += scaled(details["actionVerbCount"], "action_verbs", 8, 10)
    score += scaled(details["industryKeywordCount"], "industry", 8, 8)
    score += scaled(details["technicalSkillCount"], "technical", 7, 8)
    score += scaled(details["quantifiableAchievements"], "achievements", 5, 5)

    word_count = len(text.split())
    total_terms = details["actionVerbCount"] + details["industryKeywordCount"] + details["technicalSkillCount"]
    density = (total_terms / word_count) * 100 if word_count else 0.0
    details["keywordDensity"] = round(density, 2)
    optimal_low, optimal_high = _policy_range("keywords.density_optimal", (2.0, 5.0))
    acceptable_low, acceptable_high = _policy_range("keywords.density_acceptable", (1.0, 6.0))
    if optimal_low <= density <= optimal_high:
        score += 2
    elif acceptable_low < density < acceptable_high:
        score += 1

    return _clamp(score, CATEGORY_MAX["keywords"]), details


def analyze_readability(parsed: ParsedResume) -> tuple[int, dict[str, Any]]:
    text = parsed.text
    sentences = [item for item in _SENTENCE_SPLIT_RE.split(text) if item.strip()]
    words = text.split()
    details: dict[str, Any] = {
        "fleschScore": 0.0,
        "avgSentenceLength": 0.0,
        "avgWordLength": 0.0,
        "complexWordPercentage": 0.0,
        "readabilityLevel": "",
    }
    if not sentences or not words:
        return 0, details

    syllables = sum(count_word_syllables(word) for word in words)
    avg_sentence = len(words) / len(sentences)
    flesch = 206.835 - 1.015 * avg_sentence - 84.6 * (syllables / len(words))
    flesch = max(0.0, min(100.0, flesch))
    details["avgSentenceLength"] = round(avg_sentence, 2)
    details["avgWordLength"] = round(len(re.sub(r"\s", "", text)) / len(words), 2)
    details["fleschScore"] = round(flesch, 2)

    score = 0
    fallback = get_scoring_value("readability.flesch_fallback", {}) or {}
    band_points = int(fallback.get("points", 5))
    details["readabilityLevel"] = str(fallback.get("label", "Needs Improvement"))
    for band in get_scoring_value("readability.flesch_bands", []) or []:
        if float(band["min"]) <= flesch <= float(band["max"]):
            band_points = int(band["points"])
            details["readabilityLevel"] = str(band["label"])
            break
    score += band_points

    ideal_low, ideal_high = _policy_range("readability.sentence_length_ideal", (15, 20))
    ok_low, ok_high = _policy_range("readability.sentence_length_acceptable", (12, 25))
    if ideal_low <= avg_sentence <= ideal_high:
        score += 5
    elif ok_low <= avg_sentence <= ok_high:
        score += 3
    else:
        score += 1

    complex_words = sum(1 for word in words if count_word_syllables(word) >= 3)
    complex_pct = complex_words / len(words) * 100
    details["complexWordPercentage"] = round(complex_pct, 2)
    if complex_pct <= _policy_int("readability.complex_word_good", 15):
        score += 5
    elif complex_pct <= _policy_int("readability.complex_word_acceptable", 25):
        score += 3
    else:
        score += 1

    return _clamp(score, CATEGORY_MAX["readability"]), details


def analyze_formatting(parsed: ParsedResume) -> tuple[int, dict[str, Any]]:
    text = parsed.text
    details = {
        "hasBulletPoints": False,
        "hasConsistentDates": False,
        "hasConsistentFormatting": False,
        "properLength": False,
        "noSpecialCharacters": False,
    }
    if not text.strip():
        return 0, details

    score = 0
    if _BULLET_LINE_RE.search(text):
        details["hasBulletPoints"] = True
        score += _policy_int("formatting.bullets_points", 5)

    dates = [match.group(0) for pattern in _DATE_RES for match in pattern.finditer(text)]
    if len(dates) >= 2:
        first = date_format(dates[0])
        if all(date_format(item) == first for item in dates[1:]):
            details["hasConsistentDates"] = True
            score += _policy_int("formatting.dates_consistent_points", 5)
        else:
            score += _policy_int("formatting.dates_inconsistent_points", 2)

    lines = [line.strip() for line in text.split("\n") if line.strip()]
    heading_lines = [line for line in lines if _UPPER_HEADING_RE.match(line) or _TITLE_HEADING_RE.match(line)]
    if len(heading_lines) >= 3:
        details["hasConsistentFormatting"] = True
        score += _policy_int("formatting.headings_consistent_points", 4)
    elif heading_lines:
        score += _policy_int("formatting.headings_partial_points", 2)

    word_count = len(text.split())
    ideal_low, ideal_high = _policy_range("formatting.length_ideal", (300, 800))
    ok_low, ok_high = _policy_range("formatting.length_acceptable", (200, 1000))
    if ideal_low <= word_count <= ideal_high:
        details["properLength"] = True
        score += 3
    elif ok_low <= word_count <= ok_high:
        score += 2
    else:
        score += 1

    ratio = len(_SPECIAL_CHAR_RE.findall(text)) / len(text)
    if ratio < float(get_scoring_value("formatting.special_char_good", 0.01)):
        details["noSpecialCharacters"] = True
        score += 3
    elif ratio < float(get_scoring_value("formatting.special_char_acceptable", 0.02)):
        score += 2
    else:
        score += 1

    return _clamp(score, CATEGORY_MAX["formatting"]), details


def empty_score() -> dict[str, Any]:
    return {
        "total": 0,
        "structure": 0,
        "keywords": 0,
        "readability": 0,
        "formatting": 0,
        "breakdown": {"structure": {}, "keywords": {}, "readability": {}, "formatting": {}},
    }


def calculate_score(parsed: ParsedResume) -> dict[str, Any]:
    """Composite ATS score; every category is clamped to its cap and total is their sum."""
    if parsed.is_empty:
        return empty_score()

    structure, structure_details = analyze_structure(parsed)
    keywords, keyword_details = analyze_keywords(parsed)
    readability, readability_details = analyze_readability(parsed)
    formatting, formatting_details = analyze_formatting(parsed)
    return {
        "total": structure + keywords + readability + formatting,
        "structure": structure,
        "keywords": keywords,
        "readability": readability,
        "formatting": formatting,
        "breakdown": {
            "structure": structure_details,
            "keywords": keyword_details,
            "readability": readability_details,
            "formatting": formatting_details,
        },
    }
