from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from app.parsing.models import ParsedResume

PRIORITY_ORDER = {"critical": 0, "important": 1, "suggested": 2}
CRITICAL_TOTAL = 60

Details = dict[str, Any]


@dataclass(frozen=True)
class Rule:
    category: str
    title: str
    description: str
    impact: str
    action_items: tuple[str, ...]
    applies: Callable[[Details], bool]
    priority: str
    priority_when_critical: str | None = None

    def render(self, details: Details, is_critical: bool) -> dict[str, Any]:
        priority = self.priority_when_critical if is_critical and self.priority_when_critical else self.priority
        return {
            "category": self.category,
            "priority": priority,
            "title": self.title,
            "description": self.description.format(**{key: _fmt(value) for key, value in details.items()}),
            "impact": self.impact,
            "actionItems": list(self.action_items),
        }


def _fmt(value: Any) -> Any:
    return round(value) if isinstance(value, float) else value


RULES: tuple[Rule, ...] = (
    Rule(
        category="structure",
        title="Add Contact Information",
        description="Your resume is missing contact information. Include your name, phone number, email, and location.",
        impact="high",
        action_items=(
            "Add your full name at the top of the resume",
            "Include a professional email address and phone number",
            "Include your city and state or country",
        ),
        applies=lambda d: not d.get("hasContact"),
        priority="critical",
    ),
    Rule(
        category="structure",
        title="Add Work Experience Section",
        description="Your resume lacks a clear work experience section, which is crucial for ATS systems.",
        impact="high",
        action_items=(
            'Create a dedicated "Work Experience" section',
            "List positions in reverse chronological order with company names, titles, and dates",
            "Add 3-5 bullet points describing responsibilities and achievements",
        ),
        applies=lambda d: not d.get("hasExperience"),
        priority="important",
        priority_when_critical="critical",
    ),
    Rule(
        category="structure",
        title="Add Education Section",
        description="Include your educational background to provide a complete professional profile.",
        impact="medium",
        action_items=(
            'Add an "Education" section',
            "List degrees with institution names and graduation dates",
        ),
        applies=lambda d: not d.get("hasEducation"),
        priority="important",
    ),
    Rule(
        category="structure",
        title="Add Skills Section",
        description="A dedicated skills section helps ATS systems identify your qualifications quickly.",
        impact="medium",
        action_items=(
            'Create a "Skills" or "Technical Skills" section',
            "List relevant hard skills, tools, and technologies",
        ),
        applies=lambda d: not d.get("hasSkills"),
        priority="important",
    ),
    Rule(
        category="structure",
        title="Add Professional Summary",
        description="A brief summary at the top helps ATS systems and recruiters quickly understand your value.",
        impact="low",
        action_items=(
            "Write a 2-3 sentence professional summary",
            "Highlight years of experience and key expertise",
        ),
        applies=lambda d: not d.get("hasSummary"),
        priority="suggested",
    ),
    Rule(
        category="structure",
        title="Use Standard Section Headings",
        description="ATS systems look for standard section headings. Use clear, conventional labels.",
        impact="medium",
        action_items=(
            'Use standard headings like "Work Experience", "Education", "Skills"',
            "Keep heading format consistent throughout",
        ),
        applies=lambda d: not d.get("properHeadings"),
        priority="suggested",
        priority_when_critical="important",
    ),
    Rule(
        category="structure",
        title="Reorganize Section Order",
        description="Follow a logical section order for better ATS parsing and readability.",
        impact="low",
        action_items=(
            "Start with contact information and an optional summary",
            "Place work experience next, then education and skills",
        ),
        applies=lambda d: not d.get("logicalOrder"),
        priority="suggested",
    ),
    Rule(
        category="keywords",
        title="Use More Action Verbs",
        description="Your resume contains only {actionVerbCount} action verbs. Aim for at least 10-15 strong action verbs.",
        impact="high",
        action_items=(
            "Start bullet points with strong action verbs",
            'Avoid weak phrasing like "responsible for" or "worked on"',
        ),
        applies=lambda d: d.get("actionVerbCount", 0) < 8,
        priority="important",
        priority_when_critical="critical",
    ),
    Rule(
        category="keywords",
        title="Include More Industry Keywords",
        description="Only {industryKeywordCount} industry keywords found. Add relevant terms from your field.",
        impact="high",
        action_items=(
            "Review job descriptions in your target role",
            "Naturally incorporate common industry terms and methodologies",
        ),
        applies=lambda d: d.get("industryKeywordCount", 0) < 5,
        priority="important",
        priority_when_critical="critical",
    ),
    Rule(
        category="keywords",
        title="Add Technical Skills",
        description="Only {technicalSkillCount} technical skills identified. List more specific tools and technologies.",
        impact="medium",
        action_items=(
            "List programming languages, software, and tools you use",
            "Add cloud platforms, databases, and frameworks",
        ),
        applies=lambda d: d.get("technicalSkillCount", 0) < 5,
        priority="important",
    ),
    Rule(
        category="keywords",
        title="Add Quantifiable Achievements",
        description="Only {quantifiableAchievements} quantifiable achievements found. Numbers make your impact concrete.",
        impact="medium",
        action_items=(
            "Add percentages, dollar amounts, or time savings",
            'Show scale, for example "managed $2M budget" or "served 500+ customers"',
        ),
        applies=lambda d: d.get("quantifiableAchievements", 0) < 3,
        priority="suggested",
        priority_when_critical="important",
    ),
    Rule(
        category="keywords",
        title="Increase Keyword Density",
        description="Your resume has low keyword density. Add more relevant terms naturally.",
        impact="low",
        action_items=("Incorporate relevant keywords into your descriptions without stuffing",),
        applies=lambda d: d.get("keywordDensity", 0) < 1.5,
        priority="suggested",
    ),
    Rule(
        category="keywords",
        title="Reduce Keyword Stuffing",
        description="Your keyword density is too high, which may appear unnatural to ATS systems.",
        impact="low",
        action_items=("Remove repetitive keywords and keep language natural",),
        applies=lambda d: d.get("keywordDensity", 0) > 6,
        priority="suggested",
    ),
    Rule(
        category="readability",
        title="Improve Readability",
        description="Your readability score is {fleschScore}/100. Simplify your language for better ATS parsing.",
        impact="medium",
        action_items=(
            "Use shorter sentences (15-20 words average)",
            "Break long paragraphs into bullet points",
        ),
        applies=lambda d: d.get("readabilityLevel") and d.get("fleschScore", 0) < 50,
        priority="suggested",
        priority_when_critical="important",
    ),
    Rule(
        category="readability",
        title="Add More Professional Language",
        description="Your resume may be too simple. Add more professional terminology.",
        impact="low",
        action_items=("Use industry-appropriate terminology and expand on accomplishments",),
        applies=lambda d: d.get("fleschScore", 0) > 80,
        priority="suggested",
    ),
    Rule(
        category="readability",
        title="Shorten Sentences",
        description="Average sentence length is {avgSentenceLength} words. Aim for 15-20 words.",
        impact="medium",
        action_items=("Break long sentences into two shorter ones", "Focus on one idea per sentence"),
        applies=lambda d: d.get("avgSentenceLength", 0) > 25,
        priority="important",
    ),
    Rule(
        category="readability",
        title="Expand Descriptions",
        description="Your sentences are very short. Add more detail to your accomplishments.",
        impact="low",
        action_items=("Explain the impact of your work", "Combine related short sentences"),
        applies=lambda d: d.get("readabilityLevel") and d.get("avgSentenceLength", 0) < 12,
        priority="suggested",
    ),
    Rule(
        category="readability",
        title="Simplify Vocabulary",
        description="{complexWordPercentage}% of words are complex. Aim for under 20%.",
        impact="low",
        action_items=("Replace complex words with simpler synonyms",),
        applies=lambda d: d.get("complexWordPercentage", 0) > 25,
        priority="suggested",
    ),
    Rule(
        category="formatting",
        title="Use Bullet Points",
        description="Your resume lacks bullet points. ATS systems parse bullet-pointed lists more effectively.",
        impact="high",
        action_items=(
            "Convert paragraphs to bullet points using simple symbols",
            "Start each bullet with an action verb",
        ),
        applies=lambda d: not d.get("hasBulletPoints"),
        priority="important",
        priority_when_critical="critical",
    ),
    Rule(
        category="formatting",
        title="Standardize Date Formatting",
        description="Use consistent date formatting throughout your resume.",
        impact="medium",
        action_items=('Choose one format such as "Jan 2020 - Dec 2023" and use it everywhere',),
        applies=lambda d: not d.get("hasConsistentDates"),
        priority="important",
    ),
    Rule(
        category="formatting",
        title="Use Consistent Heading Styles",
        description="Section headings should share one capitalisation style so they are easy to detect.",
        impact="low",
        action_items=("Format every section heading the same way",),
        applies=lambda d: not d.get("hasConsistentFormatting"),
        priority="suggested",
    ),
    Rule(
        category="formatting",
        title="Adjust Resume Length",
        description="Aim for 300-800 words so your resume is complete but concise.",
        impact="low",
        action_items=("Trim older or less relevant roles, or expand thin sections",),
        applies=lambda d: not d.get("properLength"),
        priority="suggested",
    ),
    Rule(
        category="formatting",
        title="Remove Special Characters",
        description="Decorative symbols and icons can confuse ATS parsers.",
        impact="low",
        action_items=("Replace icons and decorative symbols with plain text",),
        applies=lambda d: not d.get("noSpecialCharacters"),
        priority="suggested",
    ),
)


def generate_recommendations(score: dict[str, Any], parsed: ParsedResume | None = None) -> list[dict[str, Any]]:
    """Turn failing score checks into prioritised, actionable recommendations."""
    if parsed is not None and parsed.is_empty:
        return [
            {
                "category": "structure",
                "priority": "critical",
                "title": "Resume Text Could Not Be Read",
                "description": "We could not extract text from your file. Upload a text-based PDF or DOCX instead of a scanned image.",
                "impact": "high",
                "actionItems": ["Export your resume directly from your editor as PDF or DOCX"],
            }
        ]

    is_critical = int(score.get("total", 0)) < CRITICAL_TOTAL
    breakdown = score.get("breakdown", {})
    recommendations = [
        rule.render(breakdown.get(rule.category, {}), is_critical)
        for rule in RULES
        if rule.applies(breakdown.get(rule.category, {}))
    ]
    recommendations.sort(key=lambda item: PRIORITY_ORDER[item["priority"]])
    return recommendations
