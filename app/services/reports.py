from __future__ import annotations

import hashlib
import html
import io
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.pdfgen import canvas
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.core.config import settings
from app.core.errors import NotFound
from app.db.analyses import Analysis, set_report, set_report_url
from app.scoring.ats import CATEGORY_MAX
from app.storage.object_store import ObjectStore, generate_storage_key, get_object_store

logger = logging.getLogger(__name__)

WATERMARKED_TIERS = {"anonymous", "free"}
_ACCENT = colors.HexColor("#1f4e79")
_MUTED = colors.HexColor("#6b7280")
_LINE = colors.HexColor("#d1d5db")
_CATEGORY_LABELS = {
    "structure": "Structure",
    "keywords": "Keywords",
    "readability": "Readability",
    "formatting": "Formatting",
}


def _score_band(total: int) -> str:
    if total >= 80:
        return "Excellent"
    if total >= 60:
        return "Good"
    if total >= 40:
        return "Fair"
    return "Needs Improvement"


def report_fingerprint(analysis: Analysis, tier: str) -> str:
    """Hash of everything the rendered PDF depends on."""
    payload = {
        "scores": [
            analysis.total_score,
            analysis.structure_score,
            analysis.keyword_score,
            analysis.readability_score,
            analysis.formatting_score,
        ],
        "recommendations": analysis.recommendations,
        "jdMatch": analysis.jd_match,
        "aiSuggestions": analysis.ai_suggestions,
        "watermark": tier in WATERMARKED_TIERS,
    }
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _styles() -> dict[str, ParagraphStyle]:
    sample = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("ReportTitle", parent=sample["Title"], textColor=_ACCENT, fontSize=20, spaceAfter=4),
        "meta": ParagraphStyle("ReportMeta", parent=sample["Normal"], textColor=_MUTED, fontSize=9),
        "section": ParagraphStyle(
            "ReportSection", parent=sample["Heading2"], textColor=_ACCENT, fontSize=13, spaceBefore=10, spaceAfter=4
        ),
        "body": ParagraphStyle("ReportBody", parent=sample["Normal"], fontSize=10, leading=13),
        "bullet": ParagraphStyle("ReportBullet", parent=sample["Normal"], fontSize=9.5, leading=12, leftIndent=12),
        "score": ParagraphStyle("ReportScore", parent=sample["Title"], fontSize=34, textColor=_ACCENT),
    }


def _draw_page(pdf: canvas.Canvas, doc: SimpleDocTemplate, watermark: bool) -> None:
    width, _height = A4
    if watermark:
        pdf.saveState()
        pdf.setFont("Helvetica-Bold", 48)
        pdf.setFillColor(colors.Color(0.6, 0.6, 0.6, alpha=0.15))
        pdf.translate(width / 2, 380)
        pdf.rotate(35)
        pdf.drawCentredString(0, 0, "FREE VERSION")
        pdf.restoreState()
    pdf.saveState()
    pdf.setStrokeColor(_LINE)
    pdf.setLineWidth(0.6)
    pdf.line(doc.leftMargin, 28, doc.leftMargin + doc.width, 28)
    pdf.setFont("Helvetica", 8)
    pdf.setFillColor(_MUTED)
    pdf.drawString(doc.leftMargin, 16, "ATS Resume Analysis Report")
    pdf.drawRightString(doc.leftMargin + doc.width, 16, f"Page {pdf.getPageNumber()}")
    pdf.restoreState()


def render_report_pdf(analysis: Analysis, tier: str) -> bytes:
    styles = _styles()
    output = io.BytesIO()
    doc = SimpleDocTemplate(
        output,
        pagesize=A4,
        leftMargin=44,
        rightMargin=44,
        topMargin=42,
        bottomMargin=40,
        title="ATS Resume Analysis Report",
        author="Resume ATS Analyzer",
    )

    story: list[Any] = [
        Paragraph("ATS Resume Analysis Report", styles["title"]),
        Paragraph(
            html.escape(f"{analysis.file_name} · analysed {analysis.created_at.strftime('%d %b %Y')}"),
            styles["meta"],
        ),
        HRFlowable(width="100%", color=_LINE, thickness=0.9, spaceBefore=4, spaceAfter=8),
        Paragraph(f"{analysis.total_score}/100", styles["score"]),
        Paragraph(html.escape(f"Overall rating: {_score_band(analysis.total_score)}"), styles["body"]),
        Paragraph("Score Breakdown", styles["section"]),
    ]

    rows: list[list[str]] = [["Category", "Score", "Maximum"]]
    for key, value in (
        ("structure", analysis.structure_score),
        ("keywords", analysis.keyword_score),
        ("readability", analysis.readability_score),
        ("formatting", analysis.formatting_score),
    ):
        rows.append([_CATEGORY_LABELS[key], str(value), str(CATEGORY_MAX[key])])
    table = Table(rows, colWidths=[doc.width * 0.5, doc.width * 0.25, doc.width * 0.25])
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), _ACCENT),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("GRID", (0, 0), (-1, -1), 0.5, _LINE),
                ("ALIGN", (1, 0), (-1, -1), "CENTER"),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
            ]
        )
    )
    story.append(table)

    if analysis.recommendations:
        story.append(Paragraph("Recommendations", styles["section"]))
        for item in analysis.recommendations:
            heading = f"[{item.get('priority', '').upper()}] {item.get('title', '')}"
            story.append(Paragraph(f"<b>{html.escape(heading)}</b>", styles["body"]))
            story.append(Paragraph(html.escape(str(item.get("description", ""))), styles["body"]))
            for action in item.get("actionItems", []):
                story.append(Paragraph(html.escape(str(action)), styles["bullet"], bulletText="• "))
            story.append(Spacer(1, 4))

    if analysis.jd_match:
        match = analysis.jd_match
        story.append(Paragraph("Job Description Match", styles["section"]))
        story.append(Paragraph(html.escape(f"Match: {match.get('matchPercentage', 0)}%"), styles["body"]))
        matched = ", ".join(item["word"] for item in match.get("matchedKeywords", [])[:15])
        missing = ", ".join(item["word"] for item in match.get("missingKeywords", [])[:15])
        if matched:
            story.append(Paragraph(html.escape(f"Matched keywords: {matched}"), styles["body"]))
        if missing:
            story.append(Paragraph(html.escape(f"Missing keywords: {missing}"), styles["body"]))

    if analysis.ai_suggestions:
        story.append(Paragraph("AI Suggestions", styles["section"]))
        for suggestion in analysis.ai_suggestions:
            text = suggestion.get("improved") or suggestion.get("text") or ""
            if text:
                story.append(Paragraph(html.escape(str(text)), styles["bullet"], bulletText="• "))

    watermark = tier in WATERMARKED_TIERS

    def on_page(pdf: canvas.Canvas, page_doc: SimpleDocTemplate) -> None:
        _draw_page(pdf, page_doc, watermark)

    doc.build(story, onFirstPage=on_page, onLaterPages=on_page)
    return output.getvalue()


def build_preview(analysis: Analysis) -> dict[str, Any]:
    by_priority: dict[str, int] = {"critical": 0, "important": 0, "suggested": 0}
    for item in analysis.recommendations:
        priority = item.get("priority")
        if priority in by_priority:
            by_priority[priority] += 1
    preview: dict[str, Any] = {
        "analysisId": analysis.id,
        "fileName": analysis.file_name,
        "createdAt": analysis.created_at.isoformat(),
        "overview": {"totalScore": analysis.total_score, "rating": _score_band(analysis.total_score)},
        "scores": [
            {"category": key, "label": label, "score": score, "maxScore": CATEGORY_MAX[key]}
            for key, label, score in (
                ("structure", _CATEGORY_LABELS["structure"], analysis.structure_score),
                ("keywords", _CATEGORY_LABELS["keywords"], analysis.keyword_score),
                ("readability", _CATEGORY_LABELS["readability"], analysis.readability_score),
                ("formatting", _CATEGORY_LABELS["formatting"], analysis.formatting_score),
            )
        ],
        "recommendations": analysis.recommendations,
        "recommendationSummary": by_priority,
        "jdMatch": analysis.jd_match,
        "aiSuggestions": analysis.ai_suggestions,
        "hasReport": bool(analysis.report_key),
    }
    return preview


def _report_ttl() -> timedelta:
    return timedelta(days=max(1, int(settings.report_url_ttl_days)))


def generate_report(
    analysis: Analysis,
    tier: str,
    *,
    now: datetime | None = None,
    store: ObjectStore | None = None,
) -> dict[str, Any]:
    """Return a download link for the analysis report, rendering only when content changed."""
    current = now or datetime.now(timezone.utc)
    target = store or get_object_store()
    fingerprint = report_fingerprint(analysis, tier)
    ttl = _report_ttl()

    if analysis.report_key and analysis.report_fingerprint == fingerprint:
        if analysis.report_url and analysis.report_expires_at and analysis.report_expires_at > current:
            return {
                "reportUrl": analysis.report_url,
                "expiresAt": analysis.report_expires_at.isoformat(),
                "cached": True,
                "regenerated": False,
            }
        url = target.signed_url(analysis.report_key, expires_in=int(ttl.total_seconds()))
        expires_at = current + ttl
        set_report_url(analysis.id, report_url=url, expires_at=expires_at)
        logger.info("report_link_refreshed analysis_id=%s", analysis.id)
        return {"reportUrl": url, "expiresAt": expires_at.isoformat(), "cached": False, "regenerated": False}

    pdf_bytes = render_report_pdf(analysis, tier)
    key = generate_storage_key(analysis.user_id, "pdf", prefix="reports")
    target.put_object(
        key,
        pdf_bytes,
        content_type="application/pdf",
        metadata={"uploadedAt": current.isoformat(), "analysisId": analysis.id},
    )
    url = target.signed_url(key, expires_in=int(ttl.total_seconds()))
    expires_at = current + ttl
    set_report(analysis.id, report_key=key, report_url=url, expires_at=expires_at, fingerprint=fingerprint)
    logger.info("report_rendered analysis_id=%s key=%s bytes=%s", analysis.id, key, len(pdf_bytes))
    return {"reportUrl": url, "expiresAt": expires_at.isoformat(), "cached": False, "regenerated": True}


def regenerate_link(analysis: Analysis, *, now: datetime | None = None, store: ObjectStore | None = None) -> dict[str, Any]:
    if not analysis.report_key:
        raise NotFound("Report has not been generated yet", code="REPORT_NOT_GENERATED")
    current = now or datetime.now(timezone.utc)
    target = store or get_object_store()
    ttl = _report_ttl()
    url = target.signed_url(analysis.report_key, expires_in=int(ttl.total_seconds()))
    expires_at = current + ttl
    set_report_url(analysis.id, report_url=url, expires_at=expires_at)
    return {"reportUrl": url, "expiresAt": expires_at.isoformat()}
