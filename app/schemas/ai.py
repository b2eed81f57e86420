from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _AIRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    analysis_id: str | None = Field(default=None, alias="analysisId", max_length=64)


class BulletRewriteRequest(_AIRequest):
    bullet_points: list[str] = Field(alias="bulletPoints", min_length=1, max_length=20)
    job_title: str | None = Field(default=None, alias="jobTitle", max_length=120)


class SummaryRewriteRequest(_AIRequest):
    summary: str = Field(min_length=1, max_length=4000)
    job_title: str | None = Field(default=None, alias="jobTitle", max_length=120)


class CoverLetterRequest(_AIRequest):
    resume_text: str | None = Field(default=None, alias="resumeText", max_length=50000)
    job_description: str = Field(alias="jobDescription", min_length=1, max_length=10000)
    company_name: str | None = Field(default=None, alias="companyName", max_length=120)


class SectionImproveRequest(_AIRequest):
    section: str = Field(min_length=1, max_length=60)
    content: str = Field(min_length=1, max_length=12000)
