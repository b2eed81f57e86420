from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class JobMatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    analysis_id: str = Field(alias="analysisId", min_length=1, max_length=64)
    # length cap is enforced by the matcher so the caller gets JD_TOO_LONG
    job_description: str = Field(alias="jobDescription")
