from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TierUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tier: Literal["free", "premium", "admin"]
    subscription_status: Literal["active", "cancelled", "expired"] = Field(
        default="active", alias="subscriptionStatus"
    )
    reason: str | None = Field(default=None, max_length=500)
