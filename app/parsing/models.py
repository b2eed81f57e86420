from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class ContactInfo(BaseModel):
    email: str | None = None
    phone: str | None = None
    linkedin: str | None = None
    github: str | None = None
    website: str | None = None
    location: str | None = None

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class ExperienceEntry(BaseModel):
    title: str
    description: list[str] = Field(default_factory=list)


class EducationEntry(BaseModel):
    degree: str
    details: list[str] = Field(default_factory=list)


class ResumeSections(BaseModel):
    contact: ContactInfo = Field(default_factory=ContactInfo)
    summary: str = ""
    experience: list[ExperienceEntry] = Field(default_factory=list)
    education: list[EducationEntry] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    order: list[str] = Field(default_factory=list)


class ParsedResume(BaseModel):
    text: str = ""
    sections: ResumeSections = Field(default_factory=ResumeSections)
    bullet_points: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    parsing_warnings: list[str] = Field(default_factory=list)

    @field_validator("text")
    @classmethod
    def _normalize_newlines(cls, value: str) -> str:
        return value.replace("\r\n", "\n").replace("\r", "\n")

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()
