from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    slug: str
    repo: str
    branch: str
    language: str
    framework: str
    created_at: datetime
    updated_at: Optional[datetime]


class ProjectCreateRequest(BaseModel):
    slug: str = Field(..., min_length=1, max_length=120, pattern=r"^[A-Za-z0-9\-_.]+$")
    repo: str = Field(..., min_length=3, max_length=200, pattern=r"^[^/\s]+/[^/\s]+$")
    branch: str = Field(default="main", min_length=1, max_length=200)
    language: str = Field(..., min_length=1, max_length=64)
    framework: str = Field(..., min_length=1, max_length=64)


class ProjectUpdateRequest(BaseModel):
    repo: str | None = Field(default=None, min_length=3, max_length=200, pattern=r"^[^/\s]+/[^/\s]+$")
    branch: str | None = Field(default=None, min_length=1, max_length=200)
    language: str | None = Field(default=None, min_length=1, max_length=64)
    framework: str | None = Field(default=None, min_length=1, max_length=64)
