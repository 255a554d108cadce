"""
Project schemas.
"""
from datetime import datetime
from uuid import UUID

from pydantic import Field, HttpUrl, field_validator

from app.schemas.audit import AuditResponse
from app.schemas.common import BaseSchema


class ProjectCreate(BaseSchema):
    """Schema for creating a project."""

    name: str = Field(..., min_length=1, max_length=255)
    base_url: HttpUrl

    @field_validator("base_url")
    @classmethod
    def http_only(cls, v: HttpUrl) -> HttpUrl:
        if v.scheme not in ("http", "https"):
            raise ValueError("base_url must be http or https")
        return v


class ProjectResponse(BaseSchema):
    """Schema for project response."""

    id: UUID
    name: str
    base_url: str
    domain: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ProjectCreatedResponse(BaseSchema):
    """Created project with its first pending audit."""

    project: ProjectResponse
    audit: AuditResponse
