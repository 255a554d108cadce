"""
Audit schemas.
"""
from datetime import datetime
from uuid import UUID

from pydantic import Field

from app.models.audit import AuditLogCategory, AuditStatus
from app.schemas.common import BaseSchema, IDSchema


class AuditResponse(IDSchema):
    """Audit response. ``pages_crawled`` is the live crawl result count."""

    project_id: UUID
    status: AuditStatus
    seed_urls: list[str] | None = None
    skip_robots_check: bool
    pages_crawled: int
    pages_total: int
    started_at: datetime | None
    paused_at: datetime | None
    completed_at: datetime | None
    error_message: str | None
    created_at: datetime


class StartAuditRequest(BaseSchema):
    """Start audit request; both fields are optional."""

    seed_urls: list[str] | None = Field(default=None, max_length=10000)
    skip_robots_check: bool | None = None


class AuditActionResponse(BaseSchema):
    """Result of a lifecycle operation."""

    success: bool
    audit_id: str | None
    status: str | None
    message: str
    error: str | None = None
    pages_crawled: int = 0
    pages_total: int = 0
    details: dict = {}


class AuditLogResponse(IDSchema):
    """Audit diagnostic log entry."""

    audit_id: UUID
    category: AuditLogCategory
    message: str
    details: dict | None = None
    created_at: datetime
