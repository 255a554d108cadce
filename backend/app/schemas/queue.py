"""
Crawl queue and maintenance schemas.
"""
from uuid import UUID

from pydantic import Field

from app.schemas.common import BaseSchema


class ForceStopRequest(BaseSchema):
    """Force stop request; without an audit id every audit's queued jobs are removed."""

    audit_id: UUID | None = None


class QueueCleanupRequest(BaseSchema):
    """Ages in seconds; defaults come from settings."""

    completed_age_seconds: float | None = Field(default=None, ge=0)
    failed_age_seconds: float | None = Field(default=None, ge=0)


class QueueCleanupResponse(BaseSchema):
    completed: int
    failed: int


class CompletionSweepResponse(BaseSchema):
    checked: int
    completed: int
    audits: dict[str, str]


class AutoStopResponse(BaseSchema):
    stopped: int
    audit_ids: list[str]
