"""
Pydantic schemas for API request/response validation.
"""
from app.schemas.common import (
    BaseSchema,
    IDSchema,
    PaginatedResponse,
)
from app.schemas.project import ProjectCreate, ProjectCreatedResponse, ProjectResponse
from app.schemas.audit import (
    AuditActionResponse,
    AuditLogResponse,
    AuditResponse,
    StartAuditRequest,
)
from app.schemas.crawl import (
    BacklinkResponse,
    BacklinksResponse,
    DedupRequest,
    DedupResponse,
    ProjectBacklinkResponse,
)
from app.schemas.queue import (
    AutoStopResponse,
    CompletionSweepResponse,
    ForceStopRequest,
    QueueCleanupRequest,
    QueueCleanupResponse,
)

__all__ = [
    "BaseSchema",
    "IDSchema",
    "PaginatedResponse",
    "ProjectCreate",
    "ProjectResponse",
    "ProjectCreatedResponse",
    "AuditActionResponse",
    "AuditLogResponse",
    "AuditResponse",
    "StartAuditRequest",
    "BacklinkResponse",
    "BacklinksResponse",
    "ProjectBacklinkResponse",
    "DedupRequest",
    "DedupResponse",
    "AutoStopResponse",
    "CompletionSweepResponse",
    "ForceStopRequest",
    "QueueCleanupRequest",
    "QueueCleanupResponse",
]
