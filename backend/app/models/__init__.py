"""
SQLAlchemy models for the SEO crawler.
"""
from app.models.base import Base, BaseModel
from app.models.project import Project
from app.models.audit import (
    Audit,
    AuditLog,
    AuditLogCategory,
    AuditStatus,
    RUNNING_STATUSES,
    TERMINAL_STATUSES,
)
from app.models.domain import Domain
from app.models.crawl import CrawlResult, Heading, Image, Issue, IssueSeverity, Link, OgTag
from app.models.backlink import Backlink, DiscoveredVia

__all__ = [
    "Base",
    "BaseModel",
    "Project",
    "Audit",
    "AuditLog",
    "AuditLogCategory",
    "AuditStatus",
    "RUNNING_STATUSES",
    "TERMINAL_STATUSES",
    "Domain",
    "CrawlResult",
    "Heading",
    "Image",
    "Issue",
    "IssueSeverity",
    "Link",
    "OgTag",
    "Backlink",
    "DiscoveredVia",
]
