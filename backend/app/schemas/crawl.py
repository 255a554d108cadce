"""
Crawl result schemas: backlinks and deduplication.
"""
from datetime import datetime
from typing import Literal
from uuid import UUID

from app.models.backlink import DiscoveredVia
from app.schemas.common import BaseSchema, IDSchema


class BacklinkResponse(BaseSchema):
    """One linking page for a crawled page."""

    source_page_id: UUID
    source_url: str
    source_project_id: UUID
    link_id: UUID
    anchor_text: str | None
    rel: str | None
    is_dofollow: bool
    is_sponsored: bool
    is_ugc: bool
    discovered_via: str
    discovered_at: datetime


class BacklinksResponse(BaseSchema):
    page_id: UUID
    url: str
    total: int
    backlinks: list[BacklinkResponse]


class ProjectBacklinkResponse(IDSchema):
    """A materialized backlink received by a project."""

    source_page_id: UUID
    link_id: UUID
    source_url: str
    target_url: str
    anchor_text: str | None
    link_position: int | None
    is_dofollow: bool
    is_sponsored: bool
    is_ugc: bool
    is_active: bool
    discovered_via: DiscoveredVia
    discovered_at: datetime
    last_seen_at: datetime


class DedupRequest(BaseSchema):
    """Deduplication request."""

    scope: Literal["audit", "global"] = "audit"
    audit_id: UUID | None = None


class DedupGroupResponse(BaseSchema):
    content_hash: str
    audit_id: str | None
    kept_id: str
    kept_url: str
    deleted: int


class DedupResponse(BaseSchema):
    """Deduplication report."""

    scope: str
    groups_processed: int
    urls_kept: int
    duplicates_deleted: int
    groups: list[DedupGroupResponse]
