"""
Backlink model: a link observed anywhere that targets a project's page.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.models.base import Base, BaseModel, utcnow


class DiscoveredVia(str, PyEnum):
    CRAWL = "crawl"
    GOOGLE = "google"
    BING = "bing"


class Backlink(Base, BaseModel):
    """Backlink metadata for a Link.

    ``project_id`` is the project receiving the link, which may differ from
    the project that owns the source page.
    """

    __tablename__ = "backlinks"
    __table_args__ = (
        UniqueConstraint("project_id", "source_page_id", "link_id", name="uq_backlinks_project_source_link"),
    )

    project_id = Column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_page_id = Column(
        UUID(as_uuid=True),
        ForeignKey("crawl_results.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    link_id = Column(
        UUID(as_uuid=True),
        ForeignKey("links.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_url = Column(Text, nullable=False, index=True)
    target_url = Column(Text, nullable=False, index=True)
    anchor_text = Column(Text, nullable=True)
    is_dofollow = Column(Boolean, default=True, nullable=False)
    is_sponsored = Column(Boolean, default=False, nullable=False)
    is_ugc = Column(Boolean, default=False, nullable=False)
    discovered_via = Column(Enum(DiscoveredVia), default=DiscoveredVia.CRAWL, nullable=False)
    discovered_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_seen_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    link_position = Column(Integer, nullable=True)

    # Relationships
    project = relationship("Project", back_populates="backlinks")

    def __repr__(self) -> str:
        return f"<Backlink {self.source_url[:40]} -> {self.target_url[:40]}>"
