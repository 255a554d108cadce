"""
Crawl result models: one row per fetched URL plus its child collections.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.models.base import Base, BaseModel, UUIDMixin, utcnow


class CrawlResult(Base, BaseModel):
    """Fetched page data. Children are removed with it (ON DELETE CASCADE)."""

    __tablename__ = "crawl_results"
    __table_args__ = (
        Index("ix_crawl_results_audit_content_hash", "audit_id", "content_hash"),
        Index("ix_crawl_results_audit_normalized_url", "audit_id", "normalized_url"),
    )

    audit_id = Column(
        UUID(as_uuid=True),
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    domain_id = Column(
        UUID(as_uuid=True),
        ForeignKey("domains.id", ondelete="SET NULL"),
        nullable=True,
    )
    url = Column(Text, nullable=False)
    normalized_url = Column(Text, nullable=False, index=True)
    final_url = Column(Text, nullable=True)
    status_code = Column(Integer, nullable=True)
    content_type = Column(String(255), nullable=True)

    title = Column(Text, nullable=True)
    meta_description = Column(Text, nullable=True)
    meta_keywords = Column(Text, nullable=True)
    meta_robots = Column(String(255), nullable=True)
    canonical_url = Column(Text, nullable=True)
    language = Column(String(35), nullable=True)

    response_time_ms = Column(Integer, nullable=True)
    content_length = Column(Integer, nullable=True)
    redirect_chain = Column(JSONB, default=list)
    redirect_count = Column(Integer, default=0)
    http_headers = Column(JSONB, default=dict)
    structured_data = Column(JSONB, default=list)

    word_count = Column(Integer, default=0)
    content_hash = Column(String(64), nullable=True)
    completeness_score = Column(Float, nullable=True)
    h1_count = Column(Integer, default=0)
    h2_count = Column(Integer, default=0)
    h3_count = Column(Integer, default=0)
    internal_links_count = Column(Integer, default=0)
    external_links_count = Column(Integer, default=0)
    images_count = Column(Integer, default=0)
    images_with_alt_count = Column(Integer, default=0)
    extraction_errors = Column(JSONB, default=list)
    crawl_depth = Column(Integer, default=0)

    crawled_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    # Relationships
    audit = relationship("Audit", back_populates="crawl_results")
    headings = relationship(
        "Heading",
        back_populates="crawl_result",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Heading.position",
    )
    images = relationship(
        "Image",
        back_populates="crawl_result",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Image.position",
    )
    links = relationship(
        "Link",
        back_populates="crawl_result",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Link.position",
    )
    og_tags = relationship(
        "OgTag",
        back_populates="crawl_result",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )
    issues = relationship(
        "Issue",
        back_populates="crawl_result",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<CrawlResult {self.url[:50]} ({self.status_code})>"


class Heading(Base, UUIDMixin):
    __tablename__ = "headings"

    crawl_result_id = Column(
        UUID(as_uuid=True),
        ForeignKey("crawl_results.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    position = Column(Integer, nullable=False)

    crawl_result = relationship("CrawlResult", back_populates="headings")


class Image(Base, UUIDMixin):
    __tablename__ = "images"

    crawl_result_id = Column(
        UUID(as_uuid=True),
        ForeignKey("crawl_results.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    src = Column(Text, nullable=False)
    alt = Column(Text, nullable=True)
    title = Column(Text, nullable=True)
    width = Column(String(32), nullable=True)
    height = Column(String(32), nullable=True)
    position = Column(Integer, nullable=False)

    crawl_result = relationship("CrawlResult", back_populates="images")


class Link(Base, UUIDMixin):
    """Directed edge from a crawled page to an href."""

    __tablename__ = "links"

    crawl_result_id = Column(
        UUID(as_uuid=True),
        ForeignKey("crawl_results.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    href = Column(Text, nullable=False)
    normalized_href = Column(Text, nullable=False, index=True)
    text = Column(Text, nullable=True)
    rel = Column(String(255), nullable=True)
    is_external = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, nullable=False)

    crawl_result = relationship("CrawlResult", back_populates="links")


class OgTag(Base, UUIDMixin):
    __tablename__ = "og_tags"

    crawl_result_id = Column(
        UUID(as_uuid=True),
        ForeignKey("crawl_results.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    image = Column(Text, nullable=True)
    type = Column(String(100), nullable=True)
    url = Column(Text, nullable=True)

    crawl_result = relationship("CrawlResult", back_populates="og_tags")


class IssueSeverity(str, PyEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class Issue(Base, BaseModel):
    """SEO finding attached to a crawl result."""

    __tablename__ = "issues"

    audit_id = Column(
        UUID(as_uuid=True),
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    crawl_result_id = Column(
        UUID(as_uuid=True),
        ForeignKey("crawl_results.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    severity = Column(Enum(IssueSeverity), default=IssueSeverity.MEDIUM, nullable=False)
    category = Column(String(50), nullable=False)
    type = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    recommendation = Column(Text, nullable=True)
    details = Column(JSONB, default=dict)

    crawl_result = relationship("CrawlResult", back_populates="issues")
