"""
Audit models: one crawl run over a project's site, plus its diagnostic log.
"""
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.models.base import Base, BaseModel, UUIDMixin, utcnow


class AuditStatus(str, PyEnum):
    PENDING = "pending"
    PENDING_APPROVAL = "pending_approval"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


TERMINAL_STATUSES = (AuditStatus.COMPLETED, AuditStatus.STOPPED)
RUNNING_STATUSES = (AuditStatus.IN_PROGRESS, AuditStatus.PENDING_APPROVAL)


class AuditLogCategory(str, PyEnum):
    SETUP = "setup"
    FILTERING = "filtering"
    QUEUED = "queued"
    CRAWLED = "crawled"
    SKIPPED = "skipped"
    ERROR = "error"


class Audit(Base, BaseModel):
    """Audit run with its lifecycle state.

    ``pages_crawled`` is a snapshot written from the crawl result count at
    each status write; readers should prefer the live count.
    """

    __tablename__ = "audits"

    project_id = Column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(
        Enum(AuditStatus),
        default=AuditStatus.PENDING,
        nullable=False,
        index=True,
    )
    seed_urls = Column(JSONB, default=list)
    skip_robots_check = Column(Boolean, default=False, nullable=False)
    pages_crawled = Column(Integer, default=0, nullable=False)
    pages_total = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    paused_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    # Relationships
    project = relationship("Project", back_populates="audits")
    crawl_results = relationship(
        "CrawlResult",
        back_populates="audit",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    logs = relationship(
        "AuditLog",
        back_populates="audit",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Audit {self.id} ({self.status.value})>"


class AuditLog(Base, UUIDMixin):
    """Per-audit diagnostic log entry."""

    __tablename__ = "audit_logs"

    audit_id = Column(
        UUID(as_uuid=True),
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category = Column(Enum(AuditLogCategory), nullable=False, index=True)
    message = Column(Text, nullable=False)
    details = Column(JSONB, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    audit = relationship("Audit", back_populates="logs")

    def __repr__(self) -> str:
        return f"<AuditLog {self.category.value}: {self.message[:40]}>"
