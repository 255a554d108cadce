"""
Project model: a site under analysis.
"""
from sqlalchemy import Boolean, Column, String, Text
from sqlalchemy.orm import relationship

from app.models.base import Base, BaseModel


class Project(Base, BaseModel):
    """A website tracked by the crawler. Each crawl of it is an Audit."""

    __tablename__ = "projects"

    name = Column(String(255), nullable=False)
    base_url = Column(Text, nullable=False)
    domain = Column(String(255), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    audits = relationship(
        "Audit",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    backlinks = relationship(
        "Backlink",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Project {self.domain}>"
