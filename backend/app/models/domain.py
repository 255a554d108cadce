"""
Domain model: robots.txt and sitemap cache shared by every audit of a host.
"""
from sqlalchemy import Column, DateTime, Float, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from app.models.base import Base, BaseModel


class Domain(Base, BaseModel):
    """Cached crawl policy for a bare hostname (no ``www.``)."""

    __tablename__ = "domains"

    domain = Column(String(255), nullable=False, unique=True, index=True)
    base_url = Column(Text, nullable=True)
    robots_txt_url = Column(Text, nullable=True)
    robots_txt_content = Column(Text, nullable=True)
    robots_fetched_at = Column(DateTime(timezone=True), nullable=True)
    sitemaps = Column(JSONB, default=list)  # [{"url": ..., "content": ...}]
    crawl_delay = Column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<Domain {self.domain}>"
