"""
Core utilities for the SEO crawler.
"""
from app.core.errors import ApprovalRequired, CrawlerError, NetworkError, ParseError
from app.core.exceptions import BadRequestError, ConflictError, NotFoundError

__all__ = [
    "ApprovalRequired",
    "CrawlerError",
    "NetworkError",
    "ParseError",
    "BadRequestError",
    "ConflictError",
    "NotFoundError",
]
