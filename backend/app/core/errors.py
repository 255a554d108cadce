"""
Crawl error taxonomy.

These are raised inside the crawl engine; HTTP-facing errors live in
``app.core.exceptions``.
"""


class CrawlerError(Exception):
    """Base class for crawl engine errors."""


class NetworkError(CrawlerError):
    """DNS, connection or timeout failure. The queue retries these."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}")


class ParseError(CrawlerError):
    """Malformed document. Extraction degrades to partial data."""


class ApprovalRequired(CrawlerError):
    """robots.txt could not be obtained; a human must approve the crawl."""

    def __init__(self, domain: str, attempts: list[dict] | None = None):
        self.domain = domain
        self.attempts = attempts or []
        super().__init__(f"robots.txt unavailable for {domain}")
