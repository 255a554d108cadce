"""
Domain cache: robots.txt content and sitemap documents per bare hostname.

Written at audit setup, read by every crawl job for the host. Concurrent
writers overwrite each other; robots content is advisory.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models.domain import Domain
from app.services.robots import RobotsResult, SitemapDocument, parse_sitemap
from app.services.url_normalizer import bare_hostname, is_same_site

logger = logging.getLogger(__name__)


class DomainService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_host(self, host: str) -> Domain | None:
        result = await self.db.execute(
            select(Domain)
            .where(Domain.domain == bare_hostname(host))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        host: str,
        base_url: str,
        robots: RobotsResult | None,
        sitemaps: list[SitemapDocument],
    ) -> Domain:
        """Create or refresh the cache entry for ``host``."""
        bare = bare_hostname(host)
        domain = await self.get_by_host(bare)
        if domain is None:
            domain = Domain(domain=bare)
            self.db.add(domain)

        domain.base_url = base_url
        if robots is not None:
            domain.robots_txt_url = robots.robots_url
            domain.robots_txt_content = robots.content
            domain.crawl_delay = robots.crawl_delay
            domain.robots_fetched_at = utcnow()
        if sitemaps:
            domain.sitemaps = [doc.to_cache() for doc in sitemaps]

        await self.db.flush()
        logger.debug(f"Cached robots/sitemaps for {bare} ({len(sitemaps)} sitemaps)")
        return domain


def cached_sitemap_urls(domain: Domain | None) -> list[str]:
    """Page URLs from the cached (non-index) sitemap documents."""
    if domain is None or not domain.sitemaps:
        return []
    urls: list[str] = []
    for doc in domain.sitemaps:
        is_index, locations = parse_sitemap(doc.get("content") or "")
        if not is_index:
            urls.extend(loc for loc in locations if is_same_site(loc, domain.domain))
    return list(dict.fromkeys(urls))
