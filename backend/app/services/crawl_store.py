"""
Persistence helpers for crawl results.

``count_crawl_results`` is the single source of truth for an audit's
crawled page count.
"""
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.crawl import CrawlResult, Heading, Image, Link, OgTag
from app.services.fetcher import SeoData
from app.services.url_normalizer import normalize_url


async def count_crawl_results(db: AsyncSession, audit_id: UUID) -> int:
    result = await db.execute(
        select(func.count(CrawlResult.id)).where(CrawlResult.audit_id == audit_id)
    )
    return result.scalar() or 0


async def save_crawl_result(
    db: AsyncSession,
    audit_id: UUID,
    data: SeoData,
    domain_id: UUID | None = None,
    depth: int = 0,
) -> CrawlResult:
    """Insert a CrawlResult with its headings, images, links and OG tags."""
    h_counts = {level: len(data.headings_at(level)) for level in (1, 2, 3)}
    internal = data.internal_links

    result = CrawlResult(
        audit_id=audit_id,
        domain_id=domain_id,
        url=data.url,
        normalized_url=normalize_url(data.url),
        final_url=data.final_url,
        status_code=data.status_code,
        content_type=data.content_type[:255] or None,
        title=data.title or None,
        meta_description=data.meta_description or None,
        meta_keywords=data.meta_keywords or None,
        meta_robots=data.meta_robots[:255] or None,
        canonical_url=data.canonical_url or None,
        language=data.language[:35] or None,
        response_time_ms=data.response_time_ms,
        content_length=data.content_length,
        redirect_chain=data.redirect_chain,
        redirect_count=len(data.redirect_chain),
        http_headers=data.http_headers,
        structured_data=data.structured_data,
        word_count=data.word_count,
        content_hash=data.content_hash or None,
        completeness_score=data.completeness_score,
        h1_count=h_counts[1],
        h2_count=h_counts[2],
        h3_count=h_counts[3],
        internal_links_count=len(internal),
        external_links_count=len(data.links) - len(internal),
        images_count=len(data.images),
        images_with_alt_count=sum(1 for img in data.images if img.get("alt")),
        extraction_errors=data.errors,
        crawl_depth=depth,
    )
    result.headings = [
        Heading(level=h["level"], text=h["text"], position=i)
        for i, h in enumerate(data.headings)
    ]
    result.images = [
        Image(
            src=img["src"],
            alt=img.get("alt"),
            title=img.get("title"),
            width=str(img["width"])[:32] if img.get("width") else None,
            height=str(img["height"])[:32] if img.get("height") else None,
            position=i,
        )
        for i, img in enumerate(data.images)
    ]
    result.links = [
        Link(
            href=link["href"],
            normalized_href=normalize_url(link["href"]),
            text=link.get("text") or None,
            rel=(link.get("rel") or "")[:255] or None,
            is_external=link["is_external"],
            position=i,
        )
        for i, link in enumerate(data.links)
    ]
    if data.og_tags:
        result.og_tags = OgTag(**{k: data.og_tags.get(k) for k in ("title", "description", "image", "type", "url")})

    db.add(result)
    await db.flush()
    return result


async def crawled_urls(db: AsyncSession, audit_id: UUID) -> set[str]:
    """Normalized URLs already persisted for the audit."""
    result = await db.execute(
        select(CrawlResult.normalized_url).where(CrawlResult.audit_id == audit_id)
    )
    return set(result.scalars().all())


async def internal_link_frontier(db: AsyncSession, audit_id: UUID) -> list[tuple[str, int]]:
    """(href, depth) for every internal link found on the audit's crawled pages."""
    result = await db.execute(
        select(Link.href, CrawlResult.crawl_depth)
        .join(CrawlResult, Link.crawl_result_id == CrawlResult.id)
        .where(CrawlResult.audit_id == audit_id, Link.is_external.is_(False))
        .order_by(CrawlResult.crawl_depth, Link.position)
    )
    return [(href, (depth or 0) + 1) for href, depth in result.all()]
