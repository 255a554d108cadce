"""
Backlink Indexer

Answers "who, anywhere we've crawled, links to this page". Reads are
deliberately not scoped to a project: a Link in project A pointing at a
page of project B is a backlink of B.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import Audit
from app.models.backlink import Backlink, DiscoveredVia
from app.models.base import as_utc, utcnow
from app.models.crawl import CrawlResult, Link

logger = logging.getLogger(__name__)


@dataclass
class BacklinkEntry:
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

    def to_dict(self) -> dict:
        return asdict(self)


def parse_rel(rel: str | None) -> dict:
    """Map a rel attribute onto backlink flags."""
    tokens = {t.strip().lower() for t in (rel or "").replace(",", " ").split() if t.strip()}
    return {
        "is_dofollow": "nofollow" not in tokens,
        "is_sponsored": "sponsored" in tokens,
        "is_ugc": "ugc" in tokens,
    }


async def get_backlinks(db: AsyncSession, page_id: UUID) -> list[BacklinkEntry] | None:
    """Backlinks of a crawled page, one per distinct linking page.

    Returns None if the page does not exist. Links without a Backlink row
    count as plain dofollow backlinks. When a page links more than once (or
    was crawled in several audits) the most recently crawled link wins.
    """
    page = await db.get(CrawlResult, page_id)
    if page is None:
        return None

    query = (
        select(Link, CrawlResult, Audit.project_id, Backlink)
        .join(CrawlResult, Link.crawl_result_id == CrawlResult.id)
        .join(Audit, CrawlResult.audit_id == Audit.id)
        .outerjoin(Backlink, Backlink.link_id == Link.id)
        .where(
            Link.normalized_href == page.normalized_url,
            CrawlResult.id != page.id,
        )
        .order_by(CrawlResult.crawled_at.desc(), Link.position.desc())
    )
    result = await db.execute(query)

    entries: dict[str, BacklinkEntry] = {}
    for link, source, project_id, backlink in result.all():
        if source.normalized_url in entries:
            continue
        flags = (
            {
                "is_dofollow": backlink.is_dofollow,
                "is_sponsored": backlink.is_sponsored,
                "is_ugc": backlink.is_ugc,
            }
            if backlink is not None
            else {"is_dofollow": True, "is_sponsored": False, "is_ugc": False}
        )
        entries[source.normalized_url] = BacklinkEntry(
            source_page_id=source.id,
            source_url=source.url,
            source_project_id=project_id,
            link_id=link.id,
            anchor_text=link.text,
            rel=link.rel,
            discovered_via=(backlink.discovered_via.value if backlink is not None else DiscoveredVia.CRAWL.value),
            discovered_at=backlink.discovered_at if backlink is not None else source.crawled_at,
            **flags,
        )

    return sorted(entries.values(), key=lambda e: as_utc(e.discovered_at), reverse=True)


async def record_backlinks(
    db: AsyncSession,
    crawl_result: CrawlResult,
    discovered_via: DiscoveredVia = DiscoveredVia.CRAWL,
) -> int:
    """Create or refresh Backlink rows for the links of a freshly saved page.

    Targets are CrawlResults in any project. Backlinks from the same source
    URL that were not observed this time are deactivated. Returns the number
    of backlinks written.
    """
    links_by_target: dict[str, Link] = {}
    for link in crawl_result.links:
        if link.normalized_href == crawl_result.normalized_url:
            continue
        links_by_target.setdefault(link.normalized_href, link)

    now = utcnow()
    observed: set[tuple[UUID, str]] = set()

    if links_by_target:
        result = await db.execute(
            select(CrawlResult.normalized_url, Audit.project_id)
            .join(Audit, CrawlResult.audit_id == Audit.id)
            .where(CrawlResult.normalized_url.in_(list(links_by_target)))
            .distinct()
        )
        targets = result.all()
    else:
        targets = []

    for target_url, project_id in targets:
        link = links_by_target[target_url]
        observed.add((project_id, target_url))

        existing = await db.execute(
            select(Backlink).where(
                Backlink.project_id == project_id,
                Backlink.source_url == crawl_result.normalized_url,
                Backlink.target_url == target_url,
            )
        )
        backlink = existing.scalars().first()
        if backlink is None:
            backlink = Backlink(
                project_id=project_id,
                source_url=crawl_result.normalized_url,
                target_url=target_url,
                discovered_via=discovered_via,
                discovered_at=now,
            )
            db.add(backlink)

        backlink.source_page_id = crawl_result.id
        backlink.link_id = link.id
        backlink.anchor_text = link.text
        backlink.link_position = link.position
        backlink.last_seen_at = now
        backlink.is_active = True
        for key, value in parse_rel(link.rel).items():
            setattr(backlink, key, value)

    stale = await db.execute(
        select(Backlink).where(
            Backlink.source_url == crawl_result.normalized_url,
            Backlink.is_active.is_(True),
        )
    )
    for backlink in stale.scalars().all():
        if (backlink.project_id, backlink.target_url) not in observed:
            backlink.is_active = False

    await db.flush()
    if targets:
        logger.debug(f"Recorded {len(targets)} backlinks from {crawl_result.url}")
    return len(targets)


async def record_inbound_backlinks(db: AsyncSession, crawl_result: CrawlResult) -> int:
    """Materialize backlinks to a freshly crawled page from pages crawled before it.

    ``record_backlinks`` only sees targets that already exist, so a page
    crawled after the pages linking to it picks up those links here. One row
    per linking URL, from its most recent crawl. Existing rows are left
    alone, including ones deactivated by a later crawl of the source.
    """
    project_id = (
        await db.execute(select(Audit.project_id).where(Audit.id == crawl_result.audit_id))
    ).scalar()
    if project_id is None:
        return 0

    result = await db.execute(
        select(Link, CrawlResult)
        .join(CrawlResult, Link.crawl_result_id == CrawlResult.id)
        .where(
            Link.normalized_href == crawl_result.normalized_url,
            CrawlResult.normalized_url != crawl_result.normalized_url,
        )
        .order_by(CrawlResult.crawled_at.desc(), Link.position)
    )
    latest: dict[str, tuple[Link, CrawlResult]] = {}
    for link, source in result.all():
        latest.setdefault(source.normalized_url, (link, source))
    if not latest:
        return 0

    existing = await db.execute(
        select(Backlink.source_url).where(
            Backlink.project_id == project_id,
            Backlink.target_url == crawl_result.normalized_url,
            Backlink.source_url.in_(list(latest)),
        )
    )
    known = set(existing.scalars().all())

    now = utcnow()
    created = 0
    for source_url, (link, source) in latest.items():
        if source_url in known:
            continue
        db.add(Backlink(
            project_id=project_id,
            source_page_id=source.id,
            link_id=link.id,
            source_url=source_url,
            target_url=crawl_result.normalized_url,
            anchor_text=link.text,
            link_position=link.position,
            discovered_via=DiscoveredVia.CRAWL,
            discovered_at=now,
            last_seen_at=now,
            is_active=True,
            **parse_rel(link.rel),
        ))
        created += 1

    await db.flush()
    if created:
        logger.debug(f"Recorded {created} inbound backlinks for {crawl_result.url}")
    return created


async def list_project_backlinks(
    db: AsyncSession,
    project_id: UUID,
    page: int = 1,
    per_page: int = 50,
    discovered_via: DiscoveredVia | None = None,
    active_only: bool = True,
) -> tuple[list[Backlink], int]:
    """Materialized backlinks received by a project, newest first."""
    filters = [Backlink.project_id == project_id]
    if discovered_via is not None:
        filters.append(Backlink.discovered_via == discovered_via)
    if active_only:
        filters.append(Backlink.is_active.is_(True))

    total = (await db.execute(select(func.count(Backlink.id)).where(*filters))).scalar()
    result = await db.execute(
        select(Backlink)
        .where(*filters)
        .order_by(Backlink.discovered_at.desc(), Backlink.target_url, Backlink.source_url)
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
