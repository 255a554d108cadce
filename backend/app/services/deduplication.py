"""
Content-hash deduplication of crawl results.

Pages sharing a content hash are collapsed to the most recently crawled one.
Child rows (headings, images, links, issues, backlinks) go with the deleted
results through ON DELETE CASCADE.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import Audit
from app.models.base import as_utc
from app.models.crawl import CrawlResult
from app.services.crawl_store import count_crawl_results

logger = logging.getLogger(__name__)

SCOPES = ("audit", "global")

# Ids per IN (...) list; asyncpg caps a statement at 32767 bind parameters.
IN_CLAUSE_BATCH = 5000


@dataclass
class DedupGroup:
    content_hash: str
    audit_id: UUID | None
    kept_id: UUID
    kept_url: str
    deleted_ids: list[UUID] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "content_hash": self.content_hash,
            "audit_id": str(self.audit_id) if self.audit_id else None,
            "kept_id": str(self.kept_id),
            "kept_url": self.kept_url,
            "deleted": len(self.deleted_ids),
        }


@dataclass
class DedupReport:
    scope: str
    groups_processed: int = 0
    urls_kept: int = 0
    duplicates_deleted: int = 0
    groups: list[DedupGroup] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scope": self.scope,
            "groups_processed": self.groups_processed,
            "urls_kept": self.urls_kept,
            "duplicates_deleted": self.duplicates_deleted,
            "groups": [g.to_dict() for g in self.groups],
        }


def _newest_first(row) -> tuple:
    return (as_utc(row.crawled_at), as_utc(row.created_at))


def _batches(values: list, size: int):
    for start in range(0, len(values), size):
        yield values[start:start + size]


async def deduplicate_by_content_hash(
    db: AsyncSession,
    scope: str = "audit",
    audit_id: UUID | None = None,
) -> DedupReport:
    """Delete all but the newest CrawlResult of every duplicate content-hash group.

    ``scope="audit"`` groups by (audit_id, content_hash), optionally limited
    to one audit; ``scope="global"`` groups by content_hash alone. Running it
    again without new crawls deletes nothing.
    """
    if scope not in SCOPES:
        raise ValueError(f"Unknown deduplication scope: {scope}")

    per_audit = scope == "audit"
    group_cols = [CrawlResult.audit_id, CrawlResult.content_hash] if per_audit else [CrawlResult.content_hash]

    dup_query = (
        select(*group_cols)
        .where(CrawlResult.content_hash.is_not(None))
        .group_by(*group_cols)
        .having(func.count(CrawlResult.id) > 1)
    )
    if audit_id is not None:
        dup_query = dup_query.where(CrawlResult.audit_id == audit_id)
    dup_result = await db.execute(dup_query)
    dup_keys = dup_result.all()

    report = DedupReport(scope=scope)
    if not dup_keys:
        logger.info(f"Deduplication ({scope}): no duplicate groups")
        return report

    hashes = sorted({key[-1] for key in dup_keys})
    rows = []
    for chunk in _batches(hashes, IN_CLAUSE_BATCH):
        rows_query = select(
            CrawlResult.id,
            CrawlResult.audit_id,
            CrawlResult.url,
            CrawlResult.content_hash,
            CrawlResult.crawled_at,
            CrawlResult.created_at,
        ).where(CrawlResult.content_hash.in_(chunk))
        if audit_id is not None:
            rows_query = rows_query.where(CrawlResult.audit_id == audit_id)
        rows.extend((await db.execute(rows_query)).all())

    wanted = {tuple(key) for key in dup_keys}
    groups: dict[tuple, list] = defaultdict(list)
    for row in rows:
        key = (row.audit_id, row.content_hash) if per_audit else (row.content_hash,)
        if key in wanted:
            groups[key].append(row)

    to_delete: list[UUID] = []
    affected_audits: set[UUID] = set()
    for key, members in groups.items():
        if len(members) < 2:
            continue
        members.sort(key=_newest_first, reverse=True)
        keep, duplicates = members[0], members[1:]
        group = DedupGroup(
            content_hash=keep.content_hash,
            audit_id=keep.audit_id if per_audit else None,
            kept_id=keep.id,
            kept_url=keep.url,
            deleted_ids=[row.id for row in duplicates],
        )
        report.groups.append(group)
        report.groups_processed += 1
        report.urls_kept += 1
        report.duplicates_deleted += len(duplicates)
        to_delete.extend(group.deleted_ids)
        affected_audits.update(row.audit_id for row in duplicates)

    if to_delete:
        for chunk in _batches(to_delete, IN_CLAUSE_BATCH):
            await db.execute(
                delete(CrawlResult)
                .where(CrawlResult.id.in_(chunk))
                .execution_options(synchronize_session=False)
            )
        for affected in affected_audits:
            await db.execute(
                update(Audit)
                .where(Audit.id == affected)
                .values(pages_crawled=await count_crawl_results(db, affected))
                .execution_options(synchronize_session=False)
            )

    logger.info(
        f"Deduplication ({scope}): {report.groups_processed} groups, "
        f"kept {report.urls_kept}, deleted {report.duplicates_deleted}"
    )
    return report
