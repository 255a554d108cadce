"""
Crawl result endpoints: backlinks and content-hash deduplication.
"""
from uuid import UUID

from fastapi import APIRouter

from app.core.deps import DbSession
from app.core.exceptions import BadRequestError, NotFoundError
from app.models.crawl import CrawlResult
from app.schemas.crawl import BacklinkResponse, BacklinksResponse, DedupRequest, DedupResponse
from app.services.backlinks import get_backlinks
from app.services.deduplication import deduplicate_by_content_hash

router = APIRouter(prefix="/crawl-results", tags=["Crawl Results"])


@router.post("/deduplicate", response_model=DedupResponse)
async def deduplicate(db: DbSession, data: DedupRequest | None = None):
    """Keep the newest page of every content-hash group and delete the rest."""
    data = data or DedupRequest()
    if data.scope == "global" and data.audit_id:
        raise BadRequestError("audit_id cannot be combined with global scope")
    report = await deduplicate_by_content_hash(db, scope=data.scope, audit_id=data.audit_id)
    return DedupResponse(**report.to_dict())


@router.get("/{page_id}/backlinks", response_model=BacklinksResponse)
async def list_backlinks(page_id: UUID, db: DbSession):
    """Pages in any project that link to this page."""
    entries = await get_backlinks(db, page_id)
    if entries is None:
        raise NotFoundError("Crawl result")
    page = await db.get(CrawlResult, page_id)
    return BacklinksResponse(
        page_id=page_id,
        url=page.url,
        total=len(entries),
        backlinks=[BacklinkResponse.model_validate(e.to_dict()) for e in entries],
    )
