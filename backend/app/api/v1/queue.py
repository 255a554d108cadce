"""
Crawl queue endpoints.
"""
from fastapi import APIRouter

from app.api.v1.audits import action_response
from app.core.deps import Runtime
from app.schemas.audit import AuditActionResponse
from app.schemas.queue import ForceStopRequest, QueueCleanupRequest, QueueCleanupResponse

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.post("/force-stop", response_model=AuditActionResponse)
async def force_stop(runtime: Runtime, data: ForceStopRequest | None = None):
    """Remove queued jobs for one audit, or for every audit without an id."""
    data = data or ForceStopRequest()
    return action_response(await runtime.manager.force_stop(data.audit_id))


@router.post("/cleanup", response_model=QueueCleanupResponse)
async def cleanup_queue(runtime: Runtime, data: QueueCleanupRequest | None = None):
    """Remove old completed and failed jobs."""
    data = data or QueueCleanupRequest()
    removed = await runtime.queue.clean(data.completed_age_seconds, data.failed_age_seconds)
    return QueueCleanupResponse(**removed)
