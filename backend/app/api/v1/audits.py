"""
Audit lifecycle endpoints.

Each route maps onto one AuditLifecycleManager operation. Rejected
transitions come back as 409 with the audit's current status and counts.
"""
from uuid import UUID

from fastapi import APIRouter, Query

from app.core.deps import DbSession, Runtime
from app.core.exceptions import ConflictError, NotFoundError
from app.models.audit import AuditLogCategory, AuditStatus
from app.schemas.audit import (
    AuditActionResponse,
    AuditLogResponse,
    AuditResponse,
    StartAuditRequest,
)
from app.schemas.common import PaginatedResponse
from app.services.audit_logs import get_audit_logs
from app.services.audit_manager import AuditActionResult
from app.services.audit_service import AuditService
from app.services.crawl_store import count_crawl_results
from app.tasks.audit_tasks import prepare_audit_crawl

router = APIRouter(prefix="/audits", tags=["Audits"])


def action_response(result: AuditActionResult) -> AuditActionResponse:
    """Translate a lifecycle result into a response or an HTTP error."""
    if result.error == "not_found":
        raise NotFoundError("Audit")
    if result.error == "conflict":
        raise ConflictError({
            "message": result.message,
            "status": result.status,
            "pages_crawled": result.pages_crawled,
            "pages_total": result.pages_total,
        })
    return AuditActionResponse(**result.to_dict())


@router.get("", response_model=PaginatedResponse[AuditResponse])
async def list_audits(
    db: DbSession,
    project_id: UUID | None = None,
    status: AuditStatus | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
):
    """List audits, optionally for one project or status."""
    audits, total = await AuditService(db).list_audits(project_id, page, per_page, status)
    items = []
    for audit in audits:
        response = AuditResponse.model_validate(audit)
        items.append(response.model_copy(update={"pages_crawled": await count_crawl_results(db, audit.id)}))

    return PaginatedResponse.create(items=items, total=total, page=page, per_page=per_page)


@router.get("/{audit_id}", response_model=AuditResponse)
async def get_audit(audit_id: UUID, db: DbSession):
    """Get an audit; pages_crawled is the live crawl result count."""
    audit = await AuditService(db).get_by_id(audit_id)
    if not audit:
        raise NotFoundError("Audit")
    response = AuditResponse.model_validate(audit)
    return response.model_copy(update={"pages_crawled": await count_crawl_results(db, audit.id)})


@router.post("/{audit_id}/start", response_model=AuditActionResponse)
async def start_audit(
    audit_id: UUID,
    runtime: Runtime,
    data: StartAuditRequest | None = None,
    background: bool = Query(default=False, description="Run crawl setup in a Celery task"),
):
    """Start a pending (or failed) audit."""
    data = data or StartAuditRequest()
    result = await runtime.manager.start_audit(
        audit_id,
        seed_urls=data.seed_urls,
        skip_robots_check=data.skip_robots_check,
        defer_setup=background,
    )
    if background and result.success:
        prepare_audit_crawl.delay(str(audit_id))
    return action_response(result)


@router.post("/{audit_id}/approve", response_model=AuditActionResponse)
async def approve_audit(
    audit_id: UUID,
    runtime: Runtime,
    background: bool = Query(default=False, description="Run crawl setup in a Celery task"),
):
    """Approve crawling an audit whose robots.txt could not be fetched."""
    result = await runtime.manager.approve_audit(audit_id, defer_setup=background)
    if background and result.success:
        prepare_audit_crawl.delay(str(audit_id))
    return action_response(result)


@router.post("/{audit_id}/pause", response_model=AuditActionResponse)
async def pause_audit(audit_id: UUID, runtime: Runtime):
    """Pause an in-progress audit."""
    return action_response(await runtime.manager.pause_audit(audit_id))


@router.post("/{audit_id}/resume", response_model=AuditActionResponse)
async def resume_audit(audit_id: UUID, runtime: Runtime):
    """Resume a paused audit."""
    return action_response(await runtime.manager.resume_audit(audit_id))


@router.post("/{audit_id}/stop", response_model=AuditActionResponse)
async def stop_audit(audit_id: UUID, runtime: Runtime):
    """Stop an audit that is not completed or stopped."""
    return action_response(await runtime.manager.stop_audit(audit_id))


@router.get("/{audit_id}/diagnostics", response_model=AuditActionResponse)
async def get_diagnostics(audit_id: UUID, runtime: Runtime):
    """Queue counts for the audit and globally."""
    return action_response(await runtime.manager.get_queue_diagnostics(audit_id))


@router.get("/{audit_id}/logs", response_model=list[AuditLogResponse])
async def list_audit_logs(
    audit_id: UUID,
    db: DbSession,
    category: AuditLogCategory | None = None,
    limit: int = Query(default=1000, ge=1, le=10000),
):
    """Diagnostic log of an audit, oldest first."""
    if not await AuditService(db).get_status(audit_id):
        raise NotFoundError("Audit")
    logs = await get_audit_logs(db, audit_id, category, limit)
    return [AuditLogResponse.model_validate(entry) for entry in logs]
