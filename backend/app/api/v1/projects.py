"""
Project endpoints.
"""
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.core.deps import DbSession
from app.core.exceptions import BadRequestError, NotFoundError
from app.models.backlink import DiscoveredVia
from app.schemas.audit import AuditResponse
from app.schemas.common import PaginatedResponse
from app.schemas.crawl import ProjectBacklinkResponse
from app.schemas.project import ProjectCreate, ProjectCreatedResponse, ProjectResponse
from app.services.backlinks import list_project_backlinks
from app.services.crawl_store import count_crawl_results
from app.services.project_service import ProjectService

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.get("", response_model=PaginatedResponse[ProjectResponse])
async def list_projects(
    db: DbSession,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    search: str | None = None,
):
    """List projects."""
    service = ProjectService(db)
    projects, total = await service.list_projects(page, per_page, search)

    return PaginatedResponse.create(
        items=[ProjectResponse.model_validate(p) for p in projects],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("", response_model=ProjectCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_project(data: ProjectCreate, db: DbSession):
    """Create a project and its first pending audit."""
    service = ProjectService(db)

    # Check domain uniqueness
    if await service.get_by_domain(str(data.base_url)):
        raise BadRequestError("Domain already registered")

    project, audit = await service.create(data)
    return ProjectCreatedResponse(
        project=ProjectResponse.model_validate(project),
        audit=AuditResponse.model_validate(audit),
    )


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: UUID, db: DbSession):
    """Get a project by ID."""
    project = await ProjectService(db).get_by_id(project_id)
    if not project:
        raise NotFoundError("Project")
    return ProjectResponse.model_validate(project)


@router.post("/{project_id}/audits", response_model=AuditResponse, status_code=status.HTTP_201_CREATED)
async def create_audit(project_id: UUID, db: DbSession):
    """Create a new pending audit for a project (re-audit)."""
    service = ProjectService(db)
    if not await service.get_by_id(project_id):
        raise NotFoundError("Project")

    audit = await service.create_audit(project_id)
    response = AuditResponse.model_validate(audit)
    return response.model_copy(update={"pages_crawled": await count_crawl_results(db, audit.id)})


@router.get("/{project_id}/backlinks", response_model=PaginatedResponse[ProjectBacklinkResponse])
async def list_backlinks(
    project_id: UUID,
    db: DbSession,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=50, ge=1, le=200),
    discovered_via: DiscoveredVia | None = None,
    include_inactive: bool = False,
):
    """Backlinks pointing at this project's pages."""
    if not await ProjectService(db).get_by_id(project_id):
        raise NotFoundError("Project")

    backlinks, total = await list_project_backlinks(
        db,
        project_id,
        page=page,
        per_page=per_page,
        discovered_via=discovered_via,
        active_only=not include_inactive,
    )
    return PaginatedResponse.create(
        items=[ProjectBacklinkResponse.model_validate(b) for b in backlinks],
        total=total,
        page=page,
        per_page=per_page,
    )
