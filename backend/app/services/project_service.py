"""
Project service: projects and the pending audits created for them.
"""
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import Audit, AuditStatus
from app.models.project import Project
from app.schemas.project import ProjectCreate
from app.services.url_normalizer import bare_hostname, normalize_url


class ProjectService:
    """Service for project operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, project_id: UUID) -> Project | None:
        result = await self.db.execute(select(Project).where(Project.id == project_id))
        return result.scalar_one_or_none()

    async def get_by_domain(self, domain: str) -> Project | None:
        result = await self.db.execute(
            select(Project).where(Project.domain == bare_hostname(domain))
        )
        return result.scalar_one_or_none()

    async def list_projects(
        self,
        page: int = 1,
        per_page: int = 20,
        search: str | None = None,
    ) -> tuple[list[Project], int]:
        """List projects with pagination."""
        query = select(Project)
        count_query = select(func.count(Project.id))

        if search:
            search_filter = Project.name.ilike(f"%{search}%") | Project.domain.ilike(f"%{search}%")
            query = query.where(search_filter)
            count_query = count_query.where(search_filter)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar()

        query = query.order_by(Project.created_at.desc())
        query = query.offset((page - 1) * per_page).limit(per_page)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def create(self, data: ProjectCreate) -> tuple[Project, Audit]:
        """Create a project together with its first pending audit."""
        base_url = normalize_url(str(data.base_url))
        project = Project(
            name=data.name,
            base_url=base_url,
            domain=bare_hostname(base_url),
        )
        self.db.add(project)
        await self.db.flush()

        audit = await self.create_audit(project.id)
        await self.db.refresh(project)
        return project, audit

    async def create_audit(self, project_id: UUID) -> Audit:
        """Create a fresh pending audit (re-audit)."""
        audit = Audit(project_id=project_id, status=AuditStatus.PENDING)
        self.db.add(audit)
        await self.db.flush()
        await self.db.refresh(audit)
        return audit
