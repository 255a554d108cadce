"""
Audit persistence operations.
"""
from uuid import UUID

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.audit import Audit, AuditStatus


def to_uuid(value) -> UUID | None:
    """Coerce ids arriving as strings (queue payloads, task args)."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class AuditService:
    """Service for audit rows. Status writes are compare-and-set."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, audit_id: UUID) -> Audit | None:
        """Get audit with its project, always reloaded from the database."""
        audit_uuid = to_uuid(audit_id)
        if audit_uuid is None:
            return None
        query = (
            select(Audit)
            .where(Audit.id == audit_uuid)
            .options(selectinload(Audit.project))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_status(self, audit_id: UUID) -> AuditStatus | None:
        audit_uuid = to_uuid(audit_id)
        if audit_uuid is None:
            return None
        result = await self.db.execute(select(Audit.status).where(Audit.id == audit_uuid))
        return result.scalar_one_or_none()

    async def list_audits(
        self,
        project_id: UUID | None = None,
        page: int = 1,
        per_page: int = 20,
        status: AuditStatus | None = None,
    ) -> tuple[list[Audit], int]:
        """List audits with pagination."""
        query = select(Audit)
        count_query = select(func.count(Audit.id))

        if project_id:
            query = query.where(Audit.project_id == project_id)
            count_query = count_query.where(Audit.project_id == project_id)
        if status:
            query = query.where(Audit.status == status)
            count_query = count_query.where(Audit.status == status)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar()

        query = query.order_by(Audit.created_at.desc())
        query = query.offset((page - 1) * per_page).limit(per_page)
        result = await self.db.execute(query)
        audits = result.scalars().all()

        return list(audits), total

    async def list_ids_with_status(self, status: AuditStatus) -> list[UUID]:
        result = await self.db.execute(select(Audit.id).where(Audit.status == status))
        return list(result.scalars().all())

    async def transition(
        self,
        audit_id: UUID,
        from_statuses: tuple[AuditStatus, ...],
        **values,
    ) -> bool:
        """Apply ``values`` only if the audit is currently in ``from_statuses``.

        The conditional UPDATE is the serialization point between concurrent
        commands, workers and sweeps. Returns True if the row changed.
        """
        stmt = (
            update(Audit)
            .where(Audit.id == to_uuid(audit_id), Audit.status.in_(from_statuses))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1
