"""
Per-audit diagnostic log stored in the database.
"""
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditLog, AuditLogCategory


async def add_audit_log(
    db: AsyncSession,
    audit_id: UUID,
    category: AuditLogCategory,
    message: str,
    details: dict | None = None,
) -> AuditLog:
    """Stage a log entry; it is written with the caller's commit."""
    entry = AuditLog(
        audit_id=audit_id,
        category=category,
        message=message,
        details=details or {},
    )
    db.add(entry)
    return entry


async def get_audit_logs(
    db: AsyncSession,
    audit_id: UUID,
    category: AuditLogCategory | None = None,
    limit: int = 1000,
) -> list[AuditLog]:
    """Oldest first."""
    query = select(AuditLog).where(AuditLog.audit_id == audit_id)
    if category:
        query = query.where(AuditLog.category == category)
    query = query.order_by(AuditLog.created_at.asc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def clear_audit_logs(db: AsyncSession, audit_id: UUID) -> int:
    result = await db.execute(
        delete(AuditLog)
        .where(AuditLog.audit_id == audit_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
