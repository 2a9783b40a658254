"""
Audit Service - append-only trail of state changes and admin actions
"""
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.audit_log import AuditLog, AuditAction
from app.db.unit_of_work import UnitOfWork


class AuditService:

    async def record(
        self,
        uow: UnitOfWork,
        entity_type: str,
        entity_id,
        action: AuditAction,
        actor_id: Optional[int] = None,
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        """Add an audit row to the caller's unit of work; it commits or rolls back with it."""
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            from_state=from_state,
            to_state=to_state,
            actor_id=actor_id,
            details=details or {},
        )
        uow.session.add(audit)
        await uow.flush()
        return audit

    async def get_entity_history(
        self, db: AsyncSession, entity_type: str, entity_id, limit: int = 50
    ) -> List[AuditLog]:
        result = await db.execute(
            select(AuditLog)
            .where(
                AuditLog.entity_type == entity_type,
                AuditLog.entity_id == str(entity_id),
            )
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
