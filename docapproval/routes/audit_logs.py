from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from docapproval.database import get_db
from docapproval.middleware.auth import get_current_user
from docapproval.middleware.authorization import require_roles
from docapproval.models.audit_log import AuditLog
from docapproval.schemas.audit_log import AuditLogPage, AuditLogResponse, PaginationMeta
from docapproval.services.workflow_service import parse_uuid

router = APIRouter()


def _apply_filters(q, entity_type, entity_id, actor_id, action, from_date, to_date):
    if entity_type:
        q = q.where(AuditLog.entity_type == entity_type)
    if entity_id:
        q = q.where(AuditLog.entity_id == parse_uuid(entity_id, "entity_id"))
    if actor_id:
        q = q.where(AuditLog.actor_id == parse_uuid(actor_id, "actor_id"))
    if action:
        q = q.where(AuditLog.action == action)
    if from_date:
        q = q.where(AuditLog.created_at >= datetime.combine(from_date, datetime.min.time()))
    if to_date:
        q = q.where(AuditLog.created_at <= datetime.combine(to_date, datetime.max.time()))
    return q


@router.get("", response_model=AuditLogPage)
async def list_audit_logs(
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    actor_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=50),
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    """Approval trail: who submitted, approved or rejected what, and when."""
    filters = (entity_type, entity_id, actor_id, action, from_date, to_date)
    q = _apply_filters(select(AuditLog), *filters)
    count_q = _apply_filters(select(func.count(AuditLog.id)), *filters)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(AuditLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    logs = result.scalars().all()

    items = [
        AuditLogResponse(
            id=str(log.id),
            actor_id=str(log.actor_id) if log.actor_id else None,
            actor_email=log.actor_email,
            action=log.action,
            entity_type=log.entity_type,
            entity_id=str(log.entity_id),
            before_state=log.before_state,
            after_state=log.after_state,
            changed_fields=log.changed_fields,
            created_at=log.created_at.isoformat() if log.created_at else "",
        )
        for log in logs
    ]

    return AuditLogPage(data=items, pagination=PaginationMeta.build(page, limit, total))
