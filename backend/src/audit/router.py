"""Audit log query endpoints.

All endpoints in this router are read-only. Audit logs are immutable and
cannot be created, updated, or deleted through the API.

Users holding ``core.audit_logs.viewAny`` can query their tenant's logs with
filtering by action, model type, actor and date range.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from auth.dependencies import require_permission
from database import get_db
from dependencies import CurrentTenant, PageParams
from models.audit_log import AuditLog
from models.user import User
from schemas.common import Page
from .schemas import AuditLogResponse


router = APIRouter(prefix="/audit-logs", tags=["Audit Logs"])


@router.get(
    "",
    response_model=Page[AuditLogResponse],
    summary="Query audit logs",
    description="Query audit logs of the current tenant with filtering and pagination."
)
def query_audit_logs(
    tenant: CurrentTenant,
    pagination: PageParams,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("core.audit_logs.viewAny")),
    action: Optional[str] = Query(None, description="Filter by action (e.g. created, LOGIN_FAILED)"),
    model_type: Optional[str] = Query(None, description="Filter by model type (e.g. lead, deal)"),
    model_id: Optional[UUID] = Query(None, description="Filter by affected record"),
    actor_id: Optional[UUID] = Query(None, description="Filter by acting user"),
    start_date: Optional[datetime] = Query(None, description="Minimum created_at (ISO 8601)"),
    end_date: Optional[datetime] = Query(None, description="Maximum created_at (ISO 8601)"),
) -> Page[AuditLogResponse]:
    """Query audit logs with filtering and pagination.

    Results are ordered by created_at DESC (newest first).

    Example:
        GET /audit-logs?action=created&model_type=lead&page=1&per_page=50
    """
    stmt = select(AuditLog)

    if action:
        stmt = stmt.where(AuditLog.action == action)
    if model_type:
        stmt = stmt.where(AuditLog.model_type == model_type)
    if model_id:
        stmt = stmt.where(AuditLog.model_id == model_id)
    if actor_id:
        stmt = stmt.where(AuditLog.actor_id == actor_id)
    if start_date:
        stmt = stmt.where(AuditLog.created_at >= start_date)
    if end_date:
        stmt = stmt.where(AuditLog.created_at <= end_date)

    entries, total = pagination.apply(db, stmt.order_by(AuditLog.created_at.desc()))

    return Page[AuditLogResponse](
        items=[AuditLogResponse.model_validate(e) for e in entries],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )
