"""Notification inbox of the current user"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from auth.dependencies import CurrentUser
from database import get_db
from dependencies import CurrentTenant, PageParams
from models.notification import Notification
from schemas.common import Page
from .schemas import MarkAllReadResponse, NotificationResponse, UnreadCountResponse
from .service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=Page[NotificationResponse])
def list_notifications(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    unread: Optional[bool] = Query(None, description="Only unread (true) or read (false)"),
) -> Page[NotificationResponse]:
    stmt = select(Notification).where(Notification.user_id == current_user.id)
    if unread is True:
        stmt = stmt.where(Notification.read_at.is_(None))
    elif unread is False:
        stmt = stmt.where(Notification.read_at.is_not(None))

    notifications, total = pagination.apply(db, stmt.order_by(Notification.created_at.desc()))
    return Page[NotificationResponse](
        items=[NotificationResponse.model_validate(n) for n in notifications],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count(tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    service = NotificationService(db, tenant.id)
    return UnreadCountResponse(unread_count=service.unread_count(current_user.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: UUID,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> NotificationResponse:
    notification = NotificationService(db, tenant.id).mark_as_read(notification_id, current_user.id)
    db.commit()
    db.refresh(notification)
    return NotificationResponse.model_validate(notification)


@router.post("/read-all", response_model=MarkAllReadResponse)
def mark_all_read(tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    updated = NotificationService(db, tenant.id).mark_all_as_read(current_user.id)
    db.commit()
    return MarkAllReadResponse(updated=updated)
