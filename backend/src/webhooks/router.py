"""Webhook subscription endpoints.

Secrets are encrypted before they are stored and never returned.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.service import audit_service
from auth.dependencies import CurrentUser
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from models.webhook import Webhook, WebhookDelivery
from policies import WebhookPolicy, authorize
from schemas.common import MessageResponse, Page
from .schemas import WebhookCreate, WebhookDeliveryResponse, WebhookResponse, WebhookUpdate
from .service import WebhookService, encrypt_webhook_secret

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

webhook_policy = WebhookPolicy()

AUDITED_FIELDS = ("url", "module", "event_types", "is_active")


def _audit_values(webhook: Webhook) -> dict:
    values = {field: getattr(webhook, field) for field in AUDITED_FIELDS}
    values["has_secret"] = bool(webhook.secret)
    return values


@router.get("", response_model=Page[WebhookResponse])
def list_webhooks(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    module: Optional[str] = Query(None, pattern="^(crm|erp|hr)$"),
    is_active: Optional[bool] = Query(None),
) -> Page[WebhookResponse]:
    authorize(db, webhook_policy, "view_any", current_user)
    stmt = select(Webhook)
    if module:
        stmt = stmt.where(Webhook.module == module)
    if is_active is not None:
        stmt = stmt.where(Webhook.is_active == is_active)
    webhooks, total = pagination.apply(db, stmt.order_by(Webhook.created_at.desc()))
    return Page[WebhookResponse](
        items=[WebhookResponse.model_validate(w) for w in webhooks],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("", response_model=WebhookResponse, status_code=status.HTTP_201_CREATED)
def create_webhook(
    data: WebhookCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> WebhookResponse:
    authorize(db, webhook_policy, "create", current_user)
    webhook = Webhook(
        tenant_id=tenant.id,
        url=str(data.url),
        secret=encrypt_webhook_secret(tenant.id, data.secret),
        module=data.module,
        event_types=data.event_types,
        is_active=data.is_active,
    )
    db.add(webhook)
    db.flush()
    audit_service.log(db, "created", model=webhook, new_values=_audit_values(webhook),
                      user=current_user, request=request)
    db.commit()
    db.refresh(webhook)
    return WebhookResponse.model_validate(webhook)


@router.get("/{webhook_id}", response_model=WebhookResponse)
def get_webhook(webhook_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    webhook = get_or_404(db, Webhook, webhook_id)
    authorize(db, webhook_policy, "view", current_user, webhook)
    return WebhookResponse.model_validate(webhook)


@router.patch("/{webhook_id}", response_model=WebhookResponse)
def update_webhook(
    webhook_id: UUID,
    data: WebhookUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> WebhookResponse:
    """Partial update. Sending ``secret`` rotates it."""
    webhook = get_or_404(db, Webhook, webhook_id)
    authorize(db, webhook_policy, "update", current_user, webhook)
    old_values = _audit_values(webhook)

    changes = data.model_dump(exclude_unset=True)
    if "url" in changes and changes["url"] is not None:
        changes["url"] = str(changes["url"])
    if "secret" in changes:
        changes["secret"] = encrypt_webhook_secret(tenant.id, changes["secret"])
    for field, value in changes.items():
        setattr(webhook, field, value)
    db.flush()

    audit_service.log(db, "updated", model=webhook, old_values=old_values, new_values=_audit_values(webhook),
                      user=current_user, request=request)
    db.commit()
    db.refresh(webhook)
    return WebhookResponse.model_validate(webhook)


@router.delete("/{webhook_id}", response_model=MessageResponse)
def delete_webhook(
    webhook_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Delete the webhook together with its delivery history."""
    webhook = get_or_404(db, Webhook, webhook_id)
    authorize(db, webhook_policy, "delete", current_user, webhook)
    audit_service.log(db, "deleted", model=webhook, old_values=_audit_values(webhook),
                      user=current_user, request=request)
    db.delete(webhook)
    db.commit()
    return MessageResponse(message="Webhook deleted successfully.")


@router.get("/{webhook_id}/deliveries", response_model=Page[WebhookDeliveryResponse])
def list_webhook_deliveries(
    webhook_id: UUID,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(pending|success|failed)$"),
) -> Page[WebhookDeliveryResponse]:
    """Delivery history, newest first."""
    webhook = get_or_404(db, Webhook, webhook_id)
    authorize(db, webhook_policy, "view", current_user, webhook)
    stmt = select(WebhookDelivery).where(WebhookDelivery.webhook_id == webhook.id)
    if status_filter:
        stmt = stmt.where(WebhookDelivery.status == status_filter)
    deliveries, total = pagination.apply(db, stmt.order_by(WebhookDelivery.created_at.desc()))
    return Page[WebhookDeliveryResponse](
        items=[WebhookDeliveryResponse.model_validate(d) for d in deliveries],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("/{webhook_id}/test", response_model=WebhookDeliveryResponse)
def test_webhook(
    webhook_id: UUID,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> WebhookDeliveryResponse:
    """Send a ``webhook.test`` ping synchronously and return the delivery."""
    webhook = get_or_404(db, Webhook, webhook_id)
    authorize(db, webhook_policy, "update", current_user, webhook)
    delivery = WebhookService(db).send_test(webhook)
    db.commit()
    db.refresh(delivery)
    return WebhookDeliveryResponse.model_validate(delivery)
