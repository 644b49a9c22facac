"""Subscribers wiring domain events to audit, workflows, webhooks and notifications.

Handlers run in registration order for every published event:

    audit          primary events      one audit entry per change
    workflows      WORKFLOW_EVENTS     dispatch matching workflows
    webhooks       lead/deal/invoice/payment events
    notifications  deal status and stage changes

A deal transition publishes ``deal.updated`` followed by ``deal.stage_changed``
or ``deal.status_changed`` for the same change. Those derived events are not
audited again and only reach webhooks that subscribe to them by name.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from audit.service import audit_service, model_values
from models.workflow import WORKFLOW_EVENTS
from notifications.service import NotificationService
from webhooks.service import WebhookService
from workers.base import runs_inline
from workflows import engine as workflow_engine
from .bus import ALL_EVENTS, DomainEvent, subscribe

logger = logging.getLogger(__name__)

AUDIT_ACTIONS = {
    "created": "created",
    "deleted": "deleted",
    "restored": "restored",
    "issued": "INVOICE_ISSUED",
    "applied": "PAYMENT_APPLIED",
}
DEFAULT_AUDIT_ACTION = "updated"

WEBHOOK_MODULES = {
    "lead": "crm",
    "deal": "crm",
    "invoice": "erp",
    "payment": "erp",
}

DERIVED_EVENTS = frozenset({"deal.stage_changed", "deal.status_changed"})


def split_changes(changes: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """{field: {"old", "new"}} -> (old_values, new_values)."""
    old_values: Dict[str, Any] = {}
    new_values: Dict[str, Any] = {}
    for field, change in changes.items():
        if isinstance(change, dict) and ("old" in change or "new" in change):
            old_values[field] = change.get("old")
            new_values[field] = change.get("new")
        else:
            new_values[field] = change
    return old_values, new_values


def audit_action(event: DomainEvent) -> str:
    return AUDIT_ACTIONS.get(event.verb, DEFAULT_AUDIT_ACTION)


@subscribe(ALL_EVENTS, name="audit")
def audit_event(db: Session, event: DomainEvent) -> None:
    if event.name in DERIVED_EVENTS:
        return
    action = audit_action(event)
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None

    if event.verb == "created":
        new_values = model_values(event.entity)
    elif event.verb == "deleted":
        old_values = model_values(event.entity)
    elif event.changes:
        old_values, new_values = split_changes(event.changes)

    audit_service.log(
        db,
        action,
        model=event.entity,
        old_values=old_values or None,
        new_values=new_values or None,
        metadata={"event": event.name},
        user=event.actor,
        request=event.request,
        tenant_id=event.tenant_id,
    )


@subscribe(ALL_EVENTS, name="workflows")
def run_workflows(db: Session, event: DomainEvent) -> None:
    if event.name not in WORKFLOW_EVENTS:
        return
    workflow_engine.trigger(db, event.tenant_id, event.name, event.entity, event.changes)


@subscribe(ALL_EVENTS, name="webhooks")
def dispatch_webhooks(db: Session, event: DomainEvent) -> None:
    module = WEBHOOK_MODULES.get(event.entity_type)
    if module is None:
        return

    service = WebhookService(db)
    deliveries = service.trigger_event(
        event.tenant_id, module, event.name, event.entity, explicit=event.name in DERIVED_EVENTS
    )
    if not deliveries:
        return

    if runs_inline():
        for delivery in deliveries:
            service.deliver(delivery)
        return

    from webhooks.tasks import deliver_webhook_task

    # Workers must see the pending rows
    db.commit()
    for delivery in deliveries:
        deliver_webhook_task.delay(delivery_id=str(delivery.id), tenant_id=str(event.tenant_id))


@subscribe("deal.status_changed", name="deal_status_notification")
def notify_deal_status_change(db: Session, event: DomainEvent) -> None:
    status = event.changes.get("status")
    new_status = status.get("new") if isinstance(status, dict) else None
    if new_status is None:
        return
    NotificationService(db, event.tenant_id).notify_deal_status(event.entity, new_status)


@subscribe("deal.stage_changed", name="deal_stage_notification")
def notify_deal_stage_change(db: Session, event: DomainEvent) -> None:
    NotificationService(db, event.tenant_id).notify_deal_status(event.entity, "stage_changed")
