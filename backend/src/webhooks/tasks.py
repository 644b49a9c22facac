"""Celery tasks for webhook delivery and retries"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from celery import shared_task
from sqlalchemy import select

from database import SessionLocal
from models.tenant import Tenant
from models.webhook import WebhookDelivery
from workers.base import BaseTask, get_scoped_session, validate_tenant_id
from .service import WebhookService

logger = logging.getLogger(__name__)


@shared_task(base=BaseTask, name="webhooks.deliver")
def deliver_webhook_task(delivery_id: str, tenant_id: str) -> Dict[str, Any]:
    """Deliver one pending (or failed) delivery in the tenant's scope."""
    tenant_uuid = validate_tenant_id(tenant_id)
    session = get_scoped_session(tenant_uuid)
    try:
        delivery = session.execute(
            select(WebhookDelivery).where(WebhookDelivery.id == UUID(delivery_id))
        ).scalar_one_or_none()
        if delivery is None:
            logger.warning(f"Webhook delivery {delivery_id} not found")
            return {"status": "skipped", "reason": "Delivery not found"}
        if delivery.status == "success":
            return {"status": "skipped", "reason": "Already delivered"}

        delivered = WebhookService(session).deliver(delivery)
        session.commit()
        return {"status": delivery.status, "delivered": delivered, "attempts": delivery.attempts}
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@shared_task(name="webhooks.retry_failed")
def retry_failed_webhooks_task(max_attempts: Optional[int] = None) -> Dict[str, Any]:
    """Retry failed deliveries of every tenant, one tenant scope at a time."""
    return retry_failed_for_all_tenants(max_attempts)


def retry_failed_for_all_tenants(max_attempts: Optional[int] = None) -> Dict[str, Any]:
    """Retry failed deliveries tenant by tenant, committing after each tenant.

    Returns:
        {"retried": n, "succeeded": n, "failed": n}
    """
    totals = {"retried": 0, "succeeded": 0, "failed": 0}
    db = SessionLocal()
    try:
        tenant_ids = db.execute(select(Tenant.id)).scalars().all()
    finally:
        db.close()

    for tenant_id in tenant_ids:
        session = get_scoped_session(tenant_id)
        try:
            stats = WebhookService(session).retry_failed(max_attempts)
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Webhook retry failed for tenant {tenant_id}: {e}", exc_info=True)
            continue
        finally:
            session.close()
        for key, value in stats.items():
            totals[key] += value

    logger.info(f"Webhook retry run: {totals}")
    return totals
