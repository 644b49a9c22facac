"""Webhook delivery service.

Payload posted for every delivery:

    {
        "event": "invoice.issued",
        "timestamp": "2026-03-01T10:00:00+00:00",
        "data": {"id": "...", "type": "invoice", "attributes": {...}},
        "tenant_id": "..."
    }

The body is serialized once and stored, so retries resend identical bytes.
``X-Webhook-Signature`` is the hex HMAC-SHA256 of those bytes keyed with
the webhook secret (empty string when the webhook has no secret). Secrets
are stored encrypted with SecretBox and decrypted only to sign.
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, List, Optional
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.service import model_values, to_jsonable
from config import settings
from infrastructure.secret_box import decrypt_secret, encrypt_secret
from models.base import utcnow
from models.webhook import Webhook, WebhookDelivery
from observability.metrics import webhook_deliveries_total, webhook_delivery_duration_seconds

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
RESPONSE_BODY_LIMIT = 2000
PAYLOAD_EXCLUDED_FIELDS = {"tenant_id", "password_hash", "deleted_at"}


def secret_context(tenant_id: UUID) -> str:
    return f"webhook:{tenant_id}"


def encrypt_webhook_secret(tenant_id: UUID, secret: Optional[str]) -> Optional[str]:
    return encrypt_secret(secret, context=secret_context(tenant_id)) if secret else None


def webhook_secret(webhook: Webhook) -> Optional[str]:
    if not webhook.secret:
        return None
    return decrypt_secret(webhook.secret, context=secret_context(webhook.tenant_id))


def sign(body: bytes, secret: Optional[str]) -> str:
    """Hex HMAC-SHA256 of ``body``; empty when there is no secret."""
    if not secret:
        return ""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def build_payload(event: str, entity: Any, tenant_id: UUID) -> Dict[str, Any]:
    attributes = {
        key: value
        for key, value in model_values(entity).items()
        if key not in PAYLOAD_EXCLUDED_FIELDS and key != "id"
    }
    return {
        "event": event,
        "timestamp": utcnow().isoformat(),
        "data": {
            "id": str(entity.id),
            "type": event.split(".", 1)[0],
            "attributes": to_jsonable(attributes),
        },
        "tenant_id": str(tenant_id),
    }


def encode_payload(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()


class WebhookService:
    """Creates and delivers webhook deliveries on the given session.

    Args:
        db: Session (tenant-scoped for API calls and per-tenant jobs)
        transport: Optional httpx transport, e.g. httpx.MockTransport in tests
    """

    def __init__(self, db: Session, transport: Optional[httpx.BaseTransport] = None):
        self.db = db
        self._transport = transport

    def subscribed_webhooks(self, tenant_id: UUID, module: str, event: str,
                            explicit: bool = False) -> List[Webhook]:
        webhooks = self.db.execute(
            select(Webhook).where(
                Webhook.tenant_id == tenant_id,
                Webhook.module == module,
                Webhook.is_active.is_(True),
            )
        ).scalars().all()
        return [w for w in webhooks if w.subscribes_to(event, explicit)]

    def queue_delivery(self, webhook: Webhook, event: str, payload: Dict[str, Any]) -> WebhookDelivery:
        delivery = WebhookDelivery(
            tenant_id=webhook.tenant_id,
            webhook_id=webhook.id,
            event_type=event,
            payload=payload,
            status="pending",
            attempts=0,
        )
        self.db.add(delivery)
        self.db.flush()
        return delivery

    def trigger_event(self, tenant_id: UUID, module: str, event: str, entity: Any,
                      explicit: bool = False) -> List[WebhookDelivery]:
        """Create a pending delivery for every subscribed webhook.

        With ``explicit`` only webhooks naming ``event`` itself are served;
        ``*`` subscribers already receive the primary event of the change.

        The caller delivers them (inline or through ``webhooks.deliver``)
        and commits.
        """
        webhooks = self.subscribed_webhooks(tenant_id, module, event, explicit)
        if not webhooks:
            return []
        payload = build_payload(event, entity, tenant_id)
        return [self.queue_delivery(webhook, event, payload) for webhook in webhooks]

    def _finish(self, delivery: WebhookDelivery, webhook: Optional[Webhook], success: bool,
                status_code: Optional[int] = None, body: Optional[str] = None,
                error: Optional[str] = None) -> bool:
        now = utcnow()
        delivery.status = "success" if success else "failed"
        delivery.response_code = status_code
        delivery.response_body = body[:RESPONSE_BODY_LIMIT] if body else body
        delivery.error_message = error
        if success:
            delivery.delivered_at = now
        if webhook is not None:
            webhook.last_delivery_status = delivery.status
            webhook.last_delivery_at = now
        self.db.flush()
        webhook_deliveries_total.labels(
            module=webhook.module if webhook is not None else "unknown",
            status=delivery.status,
        ).inc()
        return success

    def deliver(self, delivery: WebhookDelivery) -> bool:
        """POST the delivery's payload; returns True on a 2xx response.

        Non-2xx responses and transport errors mark the delivery failed.
        Every call counts as one attempt.
        """
        webhook = delivery.webhook
        delivery.attempts = (delivery.attempts or 0) + 1
        if webhook is None or not webhook.is_active:
            return self._finish(delivery, webhook, False, error="Webhook is inactive or deleted")

        body = encode_payload(delivery.payload)
        try:
            signature = sign(body, webhook_secret(webhook))
        except ValueError as e:
            return self._finish(delivery, webhook, False, error=f"Webhook secret unusable: {e}")

        headers = {
            SIGNATURE_HEADER: signature,
            EVENT_HEADER: delivery.event_type,
            "Content-Type": "application/json",
        }
        started = time.perf_counter()
        try:
            with httpx.Client(timeout=settings.WEBHOOK_TIMEOUT, transport=self._transport) as client:
                response = client.post(webhook.url, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(
                f"Webhook delivery {delivery.id} failed: {e}",
                extra={"webhook_id": str(webhook.id), "tenant_id": str(webhook.tenant_id)},
            )
            return self._finish(delivery, webhook, False, error=str(e))
        finally:
            webhook_delivery_duration_seconds.observe(time.perf_counter() - started)

        if response.is_success:
            return self._finish(delivery, webhook, True, response.status_code, response.text)

        logger.warning(f"Webhook delivery {delivery.id} got HTTP {response.status_code}")
        return self._finish(
            delivery, webhook, False, response.status_code, response.text,
            error=f"HTTP {response.status_code}: {response.text[:200]}",
        )

    def failed_deliveries(self, max_attempts: Optional[int] = None) -> List[WebhookDelivery]:
        max_attempts = max_attempts or settings.WEBHOOK_MAX_ATTEMPTS
        return list(
            self.db.execute(
                select(WebhookDelivery)
                .where(WebhookDelivery.status == "failed", WebhookDelivery.attempts < max_attempts)
                .order_by(WebhookDelivery.created_at)
            ).scalars().all()
        )

    def retry_failed(self, max_attempts: Optional[int] = None) -> Dict[str, int]:
        """Redeliver failed deliveries below ``max_attempts`` (WEBHOOK_MAX_ATTEMPTS).

        Returns:
            {"retried": n, "succeeded": n, "failed": n}
        """
        stats = {"retried": 0, "succeeded": 0, "failed": 0}
        for delivery in self.failed_deliveries(max_attempts):
            stats["retried"] += 1
            if self.deliver(delivery):
                stats["succeeded"] += 1
            else:
                stats["failed"] += 1
        return stats

    def send_test(self, webhook: Webhook) -> WebhookDelivery:
        """Deliver a ``webhook.test`` ping right away."""
        payload = {
            "event": "webhook.test",
            "timestamp": utcnow().isoformat(),
            "data": {"id": str(webhook.id), "type": "webhook", "attributes": {"message": "Test delivery"}},
            "tenant_id": str(webhook.tenant_id),
        }
        delivery = self.queue_delivery(webhook, "webhook.test", payload)
        self.deliver(delivery)
        return delivery
