"""Webhook signing, delivery and retry tests"""

import hashlib
import hmac
import json

import httpx
import pytest

from models.lead import Lead
from models.webhook import Webhook
from webhooks.service import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    WebhookService,
    encode_payload,
    encrypt_webhook_secret,
    sign,
)

SECRET = "whsec-acme-1234"


class Recorder:
    """MockTransport handler that records requests and replays fixed statuses."""

    def __init__(self, *statuses):
        self.statuses = list(statuses) or [200]
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, text="ok" if status < 400 else "receiver exploded")


@pytest.fixture
def webhook(db_session, tenant):
    webhook = Webhook(
        tenant_id=tenant.id,
        url="https://hooks.acme.test/crm",
        secret=encrypt_webhook_secret(tenant.id, SECRET),
        module="crm",
        event_types=["lead.created", "lead.updated"],
        is_active=True,
    )
    db_session.add(webhook)
    db_session.commit()
    return webhook


@pytest.fixture
def lead(db_session, tenant):
    lead = Lead(tenant_id=tenant.id, name="Ada Lovelace", email="ada@example.com", source="website")
    db_session.add(lead)
    db_session.commit()
    return lead


def test_sign_without_secret_is_empty():
    assert sign(b"{}", None) == ""
    assert sign(b"{}", "") == ""


def test_encode_payload_is_canonical():
    assert encode_payload({"b": 1, "a": {"d": 2, "c": 3}}) == b'{"a":{"c":3,"d":2},"b":1}'


def test_trigger_event_only_queues_subscribers(db_session, tenant, webhook, lead):
    service = WebhookService(db_session)

    queued = service.trigger_event(tenant.id, "crm", "lead.created", lead)
    assert len(queued) == 1
    delivery = queued[0]
    assert delivery.status == "pending"
    assert delivery.attempts == 0
    assert delivery.payload["event"] == "lead.created"
    assert delivery.payload["data"]["id"] == str(lead.id)
    assert delivery.payload["data"]["type"] == "lead"
    attributes = delivery.payload["data"]["attributes"]
    assert attributes["name"] == "Ada Lovelace"
    assert "tenant_id" not in attributes
    assert "id" not in attributes

    assert service.trigger_event(tenant.id, "crm", "lead.deleted", lead) == []
    assert service.trigger_event(tenant.id, "erp", "lead.created", lead) == []


def test_delivery_is_signed(db_session, tenant, webhook, lead):
    recorder = Recorder(200)
    service = WebhookService(db_session, transport=httpx.MockTransport(recorder))
    delivery = service.trigger_event(tenant.id, "crm", "lead.updated", lead)[0]

    assert service.deliver(delivery) is True

    request = recorder.requests[0]
    expected = hmac.new(SECRET.encode(), request.content, hashlib.sha256).hexdigest()
    assert request.headers[SIGNATURE_HEADER] == expected
    assert request.headers[EVENT_HEADER] == "lead.updated"
    assert json.loads(request.content)["tenant_id"] == str(tenant.id)

    assert delivery.status == "success"
    assert delivery.attempts == 1
    assert delivery.response_code == 200
    assert delivery.delivered_at is not None
    assert webhook.last_delivery_status == "success"


def test_non_2xx_marks_failed(db_session, tenant, webhook, lead):
    service = WebhookService(db_session, transport=httpx.MockTransport(Recorder(500)))
    delivery = service.trigger_event(tenant.id, "crm", "lead.created", lead)[0]

    assert service.deliver(delivery) is False
    assert delivery.status == "failed"
    assert delivery.response_code == 500
    assert delivery.error_message == "HTTP 500: receiver exploded"
    assert webhook.last_delivery_status == "failed"


def test_transport_error_marks_failed(db_session, tenant, webhook, lead):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    service = WebhookService(db_session, transport=httpx.MockTransport(handler))
    delivery = service.trigger_event(tenant.id, "crm", "lead.created", lead)[0]

    assert service.deliver(delivery) is False
    assert "connection refused" in delivery.error_message


def test_inactive_webhook_is_not_called(db_session, tenant, webhook, lead):
    recorder = Recorder(200)
    service = WebhookService(db_session, transport=httpx.MockTransport(recorder))
    delivery = service.trigger_event(tenant.id, "crm", "lead.created", lead)[0]
    webhook.is_active = False

    assert service.deliver(delivery) is False
    assert delivery.error_message == "Webhook is inactive or deleted"
    assert recorder.requests == []


def test_retry_resends_same_body_until_max_attempts(db_session, tenant, webhook, lead):
    recorder = Recorder(500, 500, 200)
    service = WebhookService(db_session, transport=httpx.MockTransport(recorder))
    delivery = service.trigger_event(tenant.id, "crm", "lead.created", lead)[0]
    service.deliver(delivery)

    assert service.retry_failed(max_attempts=3) == {"retried": 1, "succeeded": 0, "failed": 1}
    assert service.retry_failed(max_attempts=3) == {"retried": 1, "succeeded": 1, "failed": 0}
    assert delivery.attempts == 3
    assert delivery.status == "success"
    assert len({r.content for r in recorder.requests}) == 1

    assert service.retry_failed(max_attempts=3) == {"retried": 0, "succeeded": 0, "failed": 0}


def test_retry_stops_at_max_attempts(db_session, tenant, webhook, lead):
    service = WebhookService(db_session, transport=httpx.MockTransport(Recorder(500)))
    delivery = service.trigger_event(tenant.id, "crm", "lead.created", lead)[0]
    service.deliver(delivery)
    service.retry_failed(max_attempts=2)

    assert delivery.attempts == 2
    assert service.failed_deliveries(max_attempts=2) == []


def test_send_test_ping(db_session, tenant, webhook):
    recorder = Recorder(204)
    delivery = WebhookService(db_session, transport=httpx.MockTransport(recorder)).send_test(webhook)

    assert delivery.event_type == "webhook.test"
    assert delivery.status == "success"
    assert recorder.requests[0].headers[EVENT_HEADER] == "webhook.test"
