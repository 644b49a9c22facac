"""Integration tests for the CRM API

Tests cover:
- Lead CRUD, soft delete and restore
- Lead scoring on create and on demand
- Lead conversion into contact and deal
- Deal stage moves, won/lost transitions and history (one audit entry per change)
- Notifications for the deal assignee
- Workflows and webhooks fired by CRM events, one delivery per webhook and change
"""

import hashlib
import hmac
from uuid import UUID

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from models.audit_log import AuditLog
from models.contact import Activity, Contact
from models.deal import Pipeline
from models.notification import Notification
from models.webhook import Webhook, WebhookDelivery
from models.workflow import WorkflowRun
from webhooks.service import encrypt_webhook_secret

pytestmark = pytest.mark.integration

LEAD = {"name": "Grace Brewster Hopper", "email": "grace@navy.mil", "phone": "+1 555 0100", "source": "referral"}


def _create_lead(client, headers, **overrides):
    response = client.post("/api/v1/leads", json={**LEAD, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _stages(db_session: Session, tenant):
    pipeline = db_session.execute(
        select(Pipeline).where(Pipeline.tenant_id == tenant.id, Pipeline.is_default.is_(True))
    ).scalar_one()
    return pipeline, list(pipeline.stages)


class TestLeads:

    def test_create_scores_lead(self, client: TestClient, sales_headers, sales_user):
        lead = _create_lead(client, sales_headers)

        assert lead["status"] == "new"
        assert lead["score"] > 0
        assert lead["score_calculated_at"] is not None
        assert lead["created_by"] == str(sales_user.id)

        history = client.get(f"/api/v1/leads/{lead['id']}/scores", headers=sales_headers).json()
        assert len(history) == 1
        assert history[0]["score"] == lead["score"]
        assert history[0]["breakdown"] == {"email": 10, "phone": 10, "source": 30, "status": 5}

    def test_list_filters_and_paginates(self, client: TestClient, sales_headers):
        _create_lead(client, sales_headers, name="Ada", email="ada@example.com", source="website")
        _create_lead(client, sales_headers, name="Alan", email="alan@example.com", source="referral")
        _create_lead(client, sales_headers, name="Grace", email="grace@example.com", source="referral")

        page = client.get("/api/v1/leads", params={"source": "referral", "per_page": 1}, headers=sales_headers).json()
        assert page["total"] == 2
        assert len(page["items"]) == 1
        assert page["per_page"] == 1

        found = client.get("/api/v1/leads", params={"search": "ada@"}, headers=sales_headers).json()
        assert [item["name"] for item in found["items"]] == ["Ada"]

    def test_update_publishes_audited_change(self, client: TestClient, db_session: Session, sales_headers):
        lead = _create_lead(client, sales_headers)

        response = client.patch(f"/api/v1/leads/{lead['id']}", json={"status": "qualified"}, headers=sales_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "qualified"
        entry = db_session.execute(
            select(AuditLog).where(AuditLog.model_type == "lead", AuditLog.action == "updated")
        ).scalar_one()
        assert entry.old_values == {"status": "new"}
        assert entry.new_values == {"status": "qualified"}

    def test_invalid_status_is_rejected(self, client: TestClient, sales_headers):
        lead = _create_lead(client, sales_headers)

        response = client.patch(f"/api/v1/leads/{lead['id']}", json={"status": "hot"}, headers=sales_headers)

        assert response.status_code == 422
        body = response.json()
        assert body["message"] == "The given data was invalid."
        assert "status" in body["errors"]

    def test_soft_delete_and_restore(self, client: TestClient, admin_headers):
        lead = _create_lead(client, admin_headers)

        assert client.delete(f"/api/v1/leads/{lead['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/v1/leads/{lead['id']}", headers=admin_headers).status_code == 404
        trashed = client.get("/api/v1/leads", params={"trashed": True}, headers=admin_headers).json()
        assert [item["id"] for item in trashed["items"]] == [lead["id"]]

        restored = client.post(f"/api/v1/leads/{lead['id']}/restore", headers=admin_headers)
        assert restored.status_code == 200
        assert restored.json()["deleted_at"] is None

    def test_restore_requires_deleted_lead(self, client: TestClient, admin_headers):
        lead = _create_lead(client, admin_headers)
        response = client.post(f"/api/v1/leads/{lead['id']}/restore", headers=admin_headers)
        assert response.status_code == 422

    def test_rescore(self, client: TestClient, sales_headers):
        lead = _create_lead(client, sales_headers, email=None, phone=None, source=None)
        client.patch(f"/api/v1/leads/{lead['id']}", json={"email": "found@example.com"}, headers=sales_headers)

        rescored = client.post(f"/api/v1/leads/{lead['id']}/score", headers=sales_headers).json()

        assert rescored["score"] > lead["score"]


class TestConversion:

    def test_convert_to_contact_and_deal(self, client: TestClient, db_session: Session, sales_headers, tenant):
        lead = _create_lead(client, sales_headers)

        response = client.post(
            f"/api/v1/leads/{lead['id']}/convert",
            json={"create_contact": True, "create_deal": True, "deal": {"amount": "12000.00"}},
            headers=sales_headers,
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["lead"]["status"] == "converted"

        contact = db_session.get(Contact, UUID(data["contact_id"]))
        assert (contact.first_name, contact.last_name) == ("Grace", "Brewster Hopper")

        deal = client.get(f"/api/v1/deals/{data['deal_id']}", headers=sales_headers).json()
        _, stages = _stages(db_session, tenant)
        assert deal["title"] == "Grace Brewster Hopper"
        assert deal["amount"] == "12000.00"
        assert deal["probability"] == 50
        assert deal["stage_id"] == str(stages[0].id)
        assert deal["contact_id"] == data["contact_id"]
        assert deal["lead_id"] == lead["id"]

    def test_cannot_convert_twice(self, client: TestClient, sales_headers):
        lead = _create_lead(client, sales_headers)
        client.post(f"/api/v1/leads/{lead['id']}/convert", json={}, headers=sales_headers)

        response = client.post(f"/api/v1/leads/{lead['id']}/convert", json={}, headers=sales_headers)

        assert response.status_code == 422
        assert response.json()["message"] == "Lead has already been converted."

    def test_nothing_to_convert(self, client: TestClient, sales_headers):
        lead = _create_lead(client, sales_headers)
        response = client.post(
            f"/api/v1/leads/{lead['id']}/convert",
            json={"create_contact": False, "create_deal": False},
            headers=sales_headers,
        )
        assert response.status_code == 422


class TestDeals:

    def _deal(self, client, headers, **extra):
        response = client.post("/api/v1/deals", json={"title": "Fleet renewal", "amount": "5000", **extra},
                               headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    def test_create_uses_default_pipeline(self, client: TestClient, db_session: Session, sales_headers, tenant):
        pipeline, stages = _stages(db_session, tenant)

        deal = self._deal(client, sales_headers)

        assert deal["pipeline_id"] == str(pipeline.id)
        assert deal["stage_id"] == str(stages[0].id)
        assert deal["probability"] == stages[0].probability
        assert deal["status"] == "open"

    def test_move_stage_records_history(self, client: TestClient, db_session: Session, sales_headers, tenant):
        _, stages = _stages(db_session, tenant)
        deal = self._deal(client, sales_headers)

        moved = client.post(f"/api/v1/deals/{deal['id']}/move-stage", json={"stage_id": str(stages[2].id)},
                            headers=sales_headers)

        assert moved.status_code == 200
        assert moved.json()["probability"] == stages[2].probability
        history = client.get(f"/api/v1/deals/{deal['id']}/history", headers=sales_headers).json()
        assert [(h["field"], h["old_value"], h["new_value"]) for h in history] == [
            ("stage_id", str(stages[0].id), str(stages[2].id)),
        ]

    def test_stage_of_other_pipeline_is_rejected(self, client: TestClient, admin_headers):
        other = client.post(
            "/api/v1/pipelines",
            json={"name": "Partners", "stages": [{"name": "Intro", "probability": 5}]},
            headers=admin_headers,
        )
        assert other.status_code == 201, other.text
        deal = self._deal(client, admin_headers)

        response = client.post(
            f"/api/v1/deals/{deal['id']}/move-stage",
            json={"stage_id": other.json()["stages"][0]["id"]},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert "stage_id" in response.json()["errors"]

    def test_won_notifies_assignee(self, client: TestClient, db_session: Session, admin_headers, sales_user):
        deal = self._deal(client, admin_headers, assigned_to=str(sales_user.id))

        won = client.post(f"/api/v1/deals/{deal['id']}/won", headers=admin_headers)

        assert won.status_code == 200
        assert won.json()["status"] == "won"
        assert won.json()["probability"] == 100

        notification = db_session.execute(
            select(Notification).where(Notification.user_id == sales_user.id)
        ).scalar_one()
        assert notification.message == "Deal 'Fleet renewal' has been marked as won."
        assert notification.type == "deal_update"

        history = client.get(f"/api/v1/deals/{deal['id']}/history", headers=admin_headers).json()
        assert [(h["field"], h["new_value"]) for h in history] == [("status", "won")]

    def test_lost_sets_zero_probability(self, client: TestClient, sales_headers):
        deal = self._deal(client, sales_headers)
        lost = client.post(f"/api/v1/deals/{deal['id']}/lost", headers=sales_headers).json()
        assert (lost["status"], lost["probability"]) == ("lost", 0)

    def test_won_writes_one_audit_entry(self, client: TestClient, db_session: Session, admin_headers):
        deal = self._deal(client, admin_headers)

        client.post(f"/api/v1/deals/{deal['id']}/won", headers=admin_headers)

        entries = db_session.execute(
            select(AuditLog).where(AuditLog.model_type == "deal", AuditLog.model_id == UUID(deal["id"]))
        ).scalars().all()
        assert sorted(entry.action for entry in entries) == ["created", "updated"]
        updated = next(entry for entry in entries if entry.action == "updated")
        assert updated.new_values["status"] == "won"
        assert updated.metadata_json == {"event": "deal.updated"}

    def test_reopen_notifies_assignee(self, client: TestClient, db_session: Session, admin_headers, sales_user):
        deal = self._deal(client, admin_headers, assigned_to=str(sales_user.id))
        client.post(f"/api/v1/deals/{deal['id']}/lost", headers=admin_headers)

        reopened = client.patch(f"/api/v1/deals/{deal['id']}", json={"status": "open"}, headers=admin_headers)

        assert reopened.status_code == 200
        messages = db_session.execute(
            select(Notification.message).where(Notification.user_id == sales_user.id)
        ).scalars().all()
        assert sorted(messages) == [
            "Deal 'Fleet renewal' has been marked as lost.",
            "Deal 'Fleet renewal' has been updated.",
        ]

    def test_assignee_must_belong_to_tenant(self, client: TestClient, admin_headers, other_admin):
        response = client.post(
            "/api/v1/deals",
            json={"title": "Poached", "assigned_to": str(other_admin.id)},
            headers=admin_headers,
        )
        assert response.status_code == 422


class TestAutomation:

    def test_workflow_runs_on_deal_won(self, client: TestClient, db_session: Session, admin_headers, sales_user):
        workflow = client.post(
            "/api/v1/workflows",
            json={
                "name": "Kick-off call",
                "event": "deal.status_changed",
                "conditions": [{"type": "status_change", "to_status": "won"}],
                "actions": [{"type": "create_activity", "activity_type": "call", "subject": "Kick-off {{title}}"}],
            },
            headers=admin_headers,
        )
        assert workflow.status_code == 201, workflow.text
        deal = client.post("/api/v1/deals", json={"title": "Fleet renewal", "assigned_to": str(sales_user.id)},
                           headers=admin_headers).json()

        client.post(f"/api/v1/deals/{deal['id']}/won", headers=admin_headers)

        activity = db_session.execute(select(Activity).where(Activity.related_type == "deal")).scalar_one()
        assert activity.subject == "Kick-off Fleet renewal"
        assert activity.assigned_to == sales_user.id

        runs = client.get(f"/api/v1/workflows/{workflow.json()['id']}/runs", headers=admin_headers).json()
        assert [run["status"] for run in runs["items"]] == ["completed"]

    def test_webhook_receives_signed_lead_event(
        self, client: TestClient, db_session: Session, admin_headers, tenant, monkeypatch
    ):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(200, text="thanks")

        transport = httpx.MockTransport(handler)
        real_client = httpx.Client
        monkeypatch.setattr(
            "webhooks.service.httpx.Client",
            lambda **kwargs: real_client(**{**kwargs, "transport": transport}),
        )
        db_session.add(Webhook(
            tenant_id=tenant.id,
            url="https://hooks.example.com/crm",
            secret=encrypt_webhook_secret(tenant.id, "acme-hook-secret"),
            module="crm",
            event_types=["lead.created"],
        ))
        db_session.commit()

        lead = client.post("/api/v1/leads", json=LEAD, headers=admin_headers).json()

        assert len(received) == 1
        request = received[0]
        assert request.headers["X-Webhook-Event"] == "lead.created"
        expected = hmac.new(b"acme-hook-secret", request.content, hashlib.sha256).hexdigest()
        assert request.headers["X-Webhook-Signature"] == expected
        delivery = db_session.execute(select(WebhookDelivery)).scalar_one()
        assert delivery.status == "success"
        assert delivery.payload["data"]["id"] == lead["id"]

    def test_deal_transition_reaches_each_webhook_once(
        self, client: TestClient, db_session: Session, admin_headers, tenant, monkeypatch
    ):
        received = []
        transport = httpx.MockTransport(lambda request: received.append(request) or httpx.Response(200))
        real_client = httpx.Client
        monkeypatch.setattr(
            "webhooks.service.httpx.Client",
            lambda **kwargs: real_client(**{**kwargs, "transport": transport}),
        )
        everything = Webhook(tenant_id=tenant.id, url="https://hooks.example.com/all",
                             module="crm", event_types=["*"])
        outcomes = Webhook(tenant_id=tenant.id, url="https://hooks.example.com/outcomes",
                           module="crm", event_types=["deal.status_changed"])
        db_session.add_all([everything, outcomes])
        db_session.commit()
        deal = client.post("/api/v1/deals", json={"title": "Fleet renewal"}, headers=admin_headers).json()
        received.clear()

        client.post(f"/api/v1/deals/{deal['id']}/won", headers=admin_headers)

        assert sorted((str(r.url), r.headers["X-Webhook-Event"]) for r in received) == [
            ("https://hooks.example.com/all", "deal.updated"),
            ("https://hooks.example.com/outcomes", "deal.status_changed"),
        ]
