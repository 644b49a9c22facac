"""Security tests for tenant escape/isolation attacks

Tests cover:
- Cross-tenant reads and writes by record id
- tenant_id injection in request bodies
- Tenant headers naming a foreign tenant
- Cross-tenant references (assignee, invoice allocations)
- Audit trail isolation
- Public website endpoint exposing only published snapshots
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from database import SKIP_TENANT_SCOPE
from models.lead import Lead

pytestmark = pytest.mark.security


def _lead(client, headers, name="Secret Lead"):
    response = client.post("/api/v1/leads", json={"name": name, "email": "lead@initech.com"}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _invoice(client, headers):
    response = client.post(
        "/api/v1/invoices",
        json={"customer_name": "Initech",
              "items": [{"description": "Audit", "quantity": "1", "unit_price": "500", "tax_rate": "0"}]},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestCrossTenantRecordAccess:
    """Records of another tenant behave exactly like missing records"""

    def test_lead_read_update_delete(self, client: TestClient, admin_headers, other_headers):
        lead = _lead(client, admin_headers)
        url = f"/api/v1/leads/{lead['id']}"

        assert client.get(url, headers=other_headers).status_code == 404
        assert client.patch(url, json={"name": "Hijacked"}, headers=other_headers).status_code == 404
        assert client.delete(url, headers=other_headers).status_code == 404
        assert client.post(f"{url}/convert", json={"create_contact": True}, headers=other_headers).status_code == 404

        assert client.get(url, headers=admin_headers).json()["name"] == "Secret Lead"

    def test_lead_listing_is_scoped(self, client: TestClient, admin_headers, other_headers):
        _lead(client, admin_headers)

        listing = client.get("/api/v1/leads", headers=other_headers).json()
        searched = client.get("/api/v1/leads", params={"search": "Secret"}, headers=other_headers).json()

        assert listing["total"] == 0
        assert searched["items"] == []

    def test_deal_access(self, client: TestClient, admin_headers, other_headers):
        deal = client.post("/api/v1/deals", json={"title": "Fleet renewal"}, headers=admin_headers).json()
        url = f"/api/v1/deals/{deal['id']}"

        assert client.get(url, headers=other_headers).status_code == 404
        assert client.post(f"{url}/won", headers=other_headers).status_code == 404
        assert client.get(url, headers=admin_headers).json()["status"] == "open"

    def test_invoice_access(self, client: TestClient, admin_headers, other_headers):
        invoice = _invoice(client, admin_headers)
        url = f"/api/v1/invoices/{invoice['id']}"

        assert client.get(url, headers=other_headers).status_code == 404
        assert client.post(f"{url}/issue", headers=other_headers).status_code == 404
        assert client.get(url, headers=admin_headers).json()["status"] == "draft"

    def test_payment_cannot_allocate_to_foreign_invoice(self, client: TestClient, admin_headers, other_headers):
        invoice = _invoice(client, admin_headers)
        client.post(f"/api/v1/invoices/{invoice['id']}/issue", headers=admin_headers)

        response = client.post(
            "/api/v1/payments",
            json={"payment_date": "2026-03-15", "amount": "100.00", "payment_method": "cash",
                  "allocations": [{"invoice_id": invoice["id"], "amount": "100.00"}]},
            headers=other_headers,
        )

        assert response.status_code in (404, 422)
        refreshed = client.get(f"/api/v1/invoices/{invoice['id']}", headers=admin_headers).json()
        assert refreshed["amount_paid"] == "0.00"

    def test_cannot_assign_user_of_other_tenant(self, client: TestClient, admin_headers, other_admin):
        response = client.post(
            "/api/v1/leads", json={"name": "Poached", "assigned_to": str(other_admin.id)}, headers=admin_headers
        )

        assert response.status_code == 422

    def test_user_of_other_tenant_is_invisible(self, client: TestClient, admin_headers, other_admin):
        response = client.get(f"/api/v1/users/{other_admin.id}", headers=admin_headers)

        assert response.status_code == 404


class TestTenantIdInjection:
    """tenant_id always comes from the resolved tenant, never the payload"""

    def test_body_tenant_id_is_ignored(self, client: TestClient, db_session, tenant, other_tenant,
                                       admin_headers, other_headers):
        response = client.post(
            "/api/v1/leads",
            json={"name": "Injected", "tenant_id": str(other_tenant.id)},
            headers=admin_headers,
        )
        assert response.status_code == 201

        lead = db_session.execute(
            select(Lead).where(Lead.name == "Injected").execution_options(**{SKIP_TENANT_SCOPE: True})
        ).scalar_one()
        assert lead.tenant_id == tenant.id
        assert client.get("/api/v1/leads", headers=other_headers).json()["total"] == 0

    def test_foreign_tenant_id_header_rejected(self, client: TestClient, other_tenant, admin_headers):
        response = client.get("/api/v1/leads", headers={**admin_headers, "X-Tenant-ID": str(other_tenant.id)})

        assert response.status_code == 403
        assert response.json()["message"] == "Unauthorized access to tenant."

    def test_foreign_tenant_slug_header_rejected(self, client: TestClient, other_tenant, admin_headers):
        response = client.get("/api/v1/leads", headers={**admin_headers, "X-Tenant-Slug": "globex"})

        assert response.status_code == 403

    def test_foreign_subdomain_rejected(self, client: TestClient, other_tenant, admin_headers):
        response = client.get("/api/v1/leads", headers={**admin_headers, "Host": "globex.localhost"})

        assert response.status_code == 403

    def test_unknown_tenant_header_is_404(self, client: TestClient, admin_headers):
        response = client.get(
            "/api/v1/leads", headers={**admin_headers, "X-Tenant-ID": "00000000-0000-0000-0000-000000000000"}
        )

        assert response.status_code == 404


class TestAuditIsolation:
    def test_audit_log_only_shows_own_tenant(self, client: TestClient, admin_headers, other_headers):
        _lead(client, admin_headers)
        _lead(client, other_headers, name="Globex Lead")

        params = {"model_type": "lead", "action": "created"}
        acme = client.get("/api/v1/audit-logs", params=params, headers=admin_headers).json()
        globex = client.get("/api/v1/audit-logs", params=params, headers=other_headers).json()

        assert [e["model_name"] for e in acme["items"]] == ["Secret Lead"]
        assert [e["model_name"] for e in globex["items"]] == ["Globex Lead"]


class TestPublicWebsite:
    def test_public_endpoint_serves_published_snapshot_only(self, client: TestClient, admin_headers):
        site = client.post(
            "/api/v1/website/sites",
            json={"name": "Acme", "slug": "acme-site", "status": "published"},
            headers=admin_headers,
        ).json()
        page = client.post(
            f"/api/v1/website/sites/{site['id']}/pages",
            json={"title": "Pricing", "slug": "pricing", "content": {"price": 10}, "publish": True},
            headers=admin_headers,
        ).json()
        client.patch(
            f"/api/v1/website/sites/{site['id']}/pages/{page['id']}",
            json={"content": {"price": 99, "internal_note": "do not ship"}},
            headers=admin_headers,
        )

        public = client.get("/api/v1/public/sites/acme-site/pages/pricing").json()

        assert public["content"] == {"price": 10}
        assert "published_content" not in public
        assert "id" not in public

    def test_other_tenant_cannot_edit_site(self, client: TestClient, admin_headers, other_headers):
        site = client.post(
            "/api/v1/website/sites", json={"name": "Acme", "slug": "acme-site"}, headers=admin_headers
        ).json()

        response = client.patch(f"/api/v1/website/sites/{site['id']}", json={"name": "Owned"}, headers=other_headers)

        assert response.status_code == 404
