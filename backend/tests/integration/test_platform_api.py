"""Platform tenant management API tests

Tests cover:
- Tenant provisioning with an owner (roles, sequences, default pipeline)
- Listing with status and search filters
- Suspend / activate and their effect on tenant requests
- Dotted settings get/put and deep-merged settings updates
- Usage statistics
- Platform endpoints refused to tenant users
- GET /tenant for tenant users and platform operators
"""

import pytest
from sqlalchemy import select

from conftest import auth_headers
from database import SKIP_TENANT_SCOPE
from models.audit_log import AuditLog
from models.deal import Pipeline
from models.tenant import Tenant
from models.user import User

pytestmark = pytest.mark.integration

OWNER = {"name": "Bill Lumbergh", "email": "bill@initech.com", "password": "Stapler-Basement-2026!"}


def _create(client, headers, **overrides):
    payload = {"name": "Initech", "slug": "initech", **overrides}
    return client.post("/api/v1/platform/tenants", json=payload, headers=headers)


class TestTenantProvisioning:
    def test_create_tenant_with_owner(self, client, db_session, platform_headers):
        response = _create(client, platform_headers, owner=OWNER, settings={"locale": "en"})

        assert response.status_code == 201
        body = response.json()
        assert body["slug"] == "initech"
        assert body["status"] == "active"
        assert body["settings"] == {"locale": "en"}
        assert body["usage_stats"] == {"users": 1, "leads": 0, "deals": 0, "invoices": 0}

        owner = db_session.execute(
            select(User).where(User.email == "bill@initech.com").execution_options(**{SKIP_TENANT_SCOPE: True})
        ).scalar_one()
        assert body["owner_user_id"] == str(owner.id)
        assert owner.role_slugs == ["super_admin"]

        pipeline = db_session.execute(
            select(Pipeline).where(Pipeline.tenant_id == owner.tenant_id).execution_options(**{SKIP_TENANT_SCOPE: True})
        ).scalar_one()
        assert pipeline.is_default
        assert [stage.name for stage in pipeline.stages] == ["New", "Qualified", "Proposal", "Negotiation"]

        actions = db_session.execute(
            select(AuditLog.action)
            .where(AuditLog.tenant_id == owner.tenant_id)
            .execution_options(**{SKIP_TENANT_SCOPE: True})
        ).scalars().all()
        assert {"TENANT_CREATED", "TENANT_OWNER_ASSIGNED"} <= set(actions)

    def test_owner_can_log_in(self, client, platform_headers):
        _create(client, platform_headers, owner=OWNER)

        response = client.post(
            "/api/v1/auth/login",
            json={"email": OWNER["email"], "password": OWNER["password"], "tenant_slug": "initech"},
        )

        assert response.status_code == 200

    def test_slug_generated_from_name(self, client, platform_headers):
        first = client.post("/api/v1/platform/tenants", json={"name": "Umbrella Corp"}, headers=platform_headers)
        second = client.post("/api/v1/platform/tenants", json={"name": "Umbrella Corp"}, headers=platform_headers)

        assert first.json()["slug"] == "umbrella-corp"
        assert second.json()["slug"] == "umbrella-corp-1"

    def test_duplicate_slug_conflicts(self, client, tenant, platform_headers):
        response = _create(client, platform_headers, slug="acme")

        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFLICT"

    def test_weak_owner_password_rejected(self, client, db_session, platform_headers):
        owner = {**OWNER, "password": "passwordpassword"}

        response = _create(client, platform_headers, owner=owner)

        assert response.status_code == 422
        assert db_session.execute(select(Tenant).where(Tenant.slug == "initech")).scalar_one_or_none() is None

    def test_invalid_slug_rejected(self, client, platform_headers):
        response = _create(client, platform_headers, slug="Not A Slug")

        assert response.status_code == 422
        assert "slug" in response.json()["errors"]

    def test_assign_existing_owner(self, client, tenant, sales_user, platform_headers):
        response = client.post(
            f"/api/v1/platform/tenants/{tenant.id}/owner",
            json={"user_id": str(sales_user.id)},
            headers=platform_headers,
        )

        assert response.status_code == 200
        assert response.json()["owner_user_id"] == str(sales_user.id)

    def test_owner_from_other_tenant_rejected(self, client, tenant, other_admin, platform_headers):
        response = client.post(
            f"/api/v1/platform/tenants/{tenant.id}/owner",
            json={"user_id": str(other_admin.id)},
            headers=platform_headers,
        )

        assert response.status_code == 422
        assert response.json()["message"] == "User belongs to another tenant."


class TestTenantListing:
    def test_list_and_filters(self, client, db_session, tenant, other_tenant, platform_headers):
        other_tenant.status = "suspended"
        db_session.commit()

        everything = client.get("/api/v1/platform/tenants", headers=platform_headers).json()
        suspended = client.get("/api/v1/platform/tenants?status=suspended", headers=platform_headers).json()
        searched = client.get("/api/v1/platform/tenants?search=acm", headers=platform_headers).json()

        assert everything["total"] == 2
        assert [t["slug"] for t in suspended["items"]] == ["globex"]
        assert [t["slug"] for t in searched["items"]] == ["acme"]

    def test_unknown_tenant_is_404(self, client, platform_headers):
        response = client.get(
            "/api/v1/platform/tenants/00000000-0000-0000-0000-000000000000", headers=platform_headers
        )

        assert response.status_code == 404


class TestTenantStatus:
    def test_suspend_blocks_tenant_requests(self, client, tenant, admin_user, platform_headers):
        headers = auth_headers(admin_user)
        assert client.get("/api/v1/leads", headers=headers).status_code == 200

        response = client.post(f"/api/v1/platform/tenants/{tenant.id}/suspend", headers=platform_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "suspended"

        blocked = client.get("/api/v1/leads", headers=headers)
        assert blocked.status_code == 403
        assert blocked.json()["message"] == "Tenant is not active."

        client.post(f"/api/v1/platform/tenants/{tenant.id}/activate", headers=platform_headers)
        assert client.get("/api/v1/leads", headers=headers).status_code == 200


class TestTenantSettings:
    def test_put_and_get_dotted_key(self, client, tenant, platform_headers):
        url = f"/api/v1/platform/tenants/{tenant.id}/settings"

        put = client.put(url, json={"key": "zkbiotime.base_url", "value": "https://bt.acme.com"},
                         headers=platform_headers)
        single = client.get(url, params={"key": "zkbiotime.base_url"}, headers=platform_headers)
        everything = client.get(url, headers=platform_headers)

        assert put.json() == {"key": "zkbiotime.base_url", "value": "https://bt.acme.com"}
        assert single.json()["value"] == "https://bt.acme.com"
        assert everything.json()["zkbiotime"] == {"base_url": "https://bt.acme.com"}

    def test_invalid_key_rejected(self, client, tenant, platform_headers):
        response = client.put(
            f"/api/v1/platform/tenants/{tenant.id}/settings",
            json={"key": "bad..key", "value": 1},
            headers=platform_headers,
        )

        assert response.status_code == 422

    def test_patch_deep_merges_settings(self, client, db_session, tenant, platform_headers):
        tenant.settings = {"lead_scoring": {"source": {"referral": 30}}, "locale": "en"}
        db_session.commit()

        response = client.patch(
            f"/api/v1/platform/tenants/{tenant.id}",
            json={"name": "Acme Corporation", "settings": {"lead_scoring": {"source": {"event": 20}}}},
            headers=platform_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Acme Corporation"
        assert body["settings"] == {"lead_scoring": {"source": {"referral": 30, "event": 20}}, "locale": "en"}

    def test_usage_stats_count_tenant_records(self, client, tenant, admin_headers, platform_headers):
        client.post("/api/v1/leads", json={"name": "Stat Lead"}, headers=admin_headers)

        body = client.get(f"/api/v1/platform/tenants/{tenant.id}", headers=platform_headers).json()

        assert body["usage_stats"]["leads"] == 1
        assert body["usage_stats"]["users"] == 1


class TestPlatformAccess:
    def test_tenant_admin_cannot_manage_tenants(self, client, tenant, admin_headers):
        listing = client.get("/api/v1/platform/tenants", headers=admin_headers)
        suspend = client.post(f"/api/v1/platform/tenants/{tenant.id}/suspend", headers=admin_headers)

        assert listing.status_code == 403
        assert suspend.status_code == 403
        assert listing.json()["message"] == "This action is unauthorized."

    def test_anonymous_is_401(self, client):
        assert client.get("/api/v1/platform/tenants").status_code == 401

    def test_current_tenant(self, client, tenant, admin_headers):
        response = client.get("/api/v1/tenant", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["slug"] == "acme"

    def test_platform_operator_addresses_tenant_by_header(self, client, tenant, platform_headers):
        by_id = client.get("/api/v1/tenant", headers={**platform_headers, "X-Tenant-ID": str(tenant.id)})
        by_slug = client.get("/api/v1/tenant", headers={**platform_headers, "X-Tenant-Slug": "acme"})

        assert by_id.json()["id"] == str(tenant.id)
        assert by_slug.json()["slug"] == "acme"

    def test_platform_operator_without_tenant_is_400(self, client, platform_headers):
        response = client.get("/api/v1/tenant", headers=platform_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Tenant context is required."
