"""Security tests for authentication and authorization bypass attempts

Tests cover:
- Forged, expired and unsigned JWTs
- Tokens of unknown or disabled users
- Role permission boundaries (sales, accountant, viewer)
- Role management: system roles are fixed, grants never exceed the granter's permissions
- Listing the permission catalog is read-only
- Platform-only endpoints and the platform.manage permission
- Secrets and password hashes never leaving the API
"""

import os
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete, select

from conftest import auth_headers
from models.role import Permission, role_permission
from models.webhook import Webhook

pytestmark = pytest.mark.security


def _token(payload, secret=None):
    token = jwt.encode(payload, secret or os.environ["JWT_SECRET"], algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def _claims(user, **overrides):
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user.id),
        "tenant_id": str(user.tenant_id),
        "email": user.email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=5)).timestamp()),
    }
    claims.update(overrides)
    return claims


class TestTokenForgery:
    """Only tokens signed with JWT_SECRET for an existing, active user pass"""

    def test_wrong_signing_key(self, client: TestClient, admin_user):
        headers = _token(_claims(admin_user), secret="attacker-controlled-secret-with-enough-length-000")

        response = client.get("/api/v1/auth/me", headers=headers)

        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"

    def test_expired_token(self, client: TestClient, admin_user):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        headers = _token(_claims(admin_user, iat=int(past.timestamp()), exp=int(past.timestamp()) + 60))

        response = client.get("/api/v1/auth/me", headers=headers)

        assert response.status_code == 401
        assert response.json()["message"] == "Token has expired"

    def test_unsigned_token(self, client: TestClient, admin_user):
        token = jwt.encode(_claims(admin_user), key=None, algorithm="none")

        response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_unknown_user(self, client: TestClient, admin_user):
        response = client.get("/api/v1/auth/me", headers=_token(_claims(admin_user, sub=str(uuid4()))))

        assert response.status_code == 401

    def test_token_without_subject(self, client: TestClient, admin_user):
        claims = _claims(admin_user)
        del claims["sub"]

        response = client.get("/api/v1/auth/me", headers=_token(claims))

        assert response.status_code == 401

    def test_disabled_user(self, client: TestClient, db_session, sales_user):
        headers = auth_headers(sales_user)
        sales_user.status = "DISABLED"
        db_session.commit()

        response = client.get("/api/v1/leads", headers=headers)

        assert response.status_code == 403

    def test_tenant_claim_does_not_grant_access(self, client: TestClient, admin_user, other_tenant):
        """A forged tenant_id claim is ignored; the user's own tenant decides"""
        headers = _token(_claims(admin_user, tenant_id=str(other_tenant.id)))

        response = client.get("/api/v1/tenant", headers=headers)

        assert response.status_code == 200
        assert response.json()["slug"] == "acme"


class TestRolePermissions:
    def test_sales_cannot_create_invoice(self, client: TestClient, sales_headers):
        response = client.post(
            "/api/v1/invoices",
            json={"customer_name": "Initech",
                  "items": [{"description": "Work", "quantity": "1", "unit_price": "10"}]},
            headers=sales_headers,
        )

        assert response.status_code == 403
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "This action is unauthorized."
        assert body["error_code"] == "FORBIDDEN"

    def test_sales_cannot_delete_lead(self, client: TestClient, admin_headers, sales_headers):
        lead = client.post("/api/v1/leads", json={"name": "Keep me"}, headers=admin_headers).json()

        response = client.delete(f"/api/v1/leads/{lead['id']}", headers=sales_headers)

        assert response.status_code == 403
        assert client.get(f"/api/v1/leads/{lead['id']}", headers=admin_headers).status_code == 200

    def test_viewer_cannot_create_lead(self, client: TestClient, viewer_headers):
        response = client.post("/api/v1/leads", json={"name": "Nope"}, headers=viewer_headers)

        assert response.status_code == 403

    def test_viewer_can_read_leads(self, client: TestClient, viewer_headers):
        assert client.get("/api/v1/leads", headers=viewer_headers).status_code == 200

    def test_accountant_has_no_crm_access(self, client: TestClient, accountant_headers):
        assert client.get("/api/v1/leads", headers=accountant_headers).status_code == 403

    def test_sales_cannot_read_audit_logs(self, client: TestClient, sales_headers):
        assert client.get("/api/v1/audit-logs", headers=sales_headers).status_code == 403

    def test_sales_cannot_grant_themselves_admin(self, client: TestClient, sales_user, sales_headers):
        response = client.post(
            f"/api/v1/users/{sales_user.id}/roles", json={"role": "super_admin"}, headers=sales_headers
        )

        assert response.status_code in (403, 422)
        assert client.get("/api/v1/auth/me", headers=sales_headers).json()["roles"] == ["sales"]


ROLE_MANAGER_PERMISSIONS = [
    "core.roles.viewAny",
    "core.roles.view",
    "core.roles.create",
    "core.roles.update",
    "core.users.view",
    "core.users.update",
]


def _role_id(client: TestClient, headers, slug):
    roles = client.get("/api/v1/roles", params={"per_page": 100}, headers=headers).json()["items"]
    return next(r["id"] for r in roles if r["slug"] == slug)


class TestRoleEscalation:
    @pytest.fixture
    def manager_headers(self, client: TestClient, tenant, make_user, admin_headers):
        """A user whose only power is managing roles and users."""
        role = client.post(
            "/api/v1/roles",
            json={"name": "Role manager", "slug": "role_manager", "permissions": ROLE_MANAGER_PERMISSIONS},
            headers=admin_headers,
        )
        assert role.status_code == 201
        manager = make_user(tenant, "roles@acme.com")
        granted = client.post(
            f"/api/v1/users/{manager.id}/roles", json={"role": "role_manager"}, headers=admin_headers
        )
        assert granted.status_code == 200
        return auth_headers(manager)

    def test_system_role_permissions_cannot_be_replaced(self, client: TestClient, manager_headers):
        viewer_id = _role_id(client, manager_headers, "viewer")

        response = client.put(
            f"/api/v1/roles/{viewer_id}/permissions",
            json={"permissions": ["core.roles.viewAny"]},
            headers=manager_headers,
        )

        assert response.status_code == 403
        viewer = client.get(f"/api/v1/roles/{viewer_id}", headers=manager_headers).json()
        assert "core.roles.viewAny" not in viewer["permissions"]

    def test_super_admin_cannot_edit_system_roles(self, client: TestClient, admin_headers):
        sales_id = _role_id(client, admin_headers, "sales")

        assert client.patch(
            f"/api/v1/roles/{sales_id}", json={"name": "Closers"}, headers=admin_headers
        ).status_code == 403
        assert client.put(
            f"/api/v1/roles/{sales_id}/permissions", json={"permissions": []}, headers=admin_headers
        ).status_code == 403
        assert client.delete(f"/api/v1/roles/{sales_id}", headers=admin_headers).status_code == 403
        assert client.get(f"/api/v1/roles/{sales_id}", headers=admin_headers).json()["name"] != "Closers"

    def test_cannot_grant_own_role_unheld_permissions(self, client: TestClient, manager_headers):
        role_id = _role_id(client, manager_headers, "role_manager")

        response = client.put(
            f"/api/v1/roles/{role_id}/permissions",
            json={"permissions": ROLE_MANAGER_PERMISSIONS + ["erp.payments.delete"]},
            headers=manager_headers,
        )

        assert response.status_code == 403
        assert response.json()["errors"]["permissions"] == [
            "Permission 'erp.payments.delete' is not held by you."
        ]
        role = client.get(f"/api/v1/roles/{role_id}", headers=manager_headers).json()
        assert sorted(role["permissions"]) == sorted(ROLE_MANAGER_PERMISSIONS)

    def test_cannot_create_role_with_unheld_permissions(self, client: TestClient, manager_headers):
        response = client.post(
            "/api/v1/roles",
            json={"name": "Shadow", "slug": "shadow", "permissions": ["crm.leads.delete"]},
            headers=manager_headers,
        )

        assert response.status_code == 403

    def test_can_grant_held_permissions(self, client: TestClient, manager_headers):
        response = client.post(
            "/api/v1/roles",
            json={"name": "Role reader", "slug": "role_reader",
                  "permissions": ["core.roles.viewAny", "core.roles.view"]},
            headers=manager_headers,
        )

        assert response.status_code == 201

    def test_cannot_hand_out_a_stronger_role(self, client: TestClient, manager_headers, sales_user):
        response = client.post(
            f"/api/v1/users/{sales_user.id}/roles", json={"role": "super_admin"}, headers=manager_headers
        )

        assert response.status_code == 403
        assert client.get("/api/v1/auth/me", headers=auth_headers(sales_user)).json()["roles"] == ["sales"]

    def test_super_admin_may_grant_any_tenant_permission(self, client: TestClient, admin_headers):
        response = client.post(
            "/api/v1/roles",
            json={"name": "Payments", "slug": "payments", "permissions": ["erp.payments.delete"]},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["permissions"] == ["erp.payments.delete"]

    def test_listing_permissions_does_not_seed_the_catalog(self, client: TestClient, db_session, admin_headers):
        removed = select(Permission.id).where(Permission.name == "crm.leads.delete")
        db_session.execute(delete(role_permission).where(role_permission.c.permission_id.in_(removed)))
        db_session.execute(delete(Permission).where(Permission.name == "crm.leads.delete"))
        db_session.commit()

        response = client.get("/api/v1/permissions", headers=admin_headers)

        assert response.status_code == 200
        assert "crm.leads.delete" not in [p["name"] for p in response.json()]
        assert db_session.execute(removed).scalar_one_or_none() is None


class TestPlatformBoundary:
    def test_tenant_super_admin_is_not_platform_user(self, client: TestClient, admin_headers):
        response = client.post("/api/v1/platform/tenants", json={"name": "Rogue"}, headers=admin_headers)

        assert response.status_code == 403

    def test_custom_role_cannot_hold_platform_permission(self, client: TestClient, admin_headers):
        response = client.post(
            "/api/v1/roles",
            json={"name": "Operator", "slug": "operator", "permissions": ["platform.manage"]},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert "permissions" in response.json()["errors"]

    def test_platform_permission_not_listed_for_tenants(self, client: TestClient, admin_headers):
        names = [p["name"] for p in client.get("/api/v1/permissions", headers=admin_headers).json()]

        assert "crm.leads.create" in names
        assert "platform.manage" not in names


class TestSecretExposure:
    def test_webhook_secret_never_returned(self, client: TestClient, db_session, admin_headers):
        payload = {
            "url": "https://hooks.acme.com/bizflow",
            "secret": "whsec-super-secret",
            "module": "crm",
            "event_types": ["lead.created"],
        }

        created = client.post("/api/v1/webhooks", json=payload, headers=admin_headers)
        listed = client.get("/api/v1/webhooks", headers=admin_headers)

        assert created.status_code == 201
        assert created.json()["has_secret"] is True
        assert "secret" not in created.json()
        assert "whsec-super-secret" not in created.text
        assert "whsec-super-secret" not in listed.text

        stored = db_session.execute(select(Webhook.secret)).scalar_one()
        assert stored != "whsec-super-secret"

    def test_password_hash_never_returned(self, client: TestClient, admin_headers, sales_user):
        listing = client.get("/api/v1/users", headers=admin_headers)
        single = client.get(f"/api/v1/users/{sales_user.id}", headers=admin_headers)

        assert listing.status_code == 200
        assert "password" not in listing.text
        assert "argon2" not in single.text
