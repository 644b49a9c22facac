"""Integration tests for login and the current-user endpoint

Tests cover:
- Tenant login by slug, platform login without a slug
- Generic 401 for wrong passwords, unknown tenants and disabled accounts
- 403 for suspended tenants
- /auth/me roles and effective permissions
- Failed logins recorded in the tenant's audit trail
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from auth.jwt import decode_token
from conftest import TEST_PASSWORD, auth_headers
from models.audit_log import AuditLog

pytestmark = pytest.mark.integration


class TestLogin:

    def test_tenant_user_login(self, client: TestClient, admin_user, tenant):
        response = client.post(
            "/api/v1/auth/login",
            json={"tenant_slug": "acme", "email": "admin@acme.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        claims = decode_token(data["access_token"])
        assert claims["sub"] == str(admin_user.id)
        assert claims["tenant_id"] == str(tenant.id)

    def test_email_is_case_insensitive(self, client: TestClient, admin_user):
        response = client.post(
            "/api/v1/auth/login",
            json={"tenant_slug": "acme", "email": "ADMIN@acme.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 200

    def test_platform_login_without_slug(self, client: TestClient, platform_admin):
        response = client.post("/api/v1/auth/login", json={"email": "ops@platform.com", "password": TEST_PASSWORD})

        assert response.status_code == 200
        assert decode_token(response.json()["access_token"]).get("tenant_id") is None

    def test_tenant_user_cannot_log_in_without_slug(self, client: TestClient, admin_user):
        response = client.post("/api/v1/auth/login", json={"email": "admin@acme.com", "password": TEST_PASSWORD})
        assert response.status_code == 401

    def test_wrong_password(self, client: TestClient, db_session: Session, admin_user, tenant):
        response = client.post(
            "/api/v1/auth/login",
            json={"tenant_slug": "acme", "email": "admin@acme.com", "password": "Not-The-Password-1"},
        )

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Invalid email or password"
        assert body["error_code"] == "UNAUTHORIZED"

        entry = db_session.execute(
            select(AuditLog).where(AuditLog.action == "LOGIN_FAILED", AuditLog.tenant_id == tenant.id)
        ).scalar_one()
        assert entry.metadata_json["reason"] == "invalid_credentials"

    def test_user_of_other_tenant_cannot_use_slug(self, client: TestClient, other_admin, tenant):
        response = client.post(
            "/api/v1/auth/login",
            json={"tenant_slug": "acme", "email": "admin@globex.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 401

    def test_unknown_tenant_gives_same_error(self, client: TestClient, admin_user):
        response = client.post(
            "/api/v1/auth/login",
            json={"tenant_slug": "nowhere", "email": "admin@acme.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    def test_disabled_account(self, client: TestClient, db_session: Session, admin_user):
        admin_user.status = "DISABLED"
        db_session.commit()

        response = client.post(
            "/api/v1/auth/login",
            json={"tenant_slug": "acme", "email": "admin@acme.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Account is disabled"

    def test_suspended_tenant(self, client: TestClient, db_session: Session, admin_user, tenant):
        tenant.status = "suspended"
        db_session.commit()

        response = client.post(
            "/api/v1/auth/login",
            json={"tenant_slug": "acme", "email": "admin@acme.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 403


class TestMe:

    def test_me_lists_roles_and_permissions(self, client: TestClient, sales_user):
        response = client.get("/api/v1/auth/me", headers=auth_headers(sales_user))

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == "sales@acme.com"
        assert "password_hash" not in data["user"]
        assert data["roles"] == ["sales"]
        assert "crm.leads.create" in data["permissions"]
        assert "erp.invoices.create" not in data["permissions"]

    def test_missing_token(self, client: TestClient):
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_garbage_token(self, client: TestClient):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
