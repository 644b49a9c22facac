"""Shared pytest fixtures.

Provides:
- An in-memory SQLite database (StaticPool) with every table created per test
- Two provisioned tenants (roles, number sequences, default pipeline)
- Users holding the seeded roles, plus a platform operator
- A TestClient whose get_db yields the test session
- Bearer headers for any user

Redis is disabled (REDIS_URL empty) and Celery runs eagerly, so jobs and
event handlers execute inline on the test session.

Usage:
    def test_list_leads(client, admin_headers):
        response = client.get("/api/v1/leads", headers=admin_headers)
        assert response.status_code == 200
"""

import os
import sys
from pathlib import Path

# Set environment variables BEFORE any application import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["LOG_JSON"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.setdefault("PASSWORD_PEPPER", "test-pepper-secret-key-32-chars-long")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-256-bits-minimum-length-required-for-security")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from typing import Callable, Dict, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from auth.jwt import create_access_token
from auth.password import hash_password
from auth.permissions import assign_role, seed_default_roles
from database import get_db as database_get_db, init_db, set_session_tenant
from infrastructure.cache import reset_redis_client
from models.base import Base
from models.tenant import Tenant
from models.user import User
from tenancy.service import create_tenant

TEST_PASSWORD = "Harbor-Lantern-2026!"

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def no_redis():
    """Every test starts without a Redis client."""
    reset_redis_client()
    yield
    reset_redis_client()


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Fresh database per test: tables are created before and dropped after."""
    init_db(bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def tenant(db_session: Session) -> Tenant:
    tenant = create_tenant(db_session, name="Acme Corp", slug="acme")
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture(scope="function")
def other_tenant(db_session: Session) -> Tenant:
    tenant = create_tenant(db_session, name="Globex Inc", slug="globex")
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture(scope="function")
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory: make_user(tenant, "sales@acme.com", role="sales")."""
    password_hash = hash_password(TEST_PASSWORD)

    def _make(
        tenant: Optional[Tenant],
        email: str,
        role: Optional[str] = None,
        name: Optional[str] = None,
        is_super_admin: bool = False,
    ) -> User:
        user = User(
            tenant_id=tenant.id if tenant else None,
            email=email,
            name=name or email.split("@")[0].title(),
            password_hash=password_hash,
            status="ACTIVE",
            is_super_admin=is_super_admin,
        )
        db_session.add(user)
        db_session.flush()
        if role:
            roles = seed_default_roles(db_session, tenant)
            assign_role(db_session, user, roles[role])
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture(scope="function")
def admin_user(tenant: Tenant, make_user) -> User:
    return make_user(tenant, "admin@acme.com", role="super_admin", name="Ada Admin")


@pytest.fixture(scope="function")
def sales_user(tenant: Tenant, make_user) -> User:
    return make_user(tenant, "sales@acme.com", role="sales", name="Sam Sales")


@pytest.fixture(scope="function")
def accountant_user(tenant: Tenant, make_user) -> User:
    return make_user(tenant, "books@acme.com", role="accountant", name="Alex Books")


@pytest.fixture(scope="function")
def viewer_user(tenant: Tenant, make_user) -> User:
    return make_user(tenant, "viewer@acme.com", role="viewer", name="Vic Viewer")


@pytest.fixture(scope="function")
def other_admin(other_tenant: Tenant, make_user) -> User:
    return make_user(other_tenant, "admin@globex.com", role="super_admin", name="Gil Globex")


@pytest.fixture(scope="function")
def platform_admin(make_user) -> User:
    return make_user(None, "ops@platform.com", name="Pat Platform", is_super_admin=True)


def auth_headers(user: User, **extra: str) -> Dict[str, str]:
    token = create_access_token(user_id=user.id, tenant_id=user.tenant_id, email=user.email)
    return {"Authorization": f"Bearer {token}", **extra}


@pytest.fixture(scope="function")
def admin_headers(admin_user: User) -> Dict[str, str]:
    return auth_headers(admin_user)


@pytest.fixture(scope="function")
def sales_headers(sales_user: User) -> Dict[str, str]:
    return auth_headers(sales_user)


@pytest.fixture(scope="function")
def accountant_headers(accountant_user: User) -> Dict[str, str]:
    return auth_headers(accountant_user)


@pytest.fixture(scope="function")
def viewer_headers(viewer_user: User) -> Dict[str, str]:
    return auth_headers(viewer_user)


@pytest.fixture(scope="function")
def other_headers(other_admin: User) -> Dict[str, str]:
    return auth_headers(other_admin)


@pytest.fixture(scope="function")
def platform_headers(platform_admin: User) -> Dict[str, str]:
    return auth_headers(platform_admin)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """TestClient sharing the test session; the tenant scope is cleared after each request."""
    from main import app

    def override_get_db():
        try:
            yield db_session
        except Exception:
            # get_db closes (and so rolls back) the request session on errors
            db_session.rollback()
            raise
        finally:
            set_session_tenant(db_session, None)

    app.dependency_overrides[database_get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
