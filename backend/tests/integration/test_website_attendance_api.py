"""Website and attendance API tests

Tests cover:
- Site creation, one site per tenant, globally unique slugs
- Page publishing and the anonymous public page endpoint
- Draft edits not leaking into the published snapshot
- Employee CRUD with unique ZKBioTime codes
- POST /attendance/sync against a mocked ZKBioTime API (success and 502)
- Deleting an employee removes their daily attendance and raw punches
"""

import httpx
import pytest
from sqlalchemy import func, select

from attendance.client import ZkBioTimeClient, ZkBioTimeConfig
from attendance.sync import ZkBioTimeAttendanceSyncService
from database import SKIP_TENANT_SCOPE
from models.employee import Attendance, AttendanceRecord

pytestmark = pytest.mark.integration

SITE = {"name": "Acme Online", "slug": "acme-online", "status": "published"}


def _site(client, headers, **overrides):
    response = client.post("/api/v1/website/sites", json={**SITE, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _page(client, headers, site_id, **overrides):
    payload = {"title": "About us", "slug": "about", "content": {"blocks": ["Hello"]}, **overrides}
    response = client.post(f"/api/v1/website/sites/{site_id}/pages", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _public(client, site_slug="acme-online", page_slug="about"):
    return client.get(f"/api/v1/public/sites/{site_slug}/pages/{page_slug}")


class TestSites:
    def test_one_site_per_tenant(self, client, admin_headers):
        _site(client, admin_headers)

        response = client.post(
            "/api/v1/website/sites", json={**SITE, "slug": "acme-two"}, headers=admin_headers
        )

        assert response.status_code == 409
        assert response.json()["message"] == "Tenant already has a website."

    def test_slug_unique_across_tenants(self, client, admin_headers, other_headers):
        _site(client, admin_headers)

        response = client.post("/api/v1/website/sites", json=SITE, headers=other_headers)

        assert response.status_code == 409

    def test_invalid_status_rejected(self, client, admin_headers):
        response = client.post(
            "/api/v1/website/sites", json={**SITE, "status": "live"}, headers=admin_headers
        )

        assert response.status_code == 422
        assert "status" in response.json()["errors"]

    def test_viewer_cannot_create_site(self, client, viewer_headers):
        response = client.post("/api/v1/website/sites", json=SITE, headers=viewer_headers)

        assert response.status_code == 403


class TestPublicPages:
    def test_published_page_is_public(self, client, admin_headers):
        site = _site(client, admin_headers)
        _page(client, admin_headers, site["id"], publish=True, meta={"description": "Who we are"})

        response = _public(client)

        assert response.status_code == 200
        assert response.json() == {
            "title": "About us",
            "slug": "about",
            "page_type": None,
            "content": {"blocks": ["Hello"]},
            "meta": {"description": "Who we are"},
        }

    def test_unpublished_page_is_hidden(self, client, admin_headers):
        site = _site(client, admin_headers)
        _page(client, admin_headers, site["id"])

        assert _public(client).status_code == 404

    def test_draft_site_hides_published_pages(self, client, admin_headers):
        site = _site(client, admin_headers, status="draft")
        _page(client, admin_headers, site["id"], publish=True)

        assert _public(client).status_code == 404

    def test_draft_edits_stay_private_until_published(self, client, admin_headers):
        site = _site(client, admin_headers)
        page = _page(client, admin_headers, site["id"], publish=True)
        url = f"/api/v1/website/sites/{site['id']}/pages/{page['id']}"

        edited = client.patch(url, json={"content": {"blocks": ["Draft"]}}, headers=admin_headers)
        assert edited.json()["content"] == {"blocks": ["Draft"]}
        assert _public(client).json()["content"] == {"blocks": ["Hello"]}

        client.patch(url, json={"publish": True}, headers=admin_headers)
        assert _public(client).json()["content"] == {"blocks": ["Draft"]}

    def test_unpublish(self, client, admin_headers):
        site = _site(client, admin_headers)
        page = _page(client, admin_headers, site["id"], publish=True)

        response = client.post(
            f"/api/v1/website/sites/{site['id']}/pages/{page['id']}/unpublish", headers=admin_headers
        )

        assert response.json()["status"] == "draft"
        assert response.json()["published_content"] is None
        assert _public(client).status_code == 404

    def test_duplicate_page_slug_conflicts(self, client, admin_headers):
        site = _site(client, admin_headers)
        _page(client, admin_headers, site["id"])

        response = client.post(
            f"/api/v1/website/sites/{site['id']}/pages",
            json={"title": "About again", "slug": "about"},
            headers=admin_headers,
        )

        assert response.status_code == 409


class TestEmployees:
    def test_create_and_list(self, client, admin_headers):
        response = client.post(
            "/api/v1/employees",
            json={"first_name": "Grace", "last_name": "Hopper", "biotime_emp_code": "E100"},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["full_name"] == "Grace Hopper"
        listing = client.get("/api/v1/employees", headers=admin_headers).json()
        assert [e["biotime_emp_code"] for e in listing["items"]] == ["E100"]

    def test_duplicate_code_conflicts(self, client, admin_headers):
        payload = {"first_name": "Grace", "last_name": "Hopper", "biotime_emp_code": "E100"}
        client.post("/api/v1/employees", json=payload, headers=admin_headers)

        response = client.post(
            "/api/v1/employees", json={**payload, "first_name": "Alan"}, headers=admin_headers
        )

        assert response.status_code == 409


class TestAttendanceSync:
    @pytest.fixture
    def mock_biotime(self, monkeypatch):
        """Route the sync service to a MockTransport; returns the list of seen requests."""
        seen = []
        responses = {"body": None, "status": 200}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(responses["status"], json=responses["body"])

        client = ZkBioTimeClient(
            ZkBioTimeConfig(base_url="https://biotime.acme.com", token="t0k", token_cache_minutes=0),
            transport=httpx.MockTransport(handler),
        )
        monkeypatch.setattr(ZkBioTimeAttendanceSyncService, "client_for", lambda self, tenant: client)
        return seen, responses

    def test_sync_imports_punches(self, client, admin_headers, mock_biotime):
        seen, responses = mock_biotime
        responses["body"] = {
            "code": 0,
            "count": 2,
            "data": [
                {"id": 11, "emp_code": "E100", "punch_time": "2026-03-02 08:00:00", "punch_state": "0"},
                {"id": 12, "emp_code": "E404", "punch_time": "2026-03-02 08:01:00", "punch_state": "0"},
            ],
        }
        client.post(
            "/api/v1/employees",
            json={"first_name": "Grace", "last_name": "Hopper", "biotime_emp_code": "E100"},
            headers=admin_headers,
        )

        response = client.post(
            "/api/v1/attendance/sync",
            json={"from": "2026-03-02T00:00:00Z", "to": "2026-03-03T00:00:00Z"},
            headers=admin_headers,
        )

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["from"] == "2026-03-02 00:00:00"
        assert (body["processed"], body["created"], body["skipped"], body["missing_employees"]) == (2, 1, 0, 1)
        assert len(seen) == 1

        days = client.get("/api/v1/attendance", headers=admin_headers).json()
        assert days["total"] == 1
        assert days["items"][0]["date"] == "2026-03-02"

    def test_api_failure_is_502(self, client, admin_headers, mock_biotime):
        _, responses = mock_biotime
        responses["status"] = 500
        responses["body"] = {"detail": "boom"}

        response = client.post("/api/v1/attendance/sync", headers=admin_headers)

        assert response.status_code == 502

    def test_sync_requires_permission(self, client, sales_headers, mock_biotime):
        response = client.post("/api/v1/attendance/sync", headers=sales_headers)

        assert response.status_code == 403

    def test_deleting_employee_removes_attendance_history(self, client, admin_headers, db_session, mock_biotime):
        _, responses = mock_biotime
        responses["body"] = {
            "code": 0,
            "count": 1,
            "data": [{"id": 21, "emp_code": "E100", "punch_time": "2026-03-02 08:00:00", "punch_state": "0"}],
        }
        employee = client.post(
            "/api/v1/employees",
            json={"first_name": "Grace", "last_name": "Hopper", "biotime_emp_code": "E100"},
            headers=admin_headers,
        ).json()
        client.post(
            "/api/v1/attendance/sync",
            json={"from": "2026-03-02T00:00:00Z", "to": "2026-03-03T00:00:00Z"},
            headers=admin_headers,
        )

        response = client.delete(f"/api/v1/employees/{employee['id']}", headers=admin_headers)

        assert response.status_code == 200
        for model in (Attendance, AttendanceRecord):
            remaining = db_session.execute(
                select(func.count()).select_from(model).execution_options(**{SKIP_TENANT_SCOPE: True})
            ).scalar_one()
            assert remaining == 0, model.__tablename__
