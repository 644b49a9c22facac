"""ZKBioTime client and attendance sync tests (HTTP mocked with httpx.MockTransport)"""

import json
from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy import select

from attendance.client import ZkBioTimeClient, ZkBioTimeConfig, ZkBioTimeError, password_context
from attendance.sync import ZkBioTimeAttendanceSyncService, parse_punch_time, resolve_punch_type
from infrastructure.secret_box import encrypt_secret
from models.audit_log import AuditLog
from models.employee import Attendance, AttendanceRecord, Employee

BASE_URL = "https://biotime.acme.test"


def _transaction(id_, emp_code, punch_time, state):
    return {"id": id_, "emp_code": emp_code, "punch_time": punch_time, "punch_state": state}


def _client(handler, **config):
    values = {"base_url": BASE_URL, "token": "static-token", "token_cache_minutes": 0}
    values.update(config)
    return ZkBioTimeClient(ZkBioTimeConfig(**values), transport=httpx.MockTransport(handler))


class TestClient:
    def test_static_token_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            seen["page"] = request.url.params["page"]
            return httpx.Response(200, json={"code": 0, "count": 0, "data": []})

        body = _client(handler).get_transactions({"page": 1, "page_size": 50})

        assert body == {"code": 0, "count": 0, "data": []}
        assert seen == {"auth": "Token static-token", "path": "/iclock/api/transactions/", "page": "1"}

    def test_password_login_with_jwt_header(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            if request.url.path == "/api-token-auth/":
                assert json.loads(request.content) == {"username": "sync", "password": "pa55-word"}
                return httpx.Response(200, json={"data": {"token": "jwt-abc"}})
            assert request.headers["Authorization"] == "JWT jwt-abc"
            return httpx.Response(200, json={"code": 0, "count": 0, "data": []})

        client = _client(handler, token=None, username="sync", password="pa55-word", auth_type="jwt")
        client.get_transactions({"page": 1})

        assert calls == [("POST", "/api-token-auth/"), ("GET", "/iclock/api/transactions/")]

    def test_missing_credentials(self):
        client = _client(lambda request: httpx.Response(200), token=None)
        with pytest.raises(ZkBioTimeError, match="credentials are missing"):
            client.get_transactions({})

    def test_http_error_status(self):
        client = _client(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(ZkBioTimeError, match="503 maintenance"):
            client.get_transactions({})

    def test_missing_base_url(self):
        client = ZkBioTimeClient(ZkBioTimeConfig(token="t"), transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with pytest.raises(ZkBioTimeError, match="base URL"):
            client.get_transactions({})

    def test_tenant_override_decrypts_password(self, tenant):
        tenant.settings = {
            "zkbiotime": {
                "base_url": "https://tenant.biotime.test",
                "username": "acme-sync",
                "password": encrypt_secret("tenant-pass", context=password_context(tenant.id)),
            }
        }
        config = ZkBioTimeConfig.for_tenant(tenant)
        assert config.base_url == "https://tenant.biotime.test"
        assert config.username == "acme-sync"
        assert config.password == "tenant-pass"


class TestPunchParsing:
    def test_parse_api_format_in_server_timezone(self):
        assert parse_punch_time("2026-03-02 08:15:00") == datetime(2026, 3, 2, 8, 15, tzinfo=timezone.utc)

    def test_unparseable(self):
        assert parse_punch_time("yesterday") is None
        assert parse_punch_time(None) is None

    @pytest.mark.parametrize(
        "transaction, expected",
        [
            ({"punch_state": "0"}, "in"),
            ({"punch_state": 1}, "out"),
            ({"punch_state_display": "Check In"}, "in"),
            ({"punch_state_display": "Check Out"}, "out"),
            ({"punch_state": "4", "punch_state_display": "Overtime In"}, None),
        ],
    )
    def test_resolve_punch_type(self, transaction, expected):
        assert resolve_punch_type(transaction) == expected


class TestAttendanceSync:
    @pytest.fixture
    def employee(self, db_session, tenant):
        employee = Employee(tenant_id=tenant.id, first_name="Grace", last_name="Hopper", biotime_emp_code="E100")
        db_session.add(employee)
        db_session.commit()
        return employee

    def test_pages_through_transactions(self, db_session, tenant, employee):
        pages = {
            "1": [
                _transaction(1, "E100", "2026-03-02 08:15:00", "0"),
                _transaction(2, "E100", "2026-03-02 08:05:00", "0"),
            ],
            "2": [
                _transaction(3, "E100", "2026-03-02 17:30:00", "1"),
                _transaction(4, "E999", "2026-03-02 09:00:00", "0"),
            ],
        }
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = request.url.params["page"]
            requested.append(page)
            return httpx.Response(200, json={"code": 0, "count": 4, "data": pages[page]})

        service = ZkBioTimeAttendanceSyncService(db_session, client=_client(handler))
        result = service.sync_tenant(
            tenant,
            date_from=datetime(2026, 3, 2, tzinfo=timezone.utc),
            date_to=datetime(2026, 3, 3, tzinfo=timezone.utc),
            page_size=2,
        )
        db_session.commit()

        assert requested == ["1", "2"]
        assert result["processed"] == 4
        assert result["created"] == 3
        assert result["missing_employees"] == 1
        assert result["from"] == "2026-03-02 00:00:00"

        day = db_session.execute(select(Attendance).where(Attendance.employee_id == employee.id)).scalar_one()
        assert day.check_in.replace(tzinfo=None) == datetime(2026, 3, 2, 8, 5)
        assert day.check_out.replace(tzinfo=None) == datetime(2026, 3, 2, 17, 30)

        db_session.refresh(tenant)
        assert tenant.get_setting("zkbiotime.last_sync_at").startswith("2026-03-03")
        audit = db_session.execute(select(AuditLog).where(AuditLog.action == "ATTENDANCE_SYNCED")).scalar_one()
        assert audit.metadata_json["created"] == 3

    def test_resync_skips_known_punches(self, db_session, tenant, employee):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "code": 0, "count": 1, "data": [_transaction(7, "E100", "2026-03-02 08:00:00", "0")],
            })

        service = ZkBioTimeAttendanceSyncService(db_session, client=_client(handler))
        first = service.sync_tenant(tenant)
        second = service.sync_tenant(tenant)

        assert (first["created"], first["skipped"]) == (1, 0)
        assert (second["created"], second["skipped"]) == (0, 1)
        count = db_session.execute(select(AttendanceRecord)).scalars().all()
        assert len(count) == 1

    def test_api_error_code_raises(self, db_session, tenant, employee):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"code": 1, "msg": "Invalid date range"})

        service = ZkBioTimeAttendanceSyncService(db_session, client=_client(handler))
        with pytest.raises(ZkBioTimeError, match="Invalid date range"):
            service.sync_tenant(tenant)
