"""Console command tests (handlers called with the test session)"""

from datetime import timedelta

from sqlalchemy import delete, select

from audit.service import audit_service
from commands.cli import build_parser, check_tenant_isolation
from models.audit_log import AuditLog
from models.base import utcnow
from models.role import Permission, role_permission
from models.tenant import Tenant
from models.user import User


def _run(db_session, *argv):
    args = build_parser().parse_args(list(argv))
    return args.handler(args, db_session)


def test_isolation_report(db_session, tenant, platform_admin):
    report = {row["table"]: row for row in check_tenant_isolation(db_session)}

    assert report["tenant"]["status"] == "global"
    assert report["lead"]["status"] == "ok"
    assert report["sales_invoice"]["status"] == "ok"
    # platform operators have no tenant
    assert report["user"]["status"] == "ok"
    assert report["user"]["null_tenant_rows"] == 1


def test_create_tenant_command(db_session, capsys):
    code = _run(
        db_session, "create-tenant", "Initech",
        "--owner-email", "bill@initech.com", "--owner-password", "Stapler-Basement-2026!",
    )

    assert code == 0
    tenant = db_session.execute(select(Tenant).where(Tenant.slug == "initech")).scalar_one()
    owner = db_session.get(User, tenant.owner_user_id)
    assert owner.email == "bill@initech.com"
    assert owner.name == "bill"
    assert "Created tenant initech" in capsys.readouterr().out


def test_create_tenant_rejects_weak_password(db_session, capsys):
    code = _run(
        db_session, "create-tenant", "Initech",
        "--owner-email", "bill@initech.com", "--owner-password", "short",
    )

    assert code == 1
    assert "ERROR" in capsys.readouterr().err
    assert db_session.execute(select(Tenant).where(Tenant.slug == "initech")).first() is None


def test_create_tenant_duplicate_slug(db_session, tenant, capsys):
    code = _run(
        db_session, "create-tenant", "Acme Again", "--slug", "acme",
        "--owner-email", "new@acme.com", "--owner-password", "Stapler-Basement-2026!",
    )

    assert code == 1
    assert "already taken" in capsys.readouterr().err


def test_purge_audit_logs(db_session, tenant, capsys):
    old = audit_service.log(db_session, "updated", model=tenant, tenant_id=tenant.id)
    old.created_at = utcnow() - timedelta(days=400)
    audit_service.log(db_session, "updated", model=tenant, tenant_id=tenant.id)
    db_session.commit()
    before = len(db_session.execute(select(AuditLog)).scalars().all())

    assert _run(db_session, "purge-audit-logs", "--days", "365") == 0

    remaining = db_session.execute(select(AuditLog)).scalars().all()
    assert len(remaining) == before - 1
    assert "Deleted 1 audit log entry" in capsys.readouterr().out


def test_sync_permissions_restores_catalog(db_session, tenant, capsys):
    removed = select(Permission).where(Permission.name == "crm.leads.delete")
    db_session.execute(delete(role_permission).where(
        role_permission.c.permission_id.in_(select(Permission.id).where(Permission.name == "crm.leads.delete"))
    ))
    db_session.execute(delete(Permission).where(Permission.name == "crm.leads.delete"))
    db_session.commit()

    assert _run(db_session, "sync-permissions") == 0

    assert db_session.execute(removed).scalar_one_or_none() is not None
    assert "1 added" in capsys.readouterr().out
