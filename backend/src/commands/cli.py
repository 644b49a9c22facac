"""BizFlow console commands.

Usage:
    bizflow sync-attendance [--tenant SLUG] [--from DATE] [--to DATE] [--page-size N]
    bizflow check-tenant-isolation
    bizflow check-health
    bizflow create-tenant NAME [--slug SLUG] --owner-email EMAIL --owner-password PASSWORD [--owner-name NAME]
    bizflow retry-webhooks [--max-attempts N]
    bizflow purge-audit-logs [--days N]
    bizflow sync-permissions

Every command returns 0 on success and 1 on failure.
"""

import argparse
import json
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, inspect as sa_inspect, select, text
from sqlalchemy.orm import Session

from attendance.client import ZkBioTimeError
from attendance.sync import sync_all_tenants
from audit.service import audit_service
from auth.permissions import seed_default_roles, sync_permission_catalog
from config import settings
from database import SessionLocal
from exceptions import DomainError
from models.role import Permission
from models.tenant import Tenant
from observability.health import HealthStatus, collect_health, get_overall_health
from observability.logging_config import configure_logging
from tenancy.service import create_tenant
from webhooks.tasks import retry_failed_for_all_tenants

# Tables shared by every tenant
GLOBAL_TABLES = {"tenant", "permission", "role_permission"}
# NULL tenant_id is legitimate here (platform operators)
NULLABLE_TENANT_TABLES = {"user"}


def _parse_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}'. Use YYYY-MM-DD or an ISO 8601 datetime")


def check_tenant_isolation(db: Session) -> List[Dict[str, Any]]:
    """Per table: whether it has tenant_id and how many rows lack one.

    Returns:
        [{"table", "status", "null_tenant_rows"}] with status one of
        ok, global, missing_column, null_rows
    """
    inspector = sa_inspect(db.get_bind())
    report = []
    for table in sorted(inspector.get_table_names()):
        if table in GLOBAL_TABLES:
            report.append({"table": table, "status": "global", "null_tenant_rows": None})
            continue
        columns = {column["name"] for column in inspector.get_columns(table)}
        if "tenant_id" not in columns:
            report.append({"table": table, "status": "missing_column", "null_tenant_rows": None})
            continue
        null_rows = db.execute(text(f'SELECT COUNT(*) FROM "{table}" WHERE tenant_id IS NULL')).scalar_one()
        status = "null_rows" if null_rows and table not in NULLABLE_TENANT_TABLES else "ok"
        report.append({"table": table, "status": status, "null_tenant_rows": null_rows})
    return report


def cmd_sync_attendance(args: argparse.Namespace, db: Session) -> int:
    try:
        results = sync_all_tenants(
            db,
            tenant_slug=args.tenant,
            date_from=args.date_from,
            date_to=args.date_to,
            page_size=args.page_size,
        )
    except LookupError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except ZkBioTimeError as e:
        db.rollback()
        print(f"ERROR: Attendance sync failed: {e}", file=sys.stderr)
        return 1

    for result in results:
        print(
            f"{result['tenant_id']}: processed={result['processed']} created={result['created']} "
            f"skipped={result['skipped']} missing_employees={result['missing_employees']}"
        )
    print(f"Synced {len(results)} tenant(s)")
    return 0


def cmd_check_tenant_isolation(args: argparse.Namespace, db: Session) -> int:
    report = check_tenant_isolation(db)
    issues = 0
    for row in report:
        if row["status"] == "missing_column":
            issues += 1
            print(f"  FAIL {row['table']}: missing tenant_id column")
        elif row["status"] == "null_rows":
            issues += 1
            print(f"  FAIL {row['table']}: {row['null_tenant_rows']} row(s) without tenant_id")
        elif row["status"] == "global":
            print(f"  SKIP {row['table']}: shared across tenants")
        else:
            print(f"  OK   {row['table']}")

    if issues:
        print(f"Tenant isolation check found {issues} issue(s)")
        return 1
    print("Tenant isolation check passed")
    return 0


def cmd_check_health(args: argparse.Namespace, db: Session) -> int:
    components = collect_health(db)
    overall = get_overall_health(components)
    print(json.dumps(
        {"status": overall.value, "components": {name: c.to_dict() for name, c in components.items()}},
        indent=2,
    ))
    return 0 if overall != HealthStatus.UNHEALTHY else 1


def cmd_create_tenant(args: argparse.Namespace, db: Session) -> int:
    owner = {
        "email": args.owner_email,
        "password": args.owner_password,
        "name": args.owner_name or args.owner_email.split("@", 1)[0],
    }
    try:
        tenant = create_tenant(db, name=args.name, slug=args.slug, owner=owner)
        db.commit()
    except DomainError as e:
        db.rollback()
        print(f"ERROR: {e.message}", file=sys.stderr)
        if e.errors:
            print(json.dumps(e.errors, indent=2), file=sys.stderr)
        return 1

    print(f"Created tenant {tenant.slug} ({tenant.id}) owned by {args.owner_email}")
    return 0


def cmd_retry_webhooks(args: argparse.Namespace, db: Session) -> int:
    stats = retry_failed_for_all_tenants(args.max_attempts)
    print(f"Retried {stats['retried']} delivery(ies): {stats['succeeded']} succeeded, {stats['failed']} failed")
    return 0


def cmd_purge_audit_logs(args: argparse.Namespace, db: Session) -> int:
    deleted = audit_service.purge_expired(db, args.days)
    db.commit()
    print(f"Deleted {deleted} audit log entr{'y' if deleted == 1 else 'ies'}")
    return 0


def cmd_sync_permissions(args: argparse.Namespace, db: Session) -> int:
    before = db.execute(select(func.count()).select_from(Permission)).scalar_one()
    catalog = sync_permission_catalog(db)
    tenants = db.execute(select(Tenant)).scalars().all()
    for tenant in tenants:
        seed_default_roles(db, tenant)
    db.commit()
    print(f"Permission catalog: {len(catalog)} permission(s), {len(catalog) - before} added; "
          f"system roles checked for {len(tenants)} tenant(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bizflow", description="BizFlow console commands")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync-attendance", help="Import ZKBioTime punches")
    sync.add_argument("--tenant", help="Tenant slug (default: every active tenant)")
    sync.add_argument("--from", dest="date_from", type=_parse_datetime, help="Window start")
    sync.add_argument("--to", dest="date_to", type=_parse_datetime, help="Window end")
    sync.add_argument("--page-size", type=int, default=None, help="Transactions per API page")
    sync.set_defaults(handler=cmd_sync_attendance)

    isolation = subparsers.add_parser("check-tenant-isolation", help="Verify tenant_id coverage per table")
    isolation.set_defaults(handler=cmd_check_tenant_isolation)

    health = subparsers.add_parser("check-health", help="Database and Redis status")
    health.set_defaults(handler=cmd_check_health)

    tenant = subparsers.add_parser("create-tenant", help="Create and provision a tenant with its owner")
    tenant.add_argument("name")
    tenant.add_argument("--slug")
    tenant.add_argument("--owner-email", required=True)
    tenant.add_argument("--owner-password", required=True)
    tenant.add_argument("--owner-name")
    tenant.set_defaults(handler=cmd_create_tenant)

    webhooks = subparsers.add_parser("retry-webhooks", help="Redeliver failed webhook deliveries")
    webhooks.add_argument("--max-attempts", type=int, default=None)
    webhooks.set_defaults(handler=cmd_retry_webhooks)

    purge = subparsers.add_parser("purge-audit-logs", help="Delete audit entries past retention")
    purge.add_argument("--days", type=int, default=None, help=f"Default: {settings.AUDIT_RETENTION_DAYS}")
    purge.set_defaults(handler=cmd_purge_audit_logs)

    permissions = subparsers.add_parser("sync-permissions", help="Add new catalog permissions and missing system roles")
    permissions.set_defaults(handler=cmd_sync_permissions)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    db = SessionLocal()
    try:
        return args.handler(args, db)
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
