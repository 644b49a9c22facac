"""Import ZKBioTime punch transactions into attendance records.

Every transaction becomes at most one AttendanceRecord, keyed by
(tenant, employee, source, external id), so re-running a sync over an
overlapping window only reports the known punches as skipped. New punches
also update the employee's daily Attendance row, which keeps the earliest
check-in and the latest check-out of the day.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.service import audit_service
from config import settings
from models.base import ensure_aware, utcnow
from models.employee import Attendance, AttendanceRecord, Employee
from models.tenant import Tenant
from observability.metrics import attendance_records_synced_total, attendance_sync_runs_total
from .client import ZkBioTimeClient, ZkBioTimeConfig, ZkBioTimeError

logger = logging.getLogger(__name__)

SOURCE = "biotime"
LAST_SYNC_SETTING = "zkbiotime.last_sync_at"
API_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def server_timezone() -> ZoneInfo:
    return ZoneInfo(settings.ZKBIOTIME_TIMEZONE or "UTC")


def parse_punch_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a punch time in the server's timezone; None when unparseable."""
    if not value:
        return None
    tz = server_timezone()
    try:
        return datetime.strptime(value, API_TIME_FORMAT).replace(tzinfo=tz)
    except (TypeError, ValueError):
        pass
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)


def resolve_punch_type(transaction: Dict[str, Any]) -> Optional[str]:
    """``in``, ``out`` or None from punch_state / punch_state_display."""
    display = str(transaction.get("punch_state_display") or "").lower()
    state = str(transaction.get("punch_state") if transaction.get("punch_state") is not None else "")

    if state == "0" or "check in" in display:
        return "in"
    if state == "1" or "check out" in display:
        return "out"
    return None


class ZkBioTimeAttendanceSyncService:
    """Pulls transactions page by page and stores them for one tenant.

    The caller owns the transaction: sync_tenant() flushes but never commits.
    """

    def __init__(self, db: Session, client: Optional[ZkBioTimeClient] = None):
        self.db = db
        self._client = client

    def client_for(self, tenant: Tenant) -> ZkBioTimeClient:
        return self._client or ZkBioTimeClient(ZkBioTimeConfig.for_tenant(tenant))

    def default_from(self, tenant: Tenant) -> datetime:
        last_sync = tenant.get_setting(LAST_SYNC_SETTING)
        if last_sync:
            try:
                return ensure_aware(datetime.fromisoformat(last_sync))
            except ValueError:
                logger.warning(f"Ignoring unparseable {LAST_SYNC_SETTING} for tenant {tenant.slug}: {last_sync}")
        return utcnow() - timedelta(days=1)

    def sync_tenant(
        self,
        tenant: Tenant,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Sync ``tenant``'s punches between ``date_from`` and ``date_to``.

        Args:
            tenant: Tenant to sync
            date_from: Window start; defaults to the last sync time, else one day ago
            date_to: Window end; defaults to now
            page_size: Transactions per API page (ZKBIOTIME_PAGE_SIZE by default)

        Returns:
            ``{tenant_id, from, to, processed, created, skipped, missing_employees}``

        Raises:
            ZkBioTimeError: Transport failure, non-2xx status or API error code
        """
        date_from = ensure_aware(date_from) if date_from else self.default_from(tenant)
        date_to = ensure_aware(date_to) if date_to else utcnow()
        page_size = page_size or settings.ZKBIOTIME_PAGE_SIZE
        tz = server_timezone()
        client = self.client_for(tenant)

        stats = {"processed": 0, "created": 0, "skipped": 0, "missing_employees": 0}
        page = 1
        try:
            while True:
                response = client.get_transactions({
                    "page": page,
                    "page_size": page_size,
                    "start_time": date_from.astimezone(tz).strftime(API_TIME_FORMAT),
                    "end_time": date_to.astimezone(tz).strftime(API_TIME_FORMAT),
                })
                if (response.get("code") or 0) != 0:
                    raise ZkBioTimeError(f"ZKBioTime response error: {response.get('msg') or 'Unknown API error'}")

                for transaction in response.get("data") or []:
                    stats["processed"] += 1
                    employee = self.find_employee(tenant.id, transaction.get("emp_code"))
                    if employee is None:
                        stats["missing_employees"] += 1
                        attendance_records_synced_total.labels(outcome="missing_employee").inc()
                        continue

                    outcome = self.store_transaction(tenant.id, employee, transaction)
                    stats[outcome] += 1
                    attendance_records_synced_total.labels(outcome=outcome).inc()

                count = int(response.get("count") or 0)
                if page * page_size >= count:
                    break
                page += 1
        except ZkBioTimeError:
            attendance_sync_runs_total.labels(status="error").inc()
            raise

        tenant.set_setting(LAST_SYNC_SETTING, date_to.isoformat())
        result = {
            "tenant_id": str(tenant.id),
            "from": date_from.strftime(API_TIME_FORMAT),
            "to": date_to.strftime(API_TIME_FORMAT),
            **stats,
        }
        audit_service.log(self.db, "ATTENDANCE_SYNCED", model=tenant, metadata=result, tenant_id=tenant.id)
        self.db.flush()

        attendance_sync_runs_total.labels(status="success").inc()
        logger.info(f"ZKBioTime sync for {tenant.slug}: {stats}", extra={"tenant_id": str(tenant.id)})
        return result

    def find_employee(self, tenant_id: UUID, emp_code: Any) -> Optional[Employee]:
        if emp_code in (None, ""):
            return None
        return self.db.execute(
            select(Employee).where(Employee.tenant_id == tenant_id, Employee.biotime_emp_code == str(emp_code))
        ).scalars().first()

    def store_transaction(self, tenant_id: UUID, employee: Employee, transaction: Dict[str, Any]) -> str:
        """Insert the punch if it is new; returns ``created`` or ``skipped``."""
        external_id = str(transaction.get("id") or "")
        if not external_id:
            return "skipped"

        punch_time = parse_punch_time(transaction.get("punch_time"))
        if punch_time is None:
            return "skipped"

        existing = self.db.execute(
            select(AttendanceRecord.id).where(
                AttendanceRecord.tenant_id == tenant_id,
                AttendanceRecord.employee_id == employee.id,
                AttendanceRecord.source == SOURCE,
                AttendanceRecord.external_id == external_id,
            )
        ).first()
        if existing is not None:
            return "skipped"

        punch_type = resolve_punch_type(transaction)
        self.db.add(AttendanceRecord(
            tenant_id=tenant_id,
            employee_id=employee.id,
            source=SOURCE,
            external_id=external_id,
            punch_time=punch_time.astimezone(timezone.utc),
            punch_type=punch_type,
            raw=transaction,
            created_at=utcnow(),
        ))
        self.update_daily_attendance(tenant_id, employee.id, punch_time, punch_type)
        self.db.flush()
        return "created"

    def update_daily_attendance(
        self, tenant_id: UUID, employee_id: UUID, punch_time: datetime, punch_type: Optional[str]
    ) -> None:
        if punch_type is None:
            return

        # Day boundaries follow the terminal's timezone; stored times are UTC
        day = punch_time.date()
        punch_time = punch_time.astimezone(timezone.utc)
        attendance = self.db.execute(
            select(Attendance).where(
                Attendance.tenant_id == tenant_id,
                Attendance.employee_id == employee_id,
                Attendance.date == day,
            )
        ).scalars().first()
        if attendance is None:
            attendance = Attendance(tenant_id=tenant_id, employee_id=employee_id, date=day, status="present")
            self.db.add(attendance)

        if punch_type == "in":
            current = ensure_aware(attendance.check_in) if attendance.check_in else None
            if current is None or punch_time < current:
                attendance.check_in = punch_time
        else:
            current = ensure_aware(attendance.check_out) if attendance.check_out else None
            if current is None or punch_time > current:
                attendance.check_out = punch_time


def sync_all_tenants(
    db: Session,
    tenant_slug: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page_size: Optional[int] = None,
    client: Optional[ZkBioTimeClient] = None,
) -> list[Dict[str, Any]]:
    """Sync every active tenant (or the one named by ``tenant_slug``), committing per tenant.

    Raises:
        ZkBioTimeError: On the first tenant whose sync fails
        LookupError: ``tenant_slug`` names no tenant
    """
    stmt = select(Tenant).where(Tenant.status == "active").order_by(Tenant.slug)
    if tenant_slug:
        stmt = select(Tenant).where(Tenant.slug == tenant_slug)
    tenants = db.execute(stmt).scalars().all()
    if tenant_slug and not tenants:
        raise LookupError(f"Tenant '{tenant_slug}' not found")

    service = ZkBioTimeAttendanceSyncService(db, client=client)
    results = []
    for tenant in tenants:
        results.append(service.sync_tenant(tenant, date_from, date_to, page_size))
        db.commit()
    return results
