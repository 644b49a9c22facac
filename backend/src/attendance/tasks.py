"""Scheduled ZKBioTime attendance import"""

import logging
from typing import Any, Dict

from celery import shared_task
from sqlalchemy import select

from database import SessionLocal
from models.tenant import Tenant
from .client import ZkBioTimeConfig, ZkBioTimeError
from .sync import ZkBioTimeAttendanceSyncService

logger = logging.getLogger(__name__)


@shared_task(name="attendance.sync_all")
def sync_all_attendance_task() -> Dict[str, Any]:
    """Sync every active tenant that has a ZKBioTime server configured.

    A failing tenant is logged and the run continues with the next one.

    Returns:
        {"synced": int, "failed": int, "results": [...]}
    """
    session = SessionLocal()
    synced, failed, results = 0, 0, []
    try:
        tenants = session.execute(select(Tenant).where(Tenant.status == "active")).scalars().all()
        service = ZkBioTimeAttendanceSyncService(session)
        for tenant in tenants:
            try:
                if not ZkBioTimeConfig.for_tenant(tenant).base_url:
                    continue
                results.append(service.sync_tenant(tenant))
                session.commit()
                synced += 1
            except ZkBioTimeError as e:
                session.rollback()
                failed += 1
                logger.error(f"Attendance sync failed for tenant {tenant.slug}: {e}")
        return {"synced": synced, "failed": failed, "results": results}
    finally:
        session.close()
