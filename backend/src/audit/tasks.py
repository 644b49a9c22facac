"""Scheduled audit log retention"""

import logging
from typing import Any, Dict, Optional

from celery import shared_task

from database import SessionLocal
from .service import audit_service

logger = logging.getLogger(__name__)


@shared_task(name="audit.purge_expired")
def purge_expired_audit_logs_task(retention_days: Optional[int] = None) -> Dict[str, Any]:
    """Delete audit entries older than AUDIT_RETENTION_DAYS (daily at 02:00 UTC).

    Idempotent: a second run right after the first deletes nothing.
    """
    db = SessionLocal()
    try:
        deleted = audit_service.purge_expired(db, retention_days)
        db.commit()
        return {"status": "completed", "deleted": deleted}
    except Exception:
        db.rollback()
        logger.error("Audit retention purge failed", exc_info=True)
        raise
    finally:
        db.close()
