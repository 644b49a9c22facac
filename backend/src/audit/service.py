"""Audit logging service for model changes and security events.

This service provides a centralized interface for creating immutable audit log
entries. Values are masked (LogMaskingService) and stripped of excluded
fields before they are stored.

Audit Events:
- LOGIN_SUCCESS, LOGIN_FAILED
- created, updated, deleted, restored (model changes)
- USER_ROLE_CHANGED
- INVOICE_ISSUED, PAYMENT_APPLIED
- TENANT_CREATED, TENANT_OWNER_ASSIGNED
- ATTENDANCE_SYNCED

Writing an audit entry never fails the operation being audited: errors are
logged and counted in audit_write_failures_total.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional
from uuid import UUID

from fastapi import Request
from sqlalchemy import delete, inspect as sa_inspect
from sqlalchemy.orm import Session

from config import settings
from database import get_session_tenant
from models.audit_log import AuditLog
from models.base import utcnow
from models.user import User
from observability.masking import LogMaskingService
from observability.metrics import audit_write_failures_total
from observability.request_id import current_request_id

logger = logging.getLogger(__name__)

_masking = LogMaskingService()

NAME_ATTRIBUTES = ("name", "title", "invoice_number", "payment_number", "email", "slug", "code")


def to_jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def model_values(model: Any, fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Snapshot column values of an ORM instance for old/new audit values."""
    mapper = sa_inspect(model).mapper
    names = list(fields) if fields is not None else [c.key for c in mapper.column_attrs]
    return {name: getattr(model, name, None) for name in names}


def get_client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, else the direct peer address."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


class AuditService:
    """Creates audit log entries in the caller's session.

    Entries are added to ``db`` but not committed; they persist with the
    caller's commit, so an operation and its audit trail succeed or fail
    together.
    """

    def __init__(self, excluded_fields: Optional[Iterable[str]] = None):
        self._excluded_fields = excluded_fields

    @property
    def excluded_fields(self) -> set:
        fields = self._excluded_fields if self._excluded_fields is not None else settings.AUDIT_EXCLUDED_FIELDS
        return {f.lower() for f in fields}

    def _prepare(self, values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if values is None:
            return None
        excluded = self.excluded_fields
        kept = {k: v for k, v in values.items() if k.lower() not in excluded}
        return _masking.mask(to_jsonable(kept))

    def log(
        self,
        db: Session,
        action: str,
        model: Any = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        user: Optional[User] = None,
        request: Optional[Request] = None,
        tenant_id: Optional[UUID] = None,
    ) -> Optional[AuditLog]:
        """Create an audit log entry.

        Args:
            db: Database session
            action: Event action (e.g. "created", "LOGIN_FAILED")
            model: ORM instance the event is about
            old_values: Values before the change
            new_values: Values after the change
            metadata: Additional context as JSON
            user: User who performed the action (None for anonymous/system events)
            request: Request supplying url, method, ip and user agent
            tenant_id: Tenant of the entry; defaults to the model's, then the
                session's, then the user's tenant

        Returns:
            The pending AuditLog, or None if auditing is disabled, no tenant
            could be determined, or the entry could not be built

        Example:
            audit_service.log(db, "updated", model=lead,
                              old_values={"status": "new"}, new_values={"status": "qualified"},
                              user=current_user, request=request)
        """
        if not settings.AUDIT_ENABLED:
            return None

        try:
            tenant_id = (
                tenant_id
                or getattr(model, "tenant_id", None)
                or get_session_tenant(db)
                or (user.tenant_id if user is not None else None)
            )
            if tenant_id is None:
                logger.warning(f"Skipping audit entry {action}: no tenant context")
                return None

            entry = AuditLog(
                tenant_id=tenant_id,
                actor_id=user.id if user is not None else None,
                action=action,
                old_values=self._prepare(old_values),
                new_values=self._prepare(new_values),
                metadata_json=self._prepare(metadata),
                request_id=current_request_id(),
            )

            if model is not None:
                entry.model_type = getattr(model, "__tablename__", type(model).__name__.lower())
                entry.model_id = getattr(model, "id", None)
                for attribute in NAME_ATTRIBUTES:
                    name = getattr(model, attribute, None)
                    if name:
                        entry.model_name = str(name)
                        break

            if request is not None:
                entry.url = str(request.url)
                entry.method = request.method
                entry.ip_address = get_client_ip(request)
                entry.user_agent = request.headers.get("User-Agent")
                entry.request_id = entry.request_id or getattr(request.state, "request_id", None)

            db.add(entry)
            return entry

        except Exception as e:
            audit_write_failures_total.labels(action=action).inc()
            logger.error(f"Failed to write audit entry {action}: {e}", exc_info=True)
            return None

    def purge_expired(self, db: Session, retention_days: Optional[int] = None) -> int:
        """Delete entries older than the retention window (all tenants).

        Returns:
            Number of deleted entries
        """
        days = retention_days if retention_days is not None else settings.AUDIT_RETENTION_DAYS
        cutoff = utcnow() - timedelta(days=days)
        result = db.execute(delete(AuditLog).where(AuditLog.created_at < cutoff))
        logger.info(f"Purged {result.rowcount} audit log entries older than {days} days")
        return result.rowcount or 0


audit_service = AuditService()
