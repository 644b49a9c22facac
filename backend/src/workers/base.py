"""Base utilities for multi-tenant background tasks.

This module provides utilities for ensuring tenant isolation in Celery tasks:
- tenant_id validation (verify the tenant exists)
- Scoped session creation (automatic tenant context)
- Base task class with tenant validation

Task Signature Pattern:
======================

Every tenant task receives the tenant explicitly, as a UUID string:

@shared_task(base=BaseTask, name="workflows.execute")
def execute_workflow_task(workflow_id: str, tenant_id: str, ...) -> Dict[str, Any]:
    tenant_uuid = validate_tenant_id(tenant_id)
    session = get_scoped_session(tenant_uuid)
    try:
        ...
        session.commit()
        return {"status": "completed"}
    finally:
        session.close()

Enqueueing Pattern:
==================

The tenant id passed to .delay() comes from the resolved request tenant
(server side), never from the request body:

    execute_workflow_task.delay(workflow_id=str(workflow.id), tenant_id=str(tenant.id))
"""

from uuid import UUID

from celery import Task
from sqlalchemy.orm import Session

from config import settings
from database import SessionLocal, tenant_scoped_session
from models.tenant import Tenant


def validate_tenant_id(tenant_id: str) -> UUID:
    """Validate that tenant_id is a UUID of an existing tenant.

    Args:
        tenant_id: Tenant UUID as string (from task parameters)

    Returns:
        UUID: Validated tenant UUID

    Raises:
        ValueError: If tenant_id is not a UUID or the tenant doesn't exist
    """
    try:
        tenant_uuid = UUID(str(tenant_id))
    except (ValueError, AttributeError, TypeError) as e:
        raise ValueError(f"Invalid tenant_id format '{tenant_id}': {str(e)}")

    session = SessionLocal()
    try:
        if session.get(Tenant, tenant_uuid) is None:
            raise ValueError(f"Tenant {tenant_id} does not exist")
    finally:
        session.close()

    return tenant_uuid


def get_scoped_session(tenant_id: UUID) -> Session:
    """Database session scoped to one tenant, for worker tasks.

    Every tenant-scoped SELECT from this session is filtered to
    ``tenant_id`` and new rows inherit it. The caller closes the session.
    """
    return tenant_scoped_session(tenant_id)


def runs_inline() -> bool:
    """True when jobs execute in-process instead of going through the broker.

    Callers holding a session run the job body directly with that session
    in this mode, so eager execution sees their uncommitted state.
    """
    return settings.CELERY_TASK_ALWAYS_EAGER


class BaseTask(Task):
    """Base Celery task class with tenant validation.

    Tasks using this base class must receive ``tenant_id`` as a keyword
    argument; it is validated before the task body runs.
    """

    def __call__(self, *args, **kwargs):
        """Validate tenant_id before running task.

        Raises:
            ValueError: If tenant_id parameter is missing or invalid
        """
        tenant_id = kwargs.get('tenant_id')

        if not tenant_id:
            raise ValueError(
                "tenant_id parameter is required for all multi-tenant tasks. "
                "Ensure you pass tenant_id=str(tenant_uuid) when enqueuing the task."
            )

        validate_tenant_id(tenant_id)

        return super().__call__(*args, **kwargs)
