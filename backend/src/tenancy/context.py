"""Current-tenant context for code that runs without a request object.

The tenant resolved for a request is bound here by the tenancy dependency
(and by workers/commands for their own runs) so logging and services can
read it without threading it through every call.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional
from uuid import UUID

current_tenant_var: ContextVar[Optional[UUID]] = ContextVar("current_tenant_id", default=None)


def get_current_tenant_id() -> Optional[UUID]:
    return current_tenant_var.get()


def set_current_tenant_id(tenant_id: Optional[UUID]):
    return current_tenant_var.set(tenant_id)


@contextmanager
def tenant_context(tenant_id: Optional[UUID]) -> Iterator[None]:
    """Bind ``tenant_id`` for the duration of the block.

    Example:
        with tenant_context(tenant.id):
            sync_service.sync_tenant(db, tenant)
    """
    token = current_tenant_var.set(tenant_id)
    try:
        yield
    finally:
        current_tenant_var.reset(token)
