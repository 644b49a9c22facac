"""Background workers module for async task processing.

All tenant tasks MUST:
1. Accept tenant_id as explicit keyword parameter (UUID string)
2. Validate tenant_id exists before processing
3. Use a tenant-scoped session for database access
"""

from .base import (
    BaseTask,
    get_scoped_session,
    runs_inline,
    validate_tenant_id,
)

__all__ = [
    "validate_tenant_id",
    "get_scoped_session",
    "runs_inline",
    "BaseTask",
]
