"""Authorization policies.

Routers call ``authorize`` with a policy instance and an action name:

    authorize(db, deal_policy, "update", current_user, deal)

which raises AuthorizationError (403 "This action is unauthorized.") when
the policy denies the action.
"""

from typing import Any

from sqlalchemy.orm import Session

from exceptions import AuthorizationError
from models.user import User
from .base import BasePolicy
from .resources import (
    AttendancePolicy,
    AuditLogPolicy,
    ContactPolicy,
    DealPolicy,
    EmployeePolicy,
    InvoicePolicy,
    LeadPolicy,
    PaymentPolicy,
    PipelinePolicy,
    ProductPolicy,
    WebhookPolicy,
    WorkflowPolicy,
)
from .role import RolePolicy
from .site import PagePolicy, SitePolicy
from .tenant import TenantPolicy
from .user import UserPolicy

MODEL_ACTIONS = ("view", "update", "delete", "restore", "issue", "sync_permissions")


def allows(db: Session, policy: BasePolicy, action: str, user: User, model: Any = None) -> bool:
    handler = getattr(policy, action, None)
    if handler is None:
        return policy.check(db, user, action, model)
    if action in MODEL_ACTIONS:
        return handler(db, user, model)
    return handler(db, user)


def authorize(db: Session, policy: BasePolicy, action: str, user: User, model: Any = None) -> None:
    """Raise AuthorizationError unless ``policy`` allows ``action``."""
    if not allows(db, policy, action, user, model):
        raise AuthorizationError()


__all__ = [
    "BasePolicy",
    "UserPolicy",
    "RolePolicy",
    "TenantPolicy",
    "SitePolicy",
    "PagePolicy",
    "LeadPolicy",
    "ContactPolicy",
    "DealPolicy",
    "PipelinePolicy",
    "WorkflowPolicy",
    "ProductPolicy",
    "InvoicePolicy",
    "PaymentPolicy",
    "WebhookPolicy",
    "EmployeePolicy",
    "AttendancePolicy",
    "AuditLogPolicy",
    "allows",
    "authorize",
]
