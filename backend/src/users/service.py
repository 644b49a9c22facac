"""Lookups of tenant users shared by the CRM services"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from exceptions import BusinessRuleError
from models.user import User


def get_tenant_user(db: Session, user_id: Optional[UUID], field: str = "assigned_to") -> Optional[User]:
    """Active user of the session's tenant, or None when ``user_id`` is None.

    Raises:
        BusinessRuleError: If the id is not an active user of the tenant
    """
    if user_id is None:
        return None
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if user is None or not user.is_active:
        raise BusinessRuleError(
            "The selected user is invalid.",
            {field: ["The selected user does not exist in this tenant."]},
        )
    return user
