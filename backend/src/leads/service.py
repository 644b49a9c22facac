"""Lead CRUD rules.

New leads are routed by the assignment rules (unless an assignee is given)
and then scored. Updates touching scored fields rescore the lead.
"""

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from exceptions import BusinessRuleError
from models.lead import Lead
from models.tenant import Tenant
from models.user import User
from users.service import get_tenant_user
from .assignment import auto_assign
from .scoring import calculate_score

SCORED_FIELDS = ("email", "phone", "source", "status")


def create_lead(db: Session, tenant: Tenant, data: Dict[str, Any], actor: Optional[User] = None) -> Lead:
    """Create, route and score a lead (flushed, not committed)."""
    get_tenant_user(db, data.get("assigned_to"))

    lead = Lead(
        tenant_id=tenant.id,
        name=data["name"],
        email=data.get("email"),
        phone=data.get("phone"),
        source=data.get("source"),
        status=data.get("status") or "new",
        assigned_to=data.get("assigned_to"),
        created_by=actor.id if actor else None,
    )
    db.add(lead)
    db.flush()

    if lead.assigned_to is None:
        auto_assign(db, lead)
    calculate_score(db, lead, tenant)
    return lead


def update_lead(db: Session, tenant: Tenant, lead: Lead, data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Apply a partial update; returns ``{field: {"old", "new"}}``."""
    if lead.status == "converted" and data.get("status") not in (None, "converted"):
        raise BusinessRuleError("A converted lead cannot change status.")
    if "assigned_to" in data:
        get_tenant_user(db, data["assigned_to"])

    changes: Dict[str, Dict[str, Any]] = {}
    for field, value in data.items():
        old = getattr(lead, field)
        if old == value:
            continue
        setattr(lead, field, value)
        changes[field] = {"old": old, "new": getattr(lead, field)}
    db.flush()

    if any(field in changes for field in SCORED_FIELDS):
        calculate_score(db, lead, tenant)
    return changes
