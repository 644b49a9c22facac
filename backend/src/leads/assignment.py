"""Rule-based lead routing.

Active rules are tried by descending priority; the first rule whose
conditions all match decides the assignee. ``user`` rules name a fixed
assignee, ``round_robin`` rules pick the active tenant user currently holding
the fewest open leads.
"""

import logging
from typing import Any, Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from models.lead import Lead, LeadAssignmentRule
from models.user import User

logger = logging.getLogger(__name__)

CLOSED_LEAD_STATUSES = ("converted", "lost")

OPERATORS = (
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "greater_than",
    "less_than",
    "in",
    "not_in",
)


def compare(actual: Any, operator: str, expected: Any) -> bool:
    """Evaluate ``actual <operator> expected``; unknown operators never match."""
    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    if operator in ("contains", "not_contains"):
        found = str(expected or "").lower() in str(actual or "").lower()
        return found if operator == "contains" else not found
    if operator in ("greater_than", "less_than"):
        if actual is None or expected is None:
            return False
        try:
            return actual > expected if operator == "greater_than" else actual < expected
        except TypeError:
            return False
    if operator in ("in", "not_in"):
        values = expected if isinstance(expected, (list, tuple, set)) else [expected]
        return (actual in values) if operator == "in" else (actual not in values)
    return False


def conditions_match(lead: Lead, conditions: Iterable[Dict[str, Any]]) -> bool:
    """All conditions must hold; conditions without a field are ignored."""
    for condition in conditions or []:
        field = condition.get("field")
        if not field:
            continue
        if not compare(getattr(lead, field, None), condition.get("operator", "equals"), condition.get("value")):
            return False
    return True


def least_loaded_user(db: Session) -> Optional[User]:
    """Active tenant user with the fewest open leads (oldest account wins ties)."""
    open_leads = func.count(Lead.id)
    stmt = (
        select(User, open_leads)
        .outerjoin(
            Lead,
            and_(
                Lead.assigned_to == User.id,
                Lead.deleted_at.is_(None),
                Lead.status.not_in(CLOSED_LEAD_STATUSES),
            ),
        )
        .where(User.status == "ACTIVE")
        .group_by(User.id)
        .order_by(open_leads.asc(), User.created_at.asc())
        .limit(1)
    )
    row = db.execute(stmt).first()
    return row[0] if row else None


def assignee_for(db: Session, rule: LeadAssignmentRule) -> Optional[UUID]:
    if rule.assignment_type == "user":
        return rule.assigned_user_id
    if rule.assignment_type == "round_robin":
        user = least_loaded_user(db)
        return user.id if user else None
    return None


def auto_assign(db: Session, lead: Lead) -> Optional[UUID]:
    """Assign ``lead`` by the first matching rule.

    Args:
        db: Tenant-scoped session (caller commits)
        lead: Lead to route

    Returns:
        The assignee id, or None when no rule matched or yielded a user
    """
    rules = db.execute(
        select(LeadAssignmentRule)
        .where(LeadAssignmentRule.is_active.is_(True))
        .order_by(LeadAssignmentRule.priority.desc(), LeadAssignmentRule.created_at.asc())
    ).scalars().all()

    for rule in rules:
        if not conditions_match(lead, rule.conditions):
            continue
        user_id = assignee_for(db, rule)
        if user_id is not None:
            lead.assigned_to = user_id
            db.flush()
            logger.info(f"Lead {lead.id} assigned to {user_id} by rule '{rule.name}'")
        return user_id

    return None
