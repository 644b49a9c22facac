"""Lead scoring.

A lead's score is the sum of points for the contact data it carries, its
source and status, the activities logged against it and how recently it
was engaged. Tenants can override any of the point tables through the
``lead_scoring_rules`` setting; overrides are merged into the defaults per
key. Every calculation is kept as a LeadScore row with its breakdown.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.base import ensure_aware, utcnow
from models.contact import Activity
from models.lead import Lead, LeadScore
from models.tenant import Tenant
from tenancy.service import deep_merge

DEFAULT_SCORING_RULES: Dict[str, Dict[str, int]] = {
    "contact_info": {
        "email": 10,
        "phone": 10,
    },
    "source": {
        "website": 20,
        "referral": 30,
        "social_media": 15,
        "email_campaign": 15,
        "cold_call": 5,
    },
    "status": {
        "qualified": 20,
        "contacted": 15,
        "new": 5,
    },
    "activities": {
        "call": 5,
        "meeting": 15,
        "task_completed": 10,
        "email_sent": 3,
        "email_opened": 5,
        "email_clicked": 10,
    },
    "engagement": {
        "recent_activity_days": 7,
        "recent_activity_bonus": 10,
        "high_activity_threshold": 5,
        "high_activity_bonus": 15,
    },
}


def get_scoring_rules(tenant: Optional[Tenant]) -> Dict[str, Any]:
    custom = tenant.get_setting("lead_scoring_rules") if tenant is not None else None
    if not isinstance(custom, dict):
        return DEFAULT_SCORING_RULES
    return deep_merge(DEFAULT_SCORING_RULES, custom)


def activity_points(activities: List[Activity], rules: Dict[str, Any]) -> int:
    """Points per activity type, plus the completion bonus for finished tasks."""
    table = rules.get("activities", {})
    score = 0
    for activity in activities:
        score += table.get(activity.type, 0)
        if activity.type == "task" and activity.status == "completed":
            score += table.get("task_completed", 0)
    return score


def engagement_points(recent_count: int, rules: Dict[str, Any]) -> int:
    table = rules.get("engagement", {})
    score = 0
    if recent_count > 0:
        score += table.get("recent_activity_bonus", 0)
    if recent_count >= table.get("high_activity_threshold", 5):
        score += table.get("high_activity_bonus", 0)
    return score


def score_breakdown(lead: Lead, activities: List[Activity], rules: Dict[str, Any]) -> Dict[str, int]:
    """Points per scoring category; categories worth nothing are left out.

    Example:
        {"email": 10, "source": 30, "status": 5, "activities": 15}
    """
    breakdown: Dict[str, int] = {}
    contact_info = rules.get("contact_info", {})

    if lead.email and "email" in contact_info:
        breakdown["email"] = contact_info["email"]
    if lead.phone and "phone" in contact_info:
        breakdown["phone"] = contact_info["phone"]

    if lead.source and lead.source in rules.get("source", {}):
        breakdown["source"] = rules["source"][lead.source]
    if lead.status and lead.status in rules.get("status", {}):
        breakdown["status"] = rules["status"][lead.status]

    points = activity_points(activities, rules)
    if points > 0:
        breakdown["activities"] = points

    days = rules.get("engagement", {}).get("recent_activity_days", 7)
    cutoff = utcnow() - timedelta(days=days)
    recent = sum(1 for a in activities if a.created_at is not None and ensure_aware(a.created_at) >= cutoff)
    points = engagement_points(recent, rules)
    if points > 0:
        breakdown["engagement"] = points

    return breakdown


def lead_activities(db: Session, lead: Lead) -> List[Activity]:
    return list(
        db.execute(
            select(Activity).where(Activity.related_type == "lead", Activity.related_id == lead.id)
        ).scalars().all()
    )


def calculate_score(db: Session, lead: Lead, tenant: Optional[Tenant] = None) -> int:
    """Recalculate, store and return the lead's score.

    Args:
        db: Tenant-scoped session (caller commits)
        lead: Lead to score
        tenant: Lead's tenant (loaded when omitted) for custom rules

    Returns:
        The new score
    """
    if tenant is None:
        tenant = db.get(Tenant, lead.tenant_id)
    rules = get_scoring_rules(tenant)
    breakdown = score_breakdown(lead, lead_activities(db, lead), rules)
    score = sum(breakdown.values())

    now = utcnow()
    lead.score = score
    lead.score_calculated_at = now
    db.add(LeadScore(tenant_id=lead.tenant_id, lead_id=lead.id, score=score, breakdown=breakdown, calculated_at=now))
    db.flush()
    return score


def recalculate_all(db: Session, tenant: Tenant) -> int:
    """Rescore every live lead of ``tenant``. Returns the number scored."""
    leads = db.execute(
        select(Lead)
        .where(Lead.tenant_id == tenant.id, Lead.deleted_at.is_(None))
        .order_by(Lead.created_at)
    ).scalars().all()
    for lead in leads:
        calculate_score(db, lead, tenant)
    return len(leads)
