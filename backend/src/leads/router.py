"""Lead endpoints: CRUD, scoring, conversion and assignment rules.

Every endpoint runs inside the resolved tenant; LeadPolicy decides access
(``crm.leads.*``). Mutations publish ``lead.*`` events after commit, which
fan out to the audit trail, workflows, webhooks and notifications.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from audit.service import audit_service, model_values
from auth.dependencies import CurrentUser
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from events import publish
from exceptions import BusinessRuleError
from models.lead import Lead, LeadAssignmentRule, LeadScore
from policies import LeadPolicy, authorize
from schemas.common import MessageResponse, Page
from users.service import get_tenant_user
from . import conversion, service
from .scoring import calculate_score
from .schemas import (
    AssignmentRuleCreate,
    AssignmentRuleResponse,
    AssignmentRuleUpdate,
    LeadConvertRequest,
    LeadConvertResponse,
    LeadCreate,
    LeadResponse,
    LeadScoreResponse,
    LeadUpdate,
)

router = APIRouter(tags=["Leads"])

lead_policy = LeadPolicy()


@router.get("/leads", response_model=Page[LeadResponse])
def list_leads(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status"),
    source: Optional[str] = Query(None),
    assigned_to: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, description="Match name, email or phone"),
    trashed: bool = Query(False, description="List soft-deleted leads instead"),
) -> Page[LeadResponse]:
    authorize(db, lead_policy, "view_any", current_user)

    stmt = select(Lead)
    stmt = stmt.where(Lead.deleted_at.is_not(None) if trashed else Lead.deleted_at.is_(None))
    if status_filter:
        stmt = stmt.where(Lead.status == status_filter)
    if source:
        stmt = stmt.where(Lead.source == source)
    if assigned_to:
        stmt = stmt.where(Lead.assigned_to == assigned_to)
    if search:
        term = f"%{search}%"
        stmt = stmt.where(or_(Lead.name.ilike(term), Lead.email.ilike(term), Lead.phone.ilike(term)))

    leads, total = pagination.apply(db, stmt.order_by(Lead.created_at.desc()))
    return Page[LeadResponse](
        items=[LeadResponse.model_validate(lead) for lead in leads],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("/leads", response_model=LeadResponse, status_code=status.HTTP_201_CREATED)
def create_lead(
    data: LeadCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> LeadResponse:
    """Create a lead; it is auto-assigned (unless ``assigned_to`` is set) and scored."""
    authorize(db, lead_policy, "create", current_user)
    lead = service.create_lead(db, tenant, data.model_dump(), current_user)
    db.commit()
    db.refresh(lead)

    publish(db, "lead.created", lead, actor=current_user, request=request)
    db.refresh(lead)
    return LeadResponse.model_validate(lead)


@router.get("/leads/{lead_id}", response_model=LeadResponse)
def get_lead(lead_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    lead = get_or_404(db, Lead, lead_id)
    authorize(db, lead_policy, "view", current_user, lead)
    return LeadResponse.model_validate(lead)


@router.patch("/leads/{lead_id}", response_model=LeadResponse)
def update_lead(
    lead_id: UUID,
    data: LeadUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> LeadResponse:
    lead = get_or_404(db, Lead, lead_id)
    authorize(db, lead_policy, "update", current_user, lead)

    changes = service.update_lead(db, tenant, lead, data.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(lead)

    if changes:
        publish(db, "lead.updated", lead, actor=current_user, changes=changes, request=request)
        db.refresh(lead)
    return LeadResponse.model_validate(lead)


@router.delete("/leads/{lead_id}", response_model=MessageResponse)
def delete_lead(
    lead_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Soft delete; the lead can be restored."""
    lead = get_or_404(db, Lead, lead_id)
    authorize(db, lead_policy, "delete", current_user, lead)
    lead.soft_delete()
    db.commit()

    publish(db, "lead.deleted", lead, actor=current_user, request=request)
    return MessageResponse(message="Lead deleted successfully.")


@router.post("/leads/{lead_id}/restore", response_model=LeadResponse)
def restore_lead(
    lead_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> LeadResponse:
    lead = get_or_404(db, Lead, lead_id, include_deleted=True)
    authorize(db, lead_policy, "restore", current_user, lead)
    if not lead.is_deleted:
        raise BusinessRuleError("Lead is not deleted.")
    lead.restore()
    db.commit()
    db.refresh(lead)

    publish(db, "lead.restored", lead, actor=current_user, request=request)
    db.refresh(lead)
    return LeadResponse.model_validate(lead)


@router.post("/leads/{lead_id}/score", response_model=LeadResponse)
def recalculate_lead_score(
    lead_id: UUID,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> LeadResponse:
    lead = get_or_404(db, Lead, lead_id)
    authorize(db, lead_policy, "update", current_user, lead)
    calculate_score(db, lead, tenant)
    db.commit()
    db.refresh(lead)
    return LeadResponse.model_validate(lead)


@router.get("/leads/{lead_id}/scores", response_model=List[LeadScoreResponse])
def lead_score_history(
    lead_id: UUID,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> List[LeadScoreResponse]:
    lead = get_or_404(db, Lead, lead_id)
    authorize(db, lead_policy, "view", current_user, lead)
    scores = db.execute(
        select(LeadScore).where(LeadScore.lead_id == lead.id).order_by(LeadScore.calculated_at.desc())
    ).scalars().all()
    return [LeadScoreResponse.model_validate(s) for s in scores]


@router.post("/leads/{lead_id}/convert", response_model=LeadConvertResponse)
def convert_lead(
    lead_id: UUID,
    data: LeadConvertRequest,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> LeadConvertResponse:
    """Convert a lead into a contact, a deal or both.

    Raises:
        422: Already converted, or no pipeline/stage for the deal
    """
    lead = get_or_404(db, Lead, lead_id)
    authorize(db, lead_policy, "update", current_user, lead)

    try:
        contact, deal = conversion.convert(
            db,
            lead,
            create_contact=data.create_contact,
            create_deal_=data.create_deal,
            contact_data=data.contact.model_dump() if data.contact else None,
            deal_data=data.deal.model_dump() if data.deal else None,
            actor=current_user,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(lead)
    publish(
        db,
        "lead.converted",
        lead,
        actor=current_user,
        changes={"status": {"old": None, "new": "converted"},
                 "contact_id": {"old": None, "new": contact.id if contact else None},
                 "deal_id": {"old": None, "new": deal.id if deal else None}},
        request=request,
    )
    if deal is not None:
        db.refresh(deal)
        publish(db, "deal.created", deal, actor=current_user, request=request)

    db.refresh(lead)
    return LeadConvertResponse(
        lead=LeadResponse.model_validate(lead),
        contact_id=contact.id if contact else None,
        deal_id=deal.id if deal else None,
    )


@router.get("/lead-assignment-rules", response_model=List[AssignmentRuleResponse])
def list_assignment_rules(tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    authorize(db, lead_policy, "view_any", current_user)
    rules = db.execute(
        select(LeadAssignmentRule).order_by(LeadAssignmentRule.priority.desc(), LeadAssignmentRule.created_at)
    ).scalars().all()
    return [AssignmentRuleResponse.model_validate(r) for r in rules]


def _check_rule(db: Session, assignment_type: str, assigned_user_id: Optional[UUID]) -> None:
    if assignment_type == "user":
        if assigned_user_id is None:
            raise BusinessRuleError(
                "A user rule needs an assignee.",
                {"assigned_user_id": ["The assigned user field is required for user rules."]},
            )
        get_tenant_user(db, assigned_user_id, field="assigned_user_id")


@router.post("/lead-assignment-rules", response_model=AssignmentRuleResponse, status_code=status.HTTP_201_CREATED)
def create_assignment_rule(
    data: AssignmentRuleCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> AssignmentRuleResponse:
    authorize(db, lead_policy, "create", current_user)
    _check_rule(db, data.assignment_type, data.assigned_user_id)

    payload = data.model_dump()
    payload["conditions"] = [c.model_dump(mode="json") for c in data.conditions]
    rule = LeadAssignmentRule(tenant_id=tenant.id, **payload)
    db.add(rule)
    db.flush()
    audit_service.log(db, "created", model=rule, new_values=model_values(rule), user=current_user, request=request)
    db.commit()
    db.refresh(rule)
    return AssignmentRuleResponse.model_validate(rule)


@router.patch("/lead-assignment-rules/{rule_id}", response_model=AssignmentRuleResponse)
def update_assignment_rule(
    rule_id: UUID,
    data: AssignmentRuleUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> AssignmentRuleResponse:
    rule = get_or_404(db, LeadAssignmentRule, rule_id)
    authorize(db, lead_policy, "update", current_user, rule)

    old_values = model_values(rule)
    changes = data.model_dump(exclude_unset=True)
    if "conditions" in changes:
        changes["conditions"] = [c.model_dump(mode="json") for c in data.conditions or []]
    for key, value in changes.items():
        setattr(rule, key, value)
    _check_rule(db, rule.assignment_type, rule.assigned_user_id)

    db.flush()
    audit_service.log(db, "updated", model=rule, old_values=old_values, new_values=model_values(rule),
                      user=current_user, request=request)
    db.commit()
    db.refresh(rule)
    return AssignmentRuleResponse.model_validate(rule)


@router.delete("/lead-assignment-rules/{rule_id}", response_model=MessageResponse)
def delete_assignment_rule(
    rule_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    rule = get_or_404(db, LeadAssignmentRule, rule_id)
    authorize(db, lead_policy, "delete", current_user, rule)
    audit_service.log(db, "deleted", model=rule, old_values=model_values(rule), user=current_user, request=request)
    db.delete(rule)
    db.commit()
    return MessageResponse(message="Assignment rule deleted successfully.")
