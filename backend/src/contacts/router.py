"""Contact and activity endpoints.

Activities attach to a lead, deal or contact through ``related_type`` /
``related_id``. Logging or completing an activity on a lead rescores it.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from audit.service import audit_service, model_values
from auth.dependencies import CurrentUser
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from leads.scoring import calculate_score
from models.contact import Activity, Contact
from models.deal import Deal
from models.lead import Lead
from policies import ContactPolicy, authorize
from schemas.common import MessageResponse, Page
from users.service import get_tenant_user
from .schemas import (
    ActivityCreate,
    ActivityResponse,
    ActivityUpdate,
    ContactCreate,
    ContactResponse,
    ContactUpdate,
)

router = APIRouter(tags=["Contacts"])

contact_policy = ContactPolicy()

RELATED_MODELS = {"lead": Lead, "deal": Deal, "contact": Contact}


@router.get("/contacts", response_model=Page[ContactResponse])
def list_contacts(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    search: Optional[str] = Query(None),
) -> Page[ContactResponse]:
    authorize(db, contact_policy, "view_any", current_user)
    stmt = select(Contact)
    if search:
        term = f"%{search}%"
        stmt = stmt.where(or_(Contact.first_name.ilike(term), Contact.last_name.ilike(term), Contact.email.ilike(term)))
    contacts, total = pagination.apply(db, stmt.order_by(Contact.created_at.desc()))
    return Page[ContactResponse](
        items=[ContactResponse.model_validate(c) for c in contacts],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("/contacts", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
def create_contact(
    data: ContactCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> ContactResponse:
    authorize(db, contact_policy, "create", current_user)
    if data.lead_id:
        get_or_404(db, Lead, data.lead_id)

    contact = Contact(tenant_id=tenant.id, created_by=current_user.id, **data.model_dump())
    db.add(contact)
    db.flush()
    audit_service.log(db, "created", model=contact, new_values=model_values(contact), user=current_user, request=request)
    db.commit()
    db.refresh(contact)
    return ContactResponse.model_validate(contact)


@router.get("/contacts/{contact_id}", response_model=ContactResponse)
def get_contact(contact_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    contact = get_or_404(db, Contact, contact_id)
    authorize(db, contact_policy, "view", current_user, contact)
    return ContactResponse.model_validate(contact)


@router.patch("/contacts/{contact_id}", response_model=ContactResponse)
def update_contact(
    contact_id: UUID,
    data: ContactUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> ContactResponse:
    contact = get_or_404(db, Contact, contact_id)
    authorize(db, contact_policy, "update", current_user, contact)

    changes = data.model_dump(exclude_unset=True)
    old_values = model_values(contact, changes.keys())
    for key, value in changes.items():
        setattr(contact, key, value)
    db.flush()
    audit_service.log(db, "updated", model=contact, old_values=old_values,
                      new_values=model_values(contact, changes.keys()), user=current_user, request=request)
    db.commit()
    db.refresh(contact)
    return ContactResponse.model_validate(contact)


@router.delete("/contacts/{contact_id}", response_model=MessageResponse)
def delete_contact(
    contact_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    contact = get_or_404(db, Contact, contact_id)
    authorize(db, contact_policy, "delete", current_user, contact)
    audit_service.log(db, "deleted", model=contact, old_values=model_values(contact), user=current_user, request=request)
    db.delete(contact)
    db.commit()
    return MessageResponse(message="Contact deleted successfully.")


def _rescore_if_lead(db: Session, tenant, activity: Activity) -> None:
    if activity.related_type == "lead" and activity.related_id:
        lead = db.execute(select(Lead).where(Lead.id == activity.related_id)).scalar_one_or_none()
        if lead is not None and not lead.is_deleted:
            calculate_score(db, lead, tenant)


@router.get("/activities", response_model=Page[ActivityResponse])
def list_activities(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    related_type: Optional[str] = Query(None, pattern="^(lead|deal|contact)$"),
    related_id: Optional[UUID] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
) -> Page[ActivityResponse]:
    authorize(db, contact_policy, "view_any", current_user)
    stmt = select(Activity)
    if related_type:
        stmt = stmt.where(Activity.related_type == related_type)
    if related_id:
        stmt = stmt.where(Activity.related_id == related_id)
    if status_filter:
        stmt = stmt.where(Activity.status == status_filter)
    activities, total = pagination.apply(db, stmt.order_by(Activity.created_at.desc()))
    return Page[ActivityResponse](
        items=[ActivityResponse.model_validate(a) for a in activities],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("/activities", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
def create_activity(
    data: ActivityCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> ActivityResponse:
    """Log an activity. The related record must exist in the tenant."""
    authorize(db, contact_policy, "create", current_user)
    if data.related_type and data.related_id:
        get_or_404(db, RELATED_MODELS[data.related_type], data.related_id)
    get_tenant_user(db, data.assigned_to)

    activity = Activity(tenant_id=tenant.id, created_by=current_user.id, **data.model_dump())
    db.add(activity)
    db.flush()
    _rescore_if_lead(db, tenant, activity)
    audit_service.log(db, "created", model=activity, new_values=model_values(activity), user=current_user, request=request)
    db.commit()
    db.refresh(activity)
    return ActivityResponse.model_validate(activity)


@router.patch("/activities/{activity_id}", response_model=ActivityResponse)
def update_activity(
    activity_id: UUID,
    data: ActivityUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> ActivityResponse:
    activity = get_or_404(db, Activity, activity_id)
    authorize(db, contact_policy, "update", current_user, activity)

    changes = data.model_dump(exclude_unset=True)
    if "assigned_to" in changes:
        get_tenant_user(db, changes["assigned_to"])
    old_values = model_values(activity, changes.keys())
    for key, value in changes.items():
        setattr(activity, key, value)
    db.flush()
    if "status" in changes:
        _rescore_if_lead(db, tenant, activity)
    audit_service.log(db, "updated", model=activity, old_values=old_values,
                      new_values=model_values(activity, changes.keys()), user=current_user, request=request)
    db.commit()
    db.refresh(activity)
    return ActivityResponse.model_validate(activity)


@router.delete("/activities/{activity_id}", response_model=MessageResponse)
def delete_activity(
    activity_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    activity = get_or_404(db, Activity, activity_id)
    authorize(db, contact_policy, "delete", current_user, activity)
    audit_service.log(db, "deleted", model=activity, old_values=model_values(activity), user=current_user, request=request)
    db.delete(activity)
    db.flush()
    _rescore_if_lead(db, tenant, activity)
    db.commit()
    return MessageResponse(message="Activity deleted successfully.")
