"""Payment endpoints"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from auth.dependencies import CurrentUser
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from events import publish
from models.payment import Payment
from models.user import User
from policies import PaymentPolicy, authorize
from schemas.common import Page
from . import service
from .schemas import PaymentApply, PaymentCreate, PaymentResponse

router = APIRouter(prefix="/payments", tags=["Payments"])

payment_policy = PaymentPolicy()


def _allocation_changes(allocations) -> dict:
    return {
        "allocations": {
            "old": None,
            "new": [{"invoice_id": a.invoice_id, "amount": a.amount} for a in allocations],
        }
    }


def _apply(db: Session, payment: Payment, allocations: list, actor: User, request: Request) -> None:
    created = service.apply_payment(db, payment, allocations)
    db.commit()
    db.refresh(payment)
    publish(db, "payment.applied", payment, actor=actor, changes=_allocation_changes(created), request=request)
    db.refresh(payment)


@router.get("", response_model=Page[PaymentResponse])
def list_payments(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    type_filter: Optional[str] = Query(None, alias="type", pattern="^(incoming|outgoing)$"),
) -> Page[PaymentResponse]:
    authorize(db, payment_policy, "view_any", current_user)
    stmt = select(Payment)
    if type_filter:
        stmt = stmt.where(Payment.type == type_filter)
    payments, total = pagination.apply(db, stmt.order_by(Payment.payment_date.desc(), Payment.created_at.desc()))
    return Page[PaymentResponse](
        items=[PaymentResponse.model_validate(p) for p in payments],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def create_payment(
    data: PaymentCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> PaymentResponse:
    """
    Record a payment, optionally applying it to invoices right away.

    Raises:
        422: Allocation rules violated, or no payment number sequence
    """
    authorize(db, payment_policy, "create", current_user)
    allocations = [a.model_dump() for a in data.allocations]
    payment = service.create_payment(db, tenant.id, data.model_dump(), current_user)
    if allocations:
        service.apply_payment(db, payment, allocations)
    db.commit()
    db.refresh(payment)

    publish(db, "payment.created", payment, actor=current_user, request=request)
    if allocations:
        publish(db, "payment.applied", payment, actor=current_user,
                changes=_allocation_changes(payment.allocations), request=request)
    db.refresh(payment)
    return PaymentResponse.model_validate(payment)


@router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment(payment_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    payment = get_or_404(db, Payment, payment_id)
    authorize(db, payment_policy, "view", current_user, payment)
    return PaymentResponse.model_validate(payment)


@router.post("/{payment_id}/apply", response_model=PaymentResponse)
def apply_payment(
    payment_id: UUID,
    data: PaymentApply,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> PaymentResponse:
    """
    Allocate an existing payment to invoices.

    Raises:
        422: Over-allocation, or an invoice that is not issued/partially paid
    """
    payment = get_or_404(db, Payment, payment_id)
    authorize(db, payment_policy, "update", current_user, payment)
    _apply(db, payment, [a.model_dump() for a in data.allocations], current_user, request)
    return PaymentResponse.model_validate(payment)


@router.post("/{payment_id}/reverse", response_model=PaymentResponse)
def reverse_payment(
    payment_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> PaymentResponse:
    payment = get_or_404(db, Payment, payment_id)
    authorize(db, payment_policy, "update", current_user, payment)
    old_allocations = _allocation_changes(payment.allocations)["allocations"]["new"]
    service.reverse_payment(db, payment)
    db.commit()
    db.refresh(payment)
    publish(db, "payment.reversed", payment, actor=current_user,
            changes={"allocations": {"old": old_allocations, "new": []}}, request=request)
    db.refresh(payment)
    return PaymentResponse.model_validate(payment)
