"""Sales invoice endpoints"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from auth.dependencies import CurrentUser
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from events import publish
from models.contact import Contact
from models.invoice import SalesInvoice
from policies import InvoicePolicy, authorize
from schemas.common import MessageResponse, Page
from . import service
from .schemas import InvoiceCreate, InvoiceResponse, InvoiceUpdate

router = APIRouter(prefix="/invoices", tags=["Invoices"])

invoice_policy = InvoicePolicy()


@router.get("", response_model=Page[InvoiceResponse])
def list_invoices(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(
        None, alias="status", pattern="^(draft|issued|partially_paid|paid|cancelled)$"
    ),
    search: Optional[str] = Query(None, description="Match invoice number or customer"),
) -> Page[InvoiceResponse]:
    authorize(db, invoice_policy, "view_any", current_user)
    stmt = select(SalesInvoice)
    if status_filter:
        stmt = stmt.where(SalesInvoice.status == status_filter)
    if search:
        term = f"%{search}%"
        stmt = stmt.where(or_(
            SalesInvoice.invoice_number.ilike(term),
            SalesInvoice.customer_name.ilike(term),
            SalesInvoice.customer_email.ilike(term),
        ))
    invoices, total = pagination.apply(db, stmt.order_by(SalesInvoice.created_at.desc()))
    return Page[InvoiceResponse](
        items=[InvoiceResponse.model_validate(i) for i in invoices],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(
    data: InvoiceCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> InvoiceResponse:
    """Create a draft invoice; totals are computed from the items."""
    authorize(db, invoice_policy, "create", current_user)
    if data.contact_id:
        get_or_404(db, Contact, data.contact_id)

    invoice = service.create_invoice(db, tenant.id, data.model_dump(), current_user)
    db.commit()
    db.refresh(invoice)
    publish(db, "invoice.created", invoice, actor=current_user, request=request)
    db.refresh(invoice)
    return InvoiceResponse.model_validate(invoice)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(invoice_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    invoice = get_or_404(db, SalesInvoice, invoice_id)
    authorize(db, invoice_policy, "view", current_user, invoice)
    return InvoiceResponse.model_validate(invoice)


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
def update_invoice(
    invoice_id: UUID,
    data: InvoiceUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> InvoiceResponse:
    """
    Update a draft invoice.

    Raises:
        422: Invoice is not a draft
    """
    invoice = get_or_404(db, SalesInvoice, invoice_id)
    authorize(db, invoice_policy, "update", current_user, invoice)
    payload = data.model_dump(exclude_unset=True)
    if payload.get("contact_id"):
        get_or_404(db, Contact, payload["contact_id"])

    changes = service.update_invoice(db, invoice, payload)
    db.commit()
    db.refresh(invoice)
    if changes:
        publish(db, "invoice.updated", invoice, actor=current_user, changes=changes, request=request)
        db.refresh(invoice)
    return InvoiceResponse.model_validate(invoice)


@router.delete("/{invoice_id}", response_model=MessageResponse)
def delete_invoice(
    invoice_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    invoice = get_or_404(db, SalesInvoice, invoice_id)
    authorize(db, invoice_policy, "delete", current_user, invoice)
    service.ensure_draft(invoice, "deleted")
    publish(db, "invoice.deleted", invoice, actor=current_user, request=request)
    db.delete(invoice)
    db.commit()
    return MessageResponse(message="Invoice deleted successfully.")


@router.post("/{invoice_id}/issue", response_model=InvoiceResponse)
def issue_invoice(
    invoice_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> InvoiceResponse:
    """
    Issue a draft: allocate the next invoice number and lock the invoice.

    Raises:
        403: Missing erp.invoices.issue
        422: Not a draft, no items, or no active invoice number sequence
    """
    invoice = get_or_404(db, SalesInvoice, invoice_id)
    authorize(db, invoice_policy, "issue", current_user, invoice)
    service.issue_invoice(db, invoice, current_user)
    db.commit()
    db.refresh(invoice)
    publish(db, "invoice.issued", invoice, actor=current_user,
            changes={"status": {"old": "draft", "new": "issued"}}, request=request)
    db.refresh(invoice)
    return InvoiceResponse.model_validate(invoice)


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
def cancel_invoice(
    invoice_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> InvoiceResponse:
    invoice = get_or_404(db, SalesInvoice, invoice_id)
    authorize(db, invoice_policy, "update", current_user, invoice)
    old_status = invoice.status
    service.cancel_invoice(db, invoice)
    db.commit()
    db.refresh(invoice)
    publish(db, "invoice.cancelled", invoice, actor=current_user,
            changes={"status": {"old": old_status, "new": "cancelled"}}, request=request)
    db.refresh(invoice)
    return InvoiceResponse.model_validate(invoice)
