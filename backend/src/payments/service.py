"""Payment recording, allocation and reversal.

Allocation rules:
- the allocations of a payment never exceed its amount
- an allocation never exceeds the invoice's outstanding balance
- only ``issued`` and ``partially_paid`` invoices accept payments

Applying allocations recomputes each invoice's ``amount_paid`` and moves it
to ``partially_paid`` or ``paid``.
"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from exceptions import BusinessRuleError
from invoices.service import refresh_payment_status, to_cents
from models.invoice import SalesInvoice
from models.payment import Payment, PaymentAllocation
from models.user import User
from numbering import generate_number

logger = logging.getLogger(__name__)

PAYMENT_SEQUENCE = "payment"
PAYABLE_STATUSES = ("issued", "partially_paid")


def create_payment(db: Session, tenant_id: UUID, data: Dict[str, Any], actor: User) -> Payment:
    """Record a payment under the next ``payment`` sequence number.

    Raises:
        NumberSequenceError: The tenant has no active payment sequence
    """
    data.pop("allocations", None)
    payment = Payment(
        tenant_id=tenant_id,
        payment_number=generate_number(db, tenant_id, PAYMENT_SEQUENCE),
        created_by=actor.id,
        **data,
    )
    payment.amount = to_cents(payment.amount)
    db.add(payment)
    db.flush()
    return payment


def _merge_allocations(allocations: List[Dict[str, Any]]) -> Dict[UUID, Decimal]:
    merged: Dict[UUID, Decimal] = defaultdict(Decimal)
    for allocation in allocations:
        merged[allocation["invoice_id"]] += to_cents(allocation["amount"])
    return merged


def apply_payment(db: Session, payment: Payment, allocations: List[Dict[str, Any]]) -> List[PaymentAllocation]:
    """Allocate ``payment`` to invoices.

    Args:
        db: Tenant-scoped session (caller commits)
        payment: Payment being applied
        allocations: ``[{"invoice_id": UUID, "amount": Decimal}, ...]``;
            repeated invoices are summed

    Returns:
        The created allocations

    Raises:
        BusinessRuleError: Empty request, over-allocation of the payment or an
            invoice, unknown invoice, or invoice not open for payment
    """
    if not allocations:
        raise BusinessRuleError("At least one allocation is required.")

    merged = _merge_allocations(allocations)
    requested = sum(merged.values(), Decimal("0"))
    if requested > payment.unallocated_amount:
        raise BusinessRuleError(
            "Total allocations cannot exceed payment amount.",
            {"allocations": [f"Only {payment.unallocated_amount} of the payment is unallocated."]},
        )

    invoices = {}
    for invoice_id, amount in merged.items():
        invoice = db.execute(
            select(SalesInvoice).where(SalesInvoice.id == invoice_id).with_for_update()
        ).scalar_one_or_none()
        if invoice is None:
            raise BusinessRuleError(
                "The selected invoice is invalid.",
                {"invoice_id": [f"Invoice {invoice_id} not found."]},
            )
        if invoice.status not in PAYABLE_STATUSES:
            raise BusinessRuleError(
                f"Invoice {invoice.invoice_number or invoice.id} cannot receive payments.",
                {"invoice_id": [f"Invoice status is {invoice.status}."]},
            )
        if amount > invoice.balance_due:
            raise BusinessRuleError(
                f"Allocation exceeds the outstanding balance of invoice {invoice.invoice_number}.",
                {"amount": [f"Outstanding balance is {invoice.balance_due}."]},
            )
        invoices[invoice_id] = invoice

    created = []
    for invoice_id, amount in merged.items():
        invoice = invoices[invoice_id]
        allocation = PaymentAllocation(
            tenant_id=payment.tenant_id,
            payment_id=payment.id,
            invoice_id=invoice.id,
            amount=amount,
        )
        payment.allocations.append(allocation)
        refresh_payment_status(invoice, Decimal(invoice.amount_paid or 0) + amount)
        created.append(allocation)

    db.flush()
    logger.info(
        f"Payment {payment.payment_number} applied to {len(created)} invoice(s)",
        extra={"payment_id": str(payment.id)},
    )
    return created


def reverse_payment(db: Session, payment: Payment) -> List[SalesInvoice]:
    """Remove all allocations of ``payment`` and restore the invoices' balances.

    Raises:
        BusinessRuleError: The payment has no allocations
    """
    if not payment.allocations:
        raise BusinessRuleError("Payment has no allocations to reverse.")

    invoices = []
    for allocation in list(payment.allocations):
        invoice = allocation.invoice
        payment.allocations.remove(allocation)
        invoices.append(invoice)
    db.flush()

    for invoice in invoices:
        db.refresh(invoice)
        refresh_payment_status(invoice)
    db.flush()
    return invoices
