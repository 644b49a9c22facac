"""Invoice calculations and lifecycle.

Totals are derived from the items on every change:

    line_total = quantity * unit_price
    tax_amount = line_total * tax_rate / 100
    subtotal   = sum(line_total)
    tax_total  = sum(tax_amount)
    total      = subtotal + tax_total

Every amount is rounded half-up to cents. Only drafts can be edited,
deleted or issued.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from exceptions import BusinessRuleError
from models.base import utcnow
from models.invoice import SalesInvoice, SalesInvoiceItem
from models.payment import PaymentAllocation
from models.product import Product
from models.user import User
from numbering import generate_number

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
SALES_INVOICE_SEQUENCE = "sales_invoice"


def to_cents(value: Any) -> Decimal:
    return Decimal(value or 0).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_line(quantity: Any, unit_price: Any, tax_rate: Any) -> tuple[Decimal, Decimal]:
    """Return ``(line_total, tax_amount)`` for one item, rounded to cents.

    Example:
        calculate_line(3, "19.99", 20) -> (Decimal("59.97"), Decimal("11.99"))
    """
    line_total = Decimal(quantity) * Decimal(unit_price)
    tax_amount = line_total * Decimal(tax_rate) / Decimal(100)
    return to_cents(line_total), to_cents(tax_amount)


def recalculate_totals(invoice: SalesInvoice) -> SalesInvoice:
    subtotal = Decimal("0")
    tax_total = Decimal("0")
    for item in invoice.items:
        item.line_total, item.tax_amount = calculate_line(item.quantity, item.unit_price, item.tax_rate)
        subtotal += item.line_total
        tax_total += item.tax_amount
    invoice.subtotal = to_cents(subtotal)
    invoice.tax_total = to_cents(tax_total)
    invoice.total = to_cents(subtotal + tax_total)
    return invoice


def build_items(db: Session, invoice: SalesInvoice, items: List[Dict[str, Any]]) -> List[SalesInvoiceItem]:
    """Create item rows, defaulting description, price and tax from the referenced product.

    Raises:
        BusinessRuleError: An item references an unknown product, or has no
            description and no product to take it from
    """
    built = []
    for position, data in enumerate(items):
        product = None
        if data.get("product_id"):
            product = db.execute(select(Product).where(Product.id == data["product_id"])).scalar_one_or_none()
            if product is None:
                raise BusinessRuleError(
                    "The selected product is invalid.",
                    {f"items.{position}.product_id": ["The selected product is invalid."]},
                )

        description = data.get("description") or (product.name if product else None)
        if not description:
            raise BusinessRuleError(
                "Each item needs a description.",
                {f"items.{position}.description": ["The description field is required."]},
            )

        unit_price = data.get("unit_price")
        tax_rate = data.get("tax_rate")
        built.append(
            SalesInvoiceItem(
                tenant_id=invoice.tenant_id,
                product_id=product.id if product else None,
                position=position,
                description=description,
                quantity=Decimal(data.get("quantity", 1)),
                unit_price=Decimal(unit_price if unit_price is not None else (product.unit_price if product else 0)),
                tax_rate=Decimal(tax_rate if tax_rate is not None else (product.tax_rate if product else 0)),
            )
        )
    return built


def ensure_draft(invoice: SalesInvoice, action: str) -> None:
    if invoice.status != "draft":
        raise BusinessRuleError(f"Only draft invoices can be {action}.")


def create_invoice(db: Session, tenant_id, data: Dict[str, Any], actor: User) -> SalesInvoice:
    items = data.pop("items", [])
    invoice = SalesInvoice(tenant_id=tenant_id, status="draft", created_by=actor.id, **data)
    invoice.items = build_items(db, invoice, items)
    recalculate_totals(invoice)
    db.add(invoice)
    db.flush()
    return invoice


def update_invoice(db: Session, invoice: SalesInvoice, data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a partial update to a draft; ``items``, when given, replace all lines.

    Returns:
        ``{field: {"old": ..., "new": ...}}`` for changed header fields and totals
    """
    ensure_draft(invoice, "edited")
    changes: Dict[str, Any] = {}
    old_total = invoice.total

    items = data.pop("items", None)
    for field, value in data.items():
        old = getattr(invoice, field)
        if old != value:
            changes[field] = {"old": old, "new": value}
            setattr(invoice, field, value)

    if items is not None:
        invoice.items.clear()
        db.flush()
        invoice.items.extend(build_items(db, invoice, items))

    recalculate_totals(invoice)
    if invoice.total != old_total:
        changes["total"] = {"old": old_total, "new": invoice.total}
    db.flush()
    return changes


def issue_invoice(db: Session, invoice: SalesInvoice, actor: User) -> SalesInvoice:
    """Number and issue a draft.

    Raises:
        BusinessRuleError: Not a draft, no items, or the sequence is missing
    """
    ensure_draft(invoice, "issued")
    if not invoice.items:
        raise BusinessRuleError("An invoice needs at least one item to be issued.")

    invoice.invoice_number = generate_number(db, invoice.tenant_id, SALES_INVOICE_SEQUENCE)
    invoice.status = "issued"
    invoice.issued_by = actor.id
    invoice.issued_at = utcnow()
    if invoice.issue_date is None:
        invoice.issue_date = invoice.issued_at.date()
    db.flush()

    logger.info(f"Invoice issued: {invoice.invoice_number}", extra={"invoice_id": str(invoice.id)})
    return invoice


def cancel_invoice(db: Session, invoice: SalesInvoice) -> SalesInvoice:
    """Cancel a draft or an unpaid issued invoice.

    Raises:
        BusinessRuleError: Already cancelled or paid, or payments are allocated
    """
    if invoice.status in ("cancelled", "paid"):
        raise BusinessRuleError("Invoice cannot be cancelled.")
    has_payments = db.execute(
        select(PaymentAllocation.id).where(PaymentAllocation.invoice_id == invoice.id)
    ).first()
    if has_payments is not None:
        raise BusinessRuleError("Cannot cancel invoice with payments. Reverse payments first.")

    invoice.status = "cancelled"
    db.flush()
    return invoice


def refresh_payment_status(invoice: SalesInvoice, amount_paid: Optional[Decimal] = None) -> SalesInvoice:
    """Recompute ``amount_paid`` from allocations and derive the status.

    Fully paid invoices become ``paid``, partly paid ``partially_paid``
    and unpaid ones fall back to ``issued``.
    """
    if amount_paid is None:
        amount_paid = sum((Decimal(a.amount) for a in invoice.allocations), Decimal("0"))
    invoice.amount_paid = to_cents(amount_paid)
    if invoice.amount_paid <= 0:
        invoice.status = "issued"
    elif invoice.amount_paid >= invoice.total:
        invoice.status = "paid"
    else:
        invoice.status = "partially_paid"
    return invoice
