"""Unit tests for invoice line and total calculations"""

from decimal import Decimal

import pytest

from invoices.service import calculate_line, recalculate_totals, to_cents
from models.invoice import SalesInvoice, SalesInvoiceItem


class TestCalculateLine:
    def test_line_total_and_tax(self):
        assert calculate_line(3, "19.99", 20) == (Decimal("59.97"), Decimal("11.99"))

    def test_rounds_half_up_to_cents(self):
        # 0.125 rounds up, not to even
        line_total, tax = calculate_line(1, "0.25", 50)
        assert line_total == Decimal("0.25")
        assert tax == Decimal("0.13")

    def test_fractional_quantity(self):
        assert calculate_line(Decimal("1.5"), "10.00", 0) == (Decimal("15.00"), Decimal("0.00"))

    def test_zero_tax(self):
        assert calculate_line(2, "100", 0)[1] == Decimal("0.00")


def test_to_cents_handles_none():
    assert to_cents(None) == Decimal("0.00")


def test_recalculate_totals_sums_items():
    invoice = SalesInvoice(customer_name="Wayne Enterprises")
    invoice.items = [
        SalesInvoiceItem(description="Consulting", quantity=Decimal("2"), unit_price=Decimal("150.00"),
                         tax_rate=Decimal("20")),
        SalesInvoiceItem(description="Travel", quantity=Decimal("1"), unit_price=Decimal("80.50"),
                         tax_rate=Decimal("0")),
    ]

    recalculate_totals(invoice)

    assert invoice.subtotal == Decimal("380.50")
    assert invoice.tax_total == Decimal("60.00")
    assert invoice.total == Decimal("440.50")
    assert invoice.items[0].line_total == Decimal("300.00")
    assert invoice.items[0].tax_amount == Decimal("60.00")


def test_recalculate_totals_without_items():
    invoice = SalesInvoice(customer_name="Empty Ltd")
    invoice.items = []
    recalculate_totals(invoice)
    assert invoice.total == Decimal("0.00")


@pytest.mark.parametrize(
    "total, paid, expected",
    [
        (Decimal("100.00"), Decimal("0.00"), Decimal("100.00")),
        (Decimal("100.00"), Decimal("40.00"), Decimal("60.00")),
        (Decimal("100.00"), Decimal("100.00"), Decimal("0.00")),
    ],
)
def test_balance_due(total, paid, expected):
    invoice = SalesInvoice(customer_name="Acme", total=total, amount_paid=paid)
    assert invoice.balance_due == expected
