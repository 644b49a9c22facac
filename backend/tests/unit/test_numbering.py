"""Unit tests for document number formatting and allocation"""

from datetime import date

import pytest

from models.number_sequence import NumberSequence
from numbering.service import NumberSequenceError, format_number, generate_number


def _sequence(**attrs):
    defaults = {"code": "sales_invoice", "prefix": "INV", "format": "{PREFIX}-{YYYY}-{NUMBER}", "min_length": 5}
    defaults.update(attrs)
    return NumberSequence(**defaults)


class TestFormatNumber:
    def test_default_invoice_format(self):
        assert format_number(_sequence(), 42, date(2026, 3, 1)) == "INV-2026-00042"

    def test_date_tokens_and_suffix(self):
        sequence = _sequence(format="{PREFIX}{YY}{MM}{DD}-{NUMBER}{SUFFIX}", suffix="/A", min_length=3)
        assert format_number(sequence, 7, date(2026, 3, 1)) == "INV260301-007/A"

    def test_number_longer_than_min_length(self):
        assert format_number(_sequence(min_length=2), 12345, date(2026, 1, 1)) == "INV-2026-12345"


class TestGenerateNumber:
    def test_numbers_are_sequential_per_tenant(self, db_session, tenant, other_tenant):
        today = date(2026, 5, 4)
        first = generate_number(db_session, tenant.id, "sales_invoice", today)
        second = generate_number(db_session, tenant.id, "sales_invoice", today)
        foreign = generate_number(db_session, other_tenant.id, "sales_invoice", today)

        assert first == "INV-2026-00001"
        assert second == "INV-2026-00002"
        assert foreign == "INV-2026-00001"

    def test_yearly_reset(self, db_session, tenant):
        sequence = db_session.query(NumberSequence).filter_by(tenant_id=tenant.id, code="payment").one()
        sequence.reset_frequency = "yearly"
        db_session.flush()

        generate_number(db_session, tenant.id, "payment", date(2025, 12, 31))
        generate_number(db_session, tenant.id, "payment", date(2025, 12, 31))
        number = generate_number(db_session, tenant.id, "payment", date(2026, 1, 1))

        assert number == "PAY-2026-00001"

    def test_unknown_sequence(self, db_session, tenant):
        with pytest.raises(NumberSequenceError):
            generate_number(db_session, tenant.id, "purchase_order")

    def test_inactive_sequence(self, db_session, tenant):
        sequence = db_session.query(NumberSequence).filter_by(tenant_id=tenant.id, code="sales_invoice").one()
        sequence.is_active = False
        db_session.flush()
        with pytest.raises(NumberSequenceError):
            generate_number(db_session, tenant.id, "sales_invoice")
