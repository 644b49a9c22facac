"""Number sequence allocation.

generate_number() locks the sequence row (SELECT ... FOR UPDATE), so two
concurrent invoice issues in one tenant can never receive the same number.
The lock is held until the caller's transaction ends.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from database import SKIP_TENANT_SCOPE
from exceptions import BusinessRuleError
from models.number_sequence import NumberSequence

logger = logging.getLogger(__name__)

DEFAULT_SEQUENCES = (
    {"code": "sales_invoice", "name": "Sales Invoice", "prefix": "INV", "format": "{PREFIX}-{YYYY}-{NUMBER}"},
    {"code": "payment", "name": "Payment", "prefix": "PAY", "format": "{PREFIX}-{YYYY}-{NUMBER}"},
)


class NumberSequenceError(BusinessRuleError):
    """Raised when a sequence is missing or inactive."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Number sequence '{code}' not found or inactive.")


def _needs_reset(sequence: NumberSequence, today: date) -> bool:
    last = sequence.last_reset_date
    if not sequence.reset_frequency or last is None:
        return False
    if sequence.reset_frequency == "yearly":
        return last.year < today.year
    if sequence.reset_frequency == "monthly":
        return (last.year, last.month) < (today.year, today.month)
    if sequence.reset_frequency == "daily":
        return last < today
    return False


def format_number(sequence: NumberSequence, number: int, today: date) -> str:
    """Render ``sequence.format`` for ``number``.

    Example:
        format "{PREFIX}-{YYYY}-{NUMBER}", prefix "INV", min_length 5,
        number 42, 2026-03-01 -> "INV-2026-00042"
    """
    rendered = sequence.format or "{PREFIX}-{NUMBER}"
    replacements = (
        ("{PREFIX}", sequence.prefix or ""),
        ("{SUFFIX}", sequence.suffix or ""),
        ("{NUMBER}", str(number).zfill(sequence.min_length or 0)),
        ("{YYYY}", f"{today.year:04d}"),
        ("{YY}", f"{today.year % 100:02d}"),
        ("{MM}", f"{today.month:02d}"),
        ("{DD}", f"{today.day:02d}"),
    )
    for token, value in replacements:
        rendered = rendered.replace(token, value)
    return rendered


def generate_number(db: Session, tenant_id: UUID, code: str, today: Optional[date] = None) -> str:
    """Allocate the next number of sequence ``code`` for ``tenant_id``.

    Args:
        db: Database session (the row lock lasts until its transaction ends)
        tenant_id: Tenant owning the sequence
        code: Sequence code, e.g. "sales_invoice"
        today: Date used for resets and date tokens (defaults to today)

    Returns:
        Formatted document number

    Raises:
        NumberSequenceError: If the sequence is missing or inactive
    """
    today = today or date.today()

    sequence = db.execute(
        select(NumberSequence)
        .where(
            NumberSequence.tenant_id == tenant_id,
            NumberSequence.code == code,
            NumberSequence.is_active.is_(True),
        )
        .with_for_update()
    ).scalar_one_or_none()

    if sequence is None:
        raise NumberSequenceError(code)

    if _needs_reset(sequence, today):
        logger.info(f"Resetting number sequence {code} ({sequence.reset_frequency})")
        sequence.next_number = 1
        sequence.last_reset_date = today
    elif sequence.last_reset_date is None:
        sequence.last_reset_date = today

    number = sequence.next_number
    sequence.next_number = number + 1
    db.flush()

    return format_number(sequence, number, today)


def create_default_sequences(db: Session, tenant_id: UUID) -> list[NumberSequence]:
    """Create the tenant's default sequences that don't exist yet."""
    existing = set(
        db.execute(
            select(NumberSequence.code)
            .where(NumberSequence.tenant_id == tenant_id)
            .execution_options(**{SKIP_TENANT_SCOPE: True})
        ).scalars().all()
    )
    created = []
    for definition in DEFAULT_SEQUENCES:
        if definition["code"] in existing:
            continue
        sequence = NumberSequence(tenant_id=tenant_id, min_length=5, next_number=1, is_active=True, **definition)
        db.add(sequence)
        created.append(sequence)
    db.flush()
    return created
