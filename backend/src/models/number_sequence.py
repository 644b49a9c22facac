"""Document number sequence model"""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, Integer, Text, UniqueConstraint

from .base import Base, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin

DEFAULT_NUMBER_FORMAT = "{PREFIX}-{NUMBER}"


class NumberSequence(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Per-tenant counter used to number invoices, payments and other documents.

    ``format`` supports the tokens {PREFIX}, {NUMBER}, {SUFFIX}, {YYYY},
    {YY}, {MM} and {DD}. ``next_number`` restarts at 1 when
    ``reset_frequency`` (yearly, monthly, daily) crosses a boundary.
    """
    __tablename__ = "number_sequence"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_number_sequence_tenant_code"),
        CheckConstraint(
            "reset_frequency IS NULL OR reset_frequency IN ('yearly', 'monthly', 'daily')",
            name="ck_number_sequence_reset_frequency",
        ),
        CheckConstraint("next_number >= 1", name="ck_number_sequence_next_number"),
    )

    code = Column(Text, nullable=False)
    name = Column(Text, nullable=True)
    prefix = Column(Text, nullable=False, default="")
    suffix = Column(Text, nullable=True)
    next_number = Column(Integer, nullable=False, default=1)
    min_length = Column(Integer, nullable=False, default=5)
    format = Column(Text, nullable=False, default=DEFAULT_NUMBER_FORMAT)
    reset_frequency = Column(Text, nullable=True)
    last_reset_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
