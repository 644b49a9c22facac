"""CRM pipeline and deal models"""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship, validates

from .base import (
    Base,
    SoftDeleteMixin,
    TenantScopedMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
    utcnow,
)

DEAL_STATUSES = ("open", "won", "lost")


class Pipeline(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    __tablename__ = "pipeline"

    name = Column(Text, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)

    stages = relationship(
        "PipelineStage",
        back_populates="pipeline",
        order_by="PipelineStage.position",
        cascade="all, delete-orphan",
    )


class PipelineStage(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    __tablename__ = "pipeline_stage"

    pipeline_id = Column(Uuid, ForeignKey("pipeline.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    probability = Column(Integer, nullable=False, default=0)

    pipeline = relationship("Pipeline", back_populates="stages")


class Deal(UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin, TenantScopedMixin, Base):
    """Sales opportunity moving through a pipeline's stages."""
    __tablename__ = "deal"

    pipeline_id = Column(Uuid, ForeignKey("pipeline.id", ondelete="CASCADE"), nullable=False, index=True)
    stage_id = Column(Uuid, ForeignKey("pipeline_stage.id", ondelete="CASCADE"), nullable=False, index=True)
    lead_id = Column(Uuid, ForeignKey("lead.id", ondelete="SET NULL"), nullable=True)
    contact_id = Column(Uuid, ForeignKey("contact.id", ondelete="SET NULL"), nullable=True)
    title = Column(Text, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    currency = Column(Text, nullable=False, default="USD")
    probability = Column(Integer, nullable=False, default=0)
    expected_close_date = Column(Date, nullable=True)
    status = Column(Text, nullable=False, default="open")
    assigned_to = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    pipeline = relationship("Pipeline")
    stage = relationship("PipelineStage")
    history = relationship(
        "DealHistory",
        back_populates="deal",
        order_by="DealHistory.changed_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("status IN ('open', 'won', 'lost')", name="ck_deal_status"),
        CheckConstraint("probability >= 0 AND probability <= 100", name="ck_deal_probability"),
    )

    @validates('status')
    def validate_status(self, key, value):
        if value not in DEAL_STATUSES:
            raise ValueError(f"Invalid deal status: {value}")
        return value

    @validates('currency')
    def validate_currency(self, key, value):
        if not value or len(value) != 3:
            raise ValueError("Currency must be a 3-letter ISO code")
        return value.upper()


class DealHistory(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    """Append-only record of stage and status transitions."""
    __tablename__ = "deal_history"

    deal_id = Column(Uuid, ForeignKey("deal.id", ondelete="CASCADE"), nullable=False, index=True)
    field = Column(Text, nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    changed_by = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    deal = relationship("Deal", back_populates="history")
