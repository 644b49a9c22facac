"""CRM lead models: Lead, LeadScore history and LeadAssignmentRule"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Text, Uuid, CheckConstraint
from sqlalchemy.orm import relationship, validates

from .base import (
    Base,
    PortableJSONB,
    SoftDeleteMixin,
    TenantScopedMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
    utcnow,
)

LEAD_STATUSES = ("new", "contacted", "qualified", "unqualified", "converted", "lost")
LEAD_SOURCES = ("website", "referral", "social_media", "email_campaign", "cold_call", "other")


class Lead(UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin, TenantScopedMixin, Base):
    """Sales lead captured before it becomes a contact and/or deal."""
    __tablename__ = "lead"

    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    source = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="new")
    score = Column(Integer, nullable=False, default=0)
    score_calculated_at = Column(DateTime(timezone=True), nullable=True)
    assigned_to = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    assignee = relationship("User", foreign_keys=[assigned_to])
    scores = relationship(
        "LeadScore",
        back_populates="lead",
        order_by="LeadScore.calculated_at.desc()",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('new', 'contacted', 'qualified', 'unqualified', 'converted', 'lost')",
            name="ck_lead_status",
        ),
    )

    @validates('status')
    def validate_status(self, key, value):
        if value not in LEAD_STATUSES:
            raise ValueError(f"Invalid lead status: {value}")
        return value

    @validates('email')
    def validate_email(self, key, value):
        return value.lower() if value else value


class LeadScore(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    """Historical score snapshot with the rule breakdown that produced it."""
    __tablename__ = "lead_score"

    lead_id = Column(Uuid, ForeignKey("lead.id", ondelete="CASCADE"), nullable=False, index=True)
    score = Column(Integer, nullable=False)
    breakdown = Column(PortableJSONB, nullable=False, default=dict)
    calculated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    lead = relationship("Lead", back_populates="scores")


class LeadAssignmentRule(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Routing rule: when all conditions match a new lead, assign it.

    ``conditions`` is a list of ``{"field", "operator", "value"}`` objects.
    ``assignment_type`` is ``user`` (fixed assignee) or ``round_robin``
    (tenant user with the fewest open leads).
    """
    __tablename__ = "lead_assignment_rule"

    name = Column(Text, nullable=False)
    conditions = Column(PortableJSONB, nullable=False, default=list)
    assignment_type = Column(Text, nullable=False, default="user")
    assigned_user_id = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "assignment_type IN ('user', 'round_robin')",
            name="ck_lead_assignment_rule_type",
        ),
    )
