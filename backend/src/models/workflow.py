"""Workflow automation models"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

WORKFLOW_EVENTS = (
    "lead.created",
    "lead.updated",
    "lead.converted",
    "deal.created",
    "deal.updated",
    "deal.status_changed",
    "deal.stage_changed",
    "invoice.issued",
    "payment.applied",
)


class Workflow(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Trigger-condition-action rule.

    ``conditions`` is a list of condition objects that must all pass;
    ``actions`` is an ordered list of action objects executed in sequence.
    Higher ``priority`` runs first.
    """
    __tablename__ = "workflow"
    __table_args__ = (
        Index("ix_workflow_tenant_event_active", "tenant_id", "event", "is_active"),
    )

    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    event = Column(Text, nullable=False)
    conditions = Column(PortableJSONB, nullable=False, default=list)
    actions = Column(PortableJSONB, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    priority = Column(Integer, nullable=False, default=0)
    created_by = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    runs = relationship(
        "WorkflowRun",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowRun.started_at.desc()",
    )


class WorkflowRun(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    __tablename__ = "workflow_run"
    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'completed', 'failed', 'skipped')",
            name="ck_workflow_run_status",
        ),
    )

    workflow_id = Column(Uuid, ForeignKey("workflow.id", ondelete="CASCADE"), nullable=False, index=True)
    event = Column(Text, nullable=False)
    entity_type = Column(Text, nullable=True)
    entity_id = Column(Uuid, nullable=True)
    status = Column(Text, nullable=False, default="running")
    trigger_data = Column(PortableJSONB, nullable=True)
    results = Column(PortableJSONB, nullable=True)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    workflow = relationship("Workflow", back_populates="runs")
