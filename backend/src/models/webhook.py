"""Outbound webhook subscription and delivery models"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Webhook(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Tenant subscription to module events, delivered as signed JSON POSTs."""
    __tablename__ = "webhook"

    url = Column(Text, nullable=False)
    secret = Column(Text, nullable=True)
    module = Column(Text, nullable=False)
    event_types = Column(PortableJSONB, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    last_delivery_status = Column(Text, nullable=True)
    last_delivery_at = Column(DateTime(timezone=True), nullable=True)

    deliveries = relationship(
        "WebhookDelivery",
        back_populates="webhook",
        cascade="all, delete-orphan",
    )

    def subscribes_to(self, event_type: str, explicit: bool = False) -> bool:
        """``explicit`` ignores the ``*`` wildcard."""
        event_types = self.event_types or []
        if event_type in event_types:
            return True
        return not explicit and "*" in event_types


class WebhookDelivery(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    __tablename__ = "webhook_delivery"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'success', 'failed')", name="ck_webhook_delivery_status"),
    )

    webhook_id = Column(Uuid, ForeignKey("webhook.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(Text, nullable=False)
    payload = Column(PortableJSONB, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    response_code = Column(Integer, nullable=True)
    response_body = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    webhook = relationship("Webhook", back_populates="deliveries")
