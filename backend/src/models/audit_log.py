"""AuditLog SQLAlchemy model"""

from sqlalchemy import Column, DateTime, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, UUIDPrimaryKeyMixin, TenantScopedMixin, utcnow


class AuditLog(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    """AuditLog model for immutable change and security event logging.

    Records model changes (old/new values, already masked) and security events
    together with the HTTP context that caused them. Entries are append-only;
    only the retention purge removes them.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_log_tenant_id_created_at", "tenant_id", "created_at"),
        Index("ix_audit_log_model", "model_type", "model_id"),
    )

    actor_id = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    action = Column(Text, nullable=False)
    model_type = Column(Text, nullable=True)
    model_id = Column(Uuid, nullable=True)
    model_name = Column(Text, nullable=True)
    old_values = Column(PortableJSONB, nullable=True)
    new_values = Column(PortableJSONB, nullable=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    url = Column(Text, nullable=True)
    method = Column(Text, nullable=True)
    ip_address = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    request_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    actor = relationship("User")

    def to_dict(self):
        """Convert audit log entry to dictionary representation"""
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "action": self.action,
            "model_type": self.model_type,
            "model_id": str(self.model_id) if self.model_id else None,
            "model_name": self.model_name,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "metadata": self.metadata_json,
            "url": self.url,
            "method": self.method,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "request_id": self.request_id,
            "created_at": self.created_at.isoformat()
        }
