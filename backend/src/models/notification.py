"""In-app notification model"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, Uuid

from .base import Base, PortableJSONB, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Notification(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    __tablename__ = "notification"
    __table_args__ = (
        Index("ix_notification_user_read", "user_id", "read_at"),
    )

    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    entity_type = Column(Text, nullable=True)
    entity_id = Column(Uuid, nullable=True)
    type = Column(Text, nullable=False, default="info")
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    metadata_json = Column(PortableJSONB, nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None
