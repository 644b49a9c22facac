"""CRM contact and activity models"""

from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid

from .base import Base, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Contact(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    __tablename__ = "contact"

    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    lead_id = Column(Uuid, ForeignKey("lead.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class Activity(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Call, meeting, task or email touchpoint attached to any CRM record.

    ``related_type``/``related_id`` form a polymorphic reference
    (``lead``, ``deal``, ``contact``).
    """
    __tablename__ = "activity"

    type = Column(Text, nullable=False, default="task")
    subject = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    priority = Column(Text, nullable=False, default="medium")
    status = Column(Text, nullable=False, default="pending")
    related_type = Column(Text, nullable=True)
    related_id = Column(Uuid, nullable=True, index=True)
    assigned_to = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
