"""HR employee and attendance models"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Employee(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Employee record.

    ``biotime_emp_code`` links the employee to the ZKBioTime terminal
    personnel code used in attendance transactions.
    """
    __tablename__ = "employee"
    __table_args__ = (
        UniqueConstraint("tenant_id", "biotime_emp_code", name="uq_employee_tenant_biotime_code"),
    )

    user_id = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    biotime_emp_code = Column(Text, nullable=True)
    hire_date = Column(Date, nullable=True)
    status = Column(Text, nullable=False, default="active")
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class AttendanceRecord(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    """Raw punch imported from an attendance source (one per terminal transaction)."""
    __tablename__ = "attendance_record"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "employee_id", "source", "external_id",
            name="uq_attendance_record_source_external",
        ),
        Index("ix_attendance_record_employee_time", "employee_id", "punch_time"),
    )

    employee_id = Column(Uuid, ForeignKey("employee.id", ondelete="CASCADE"), nullable=False)
    source = Column(Text, nullable=False)
    external_id = Column(Text, nullable=False)
    punch_time = Column(DateTime(timezone=True), nullable=False)
    punch_type = Column(Text, nullable=True)
    raw = Column(PortableJSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True)

    employee = relationship("Employee")


class Attendance(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Daily attendance summary: earliest check-in and latest check-out."""
    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_id", "date", name="uq_attendance_employee_date"),
    )

    employee_id = Column(Uuid, ForeignKey("employee.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    check_in = Column(DateTime(timezone=True), nullable=True)
    check_out = Column(DateTime(timezone=True), nullable=True)
    status = Column(Text, nullable=False, default="present")
    notes = Column(Text, nullable=True)

    employee = relationship("Employee")
