"""SQLAlchemy Models for BizFlow"""

from .base import Base, TenantScopedMixin
from .tenant import Tenant
from .user import User
from .role import Role, Permission, UserRoleAssignment, role_permission
from .audit_log import AuditLog
from .lead import Lead, LeadScore, LeadAssignmentRule
from .contact import Contact, Activity
from .deal import Pipeline, PipelineStage, Deal, DealHistory
from .product import Product
from .number_sequence import NumberSequence
from .invoice import SalesInvoice, SalesInvoiceItem
from .payment import Payment, PaymentAllocation
from .employee import Employee, Attendance, AttendanceRecord
from .website import WebsiteSite, WebsitePage
from .workflow import Workflow, WorkflowRun
from .webhook import Webhook, WebhookDelivery
from .notification import Notification

__all__ = [
    "Base",
    "TenantScopedMixin",
    "Tenant",
    "User",
    "Role",
    "Permission",
    "UserRoleAssignment",
    "role_permission",
    "AuditLog",
    "Lead",
    "LeadScore",
    "LeadAssignmentRule",
    "Contact",
    "Activity",
    "Pipeline",
    "PipelineStage",
    "Deal",
    "DealHistory",
    "Product",
    "NumberSequence",
    "SalesInvoice",
    "SalesInvoiceItem",
    "Payment",
    "PaymentAllocation",
    "Employee",
    "Attendance",
    "AttendanceRecord",
    "WebsiteSite",
    "WebsitePage",
    "Workflow",
    "WorkflowRun",
    "Webhook",
    "WebhookDelivery",
    "Notification",
]
