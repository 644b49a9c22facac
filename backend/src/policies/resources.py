"""Policies for CRM, ERP and HR resources"""

from typing import Any

from sqlalchemy.orm import Session

from models.user import User
from .base import BasePolicy


class LeadPolicy(BasePolicy):
    module = "crm"
    resource = "leads"


class ContactPolicy(BasePolicy):
    module = "crm"
    resource = "contacts"


class DealPolicy(BasePolicy):
    module = "crm"
    resource = "deals"


class PipelinePolicy(BasePolicy):
    module = "crm"
    resource = "pipelines"


class WorkflowPolicy(BasePolicy):
    module = "crm"
    resource = "workflows"


class ProductPolicy(BasePolicy):
    module = "erp"
    resource = "products"


class InvoicePolicy(BasePolicy):
    module = "erp"
    resource = "invoices"

    def issue(self, db: Session, user: User, model: Any) -> bool:
        return self.check(db, user, "issue", model)


class PaymentPolicy(BasePolicy):
    module = "erp"
    resource = "payments"


class WebhookPolicy(BasePolicy):
    module = "erp"
    resource = "webhooks"


class EmployeePolicy(BasePolicy):
    module = "hr"
    resource = "employees"


class AttendancePolicy(BasePolicy):
    module = "hr"
    resource = "attendance"

    def sync(self, db: Session, user: User) -> bool:
        return self.check(db, user, "sync")


class AuditLogPolicy(BasePolicy):
    module = "core"
    resource = "audit_logs"
