"""Workflow actions.

Each action returns a result dict with ``success`` and, on failure,
``error``. A failed action does not stop the remaining ones; the run is
marked failed afterwards.

    {"type": "create_activity", "activity_type": "call", "subject": "Call {{name}}",
     "due_date": "2026-07-01T09:00:00", "priority": "high"}
    {"type": "update_deal_status", "status": "won"}
    {"type": "assign_user", "user_id": "<uuid>"}
    {"type": "send_notification", "user_id": "<uuid>", "title": "...", "message": "..."}
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from deals import service as deal_service
from models.base import ensure_aware
from models.contact import Activity
from models.deal import Deal
from models.user import User
from notifications.service import NotificationService, deal_status_message

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def resolve_template(template: Optional[str], entity: Any) -> str:
    """Replace ``{{field}}`` with entity attributes; unknown fields stay as written."""
    if not template:
        return template or ""

    def replace(match):
        value = getattr(entity, match.group(1), None) if entity is not None else None
        return match.group(0) if value is None else str(value)

    return TEMPLATE_PATTERN.sub(replace, template)


def _failure(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message}


class WorkflowActionHandler:
    """Executes actions for one tenant on the given session (no commits)."""

    def __init__(self, db: Session, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    def execute(self, action: Dict[str, Any], trigger: Dict[str, Any]) -> Dict[str, Any]:
        action_type = (action or {}).get("type")
        if not action_type:
            return _failure("Action type not specified")

        handler = getattr(self, f"_{action_type}", None) if action_type in ACTION_TYPES else None
        if handler is None:
            return _failure(f"Unknown action type: {action_type}")

        try:
            return handler(action, trigger)
        except Exception as e:
            logger.warning(f"Workflow action {action_type} failed: {e}")
            return _failure(str(e))

    def _tenant_user(self, user_id: Any) -> Optional[User]:
        try:
            user_uuid = UUID(str(user_id))
        except ValueError:
            return None
        return self.db.execute(
            select(User).where(User.id == user_uuid, User.tenant_id == self.tenant_id, User.status == "ACTIVE")
        ).scalar_one_or_none()

    def _create_activity(self, action: Dict[str, Any], trigger: Dict[str, Any]) -> Dict[str, Any]:
        entity = trigger.get("entity")
        if entity is None:
            return _failure("No entity in trigger data")

        due_date = None
        if action.get("due_date"):
            due_date = ensure_aware(datetime.fromisoformat(resolve_template(action["due_date"], entity)))

        assigned_to = action.get("assigned_to") or getattr(entity, "assigned_to", None)
        if assigned_to is not None and self._tenant_user(assigned_to) is None:
            assigned_to = None

        activity = Activity(
            tenant_id=self.tenant_id,
            type=action.get("activity_type") or "task",
            subject=resolve_template(action.get("subject") or "Activity", entity),
            description=resolve_template(action.get("description") or "", entity) or None,
            due_date=due_date,
            priority=action.get("priority") or "medium",
            status="pending",
            related_type=trigger.get("entity_type"),
            related_id=entity.id,
            assigned_to=UUID(str(assigned_to)) if assigned_to else None,
            created_by=getattr(entity, "created_by", None),
        )
        self.db.add(activity)
        self.db.flush()
        return {"success": True, "action_type": "create_activity", "activity_id": str(activity.id)}

    def _update_deal_status(self, action: Dict[str, Any], trigger: Dict[str, Any]) -> Dict[str, Any]:
        entity = trigger.get("entity")
        if not isinstance(entity, Deal):
            return _failure("Entity is not a Deal")
        status = action.get("status")
        if status not in ("open", "won", "lost"):
            return _failure("Status not specified" if not status else f"Invalid deal status: {status}")

        if status == "won":
            deal_service.mark_won(self.db, entity)
        elif status == "lost":
            deal_service.mark_lost(self.db, entity)
        else:
            deal_service.update_deal(self.db, entity, {"status": status})
        return {"success": True, "action_type": "update_deal_status", "deal_id": str(entity.id), "new_status": status}

    def _assign_user(self, action: Dict[str, Any], trigger: Dict[str, Any]) -> Dict[str, Any]:
        entity = trigger.get("entity")
        if entity is None:
            return _failure("No entity in trigger data")
        if not action.get("user_id"):
            return _failure("User ID not specified")

        user = self._tenant_user(action["user_id"])
        if user is None:
            return _failure("User not found or not in same tenant")
        if not hasattr(entity, "assigned_to"):
            return _failure("Entity does not support assignment")

        entity.assigned_to = user.id
        self.db.flush()
        return {"success": True, "action_type": "assign_user", "entity_id": str(entity.id), "user_id": str(user.id)}

    def _send_notification(self, action: Dict[str, Any], trigger: Dict[str, Any]) -> Dict[str, Any]:
        entity = trigger.get("entity")
        if entity is None:
            return _failure("No entity in trigger data")

        user_id = action.get("user_id") or getattr(entity, "assigned_to", None) or getattr(entity, "created_by", None)
        if not user_id:
            return _failure("No user to notify")
        user = self._tenant_user(user_id)
        if user is None:
            return _failure("User not found")

        if isinstance(entity, Deal) and not action.get("message"):
            message = deal_status_message(entity.title, action.get("status") or "updated")
        else:
            message = resolve_template(action.get("message") or f"Workflow triggered by {trigger.get('event')}.", entity)

        notification = NotificationService(self.db, self.tenant_id).send_to_user(
            user,
            title=resolve_template(action.get("title") or "Workflow notification", entity),
            message=message,
            type="workflow",
            entity_type=trigger.get("entity_type"),
            entity_id=entity.id,
            metadata={"event": trigger.get("event")},
        )
        return {"success": True, "action_type": "send_notification", "user_id": str(user.id),
                "notification_id": str(notification.id)}


ACTION_TYPES = ("create_activity", "update_deal_status", "assign_user", "send_notification")
