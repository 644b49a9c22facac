"""In-app notifications.

Notifications are stored rows, one per recipient; there is no mail or SMS
channel. Unread counts are cached in Redis for a minute and dropped whenever
a user's notifications change.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from exceptions import NotFoundError
from infrastructure.cache import cache_delete, cache_get_json, cache_set_json
from models.base import utcnow
from models.notification import Notification
from models.user import User

logger = logging.getLogger(__name__)

UNREAD_COUNT_TTL = 60

DEAL_STATUS_MESSAGES = {
    "won": "Deal '{title}' has been marked as won.",
    "lost": "Deal '{title}' has been marked as lost.",
    "stage_changed": "Deal '{title}' has moved to a new stage.",
}
DEAL_DEFAULT_MESSAGE = "Deal '{title}' has been updated."


def deal_status_message(title: str, action: str) -> str:
    return DEAL_STATUS_MESSAGES.get(action, DEAL_DEFAULT_MESSAGE).format(title=title)


def _user_id(user: Union[User, UUID]) -> UUID:
    return user.id if isinstance(user, User) else user


class NotificationService:
    """Create and read notifications inside one tenant.

    Args:
        db: Session (tenant-scoped in requests and jobs)
        tenant_id: Tenant the notifications belong to
    """

    def __init__(self, db: Session, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    def _cache_key(self, user_id: UUID) -> str:
        return f"notifications:unread:{self.tenant_id}:{user_id}"

    def send_to_user(
        self,
        user: Union[User, UUID],
        title: str,
        message: str,
        type: str = "info",
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        user_id = _user_id(user)
        notification = Notification(
            tenant_id=self.tenant_id,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            type=type,
            title=title,
            message=message,
            metadata_json=metadata,
        )
        self.db.add(notification)
        self.db.flush()
        cache_delete(self._cache_key(user_id))
        return notification

    def send_to_users(
        self,
        users: Iterable[Union[User, UUID]],
        title: str,
        message: str,
        type: str = "info",
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        return [
            self.send_to_user(user, title, message, type, entity_type, entity_id, metadata)
            for user in users
        ]

    def mark_as_read(self, notification_id: UUID, user_id: UUID) -> Notification:
        """Mark one of ``user_id``'s notifications read.

        Raises:
            NotFoundError: Unknown id, or the notification is someone else's
        """
        notification = self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        ).scalar_one_or_none()
        if notification is None:
            raise NotFoundError("Notification not found")

        if notification.read_at is None:
            notification.read_at = utcnow()
            self.db.flush()
            cache_delete(self._cache_key(user_id))
        return notification

    def mark_all_as_read(self, user_id: UUID) -> int:
        result = self.db.execute(
            update(Notification)
            .where(
                Notification.tenant_id == self.tenant_id,
                Notification.user_id == user_id,
                Notification.read_at.is_(None),
            )
            .values(read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        cache_delete(self._cache_key(user_id))
        return result.rowcount or 0

    def unread_count(self, user_id: UUID) -> int:
        cached = cache_get_json(self._cache_key(user_id))
        if cached is not None:
            return int(cached)

        count = self.db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.tenant_id == self.tenant_id,
                Notification.user_id == user_id,
                Notification.read_at.is_(None),
            )
        ).scalar_one()
        cache_set_json(self._cache_key(user_id), count, UNREAD_COUNT_TTL)
        return count

    def notify_deal_status(self, deal: Any, action: str) -> Optional[Notification]:
        """Tell the deal's assignee about a won/lost/stage change."""
        if not deal.assigned_to:
            return None
        return self.send_to_user(
            deal.assigned_to,
            title="Deal update",
            message=deal_status_message(deal.title, action),
            type="deal_update",
            entity_type="deal",
            entity_id=deal.id,
            metadata={"deal_id": str(deal.id), "deal_title": deal.title, "action": action},
        )
