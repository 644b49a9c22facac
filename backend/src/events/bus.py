"""In-process fan-out of domain events.

Services call ``publish`` after committing their primary change:

    db.commit()
    publish(db, "lead.created", lead, actor=current_user, request=request)

Every handler subscribed to the event (or to ``*``) then runs in turn on the
same session. A handler commits its own work; when it raises, its work is
rolled back, the failure is logged and counted, and the remaining handlers
still run. Publishing therefore never fails the operation that triggered it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from models.base import utcnow
from models.user import User
from observability.metrics import event_handler_failures_total

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"


@dataclass
class DomainEvent:
    """Something that happened to a tenant record.

    Attributes:
        name: Dotted event name, ``{entity}.{verb}`` (e.g. ``deal.status_changed``)
        tenant_id: Tenant of the entity
        entity: The ORM instance the event is about
        actor: User who caused it (None for system jobs)
        changes: Field -> {"old", "new"} for update events
        request: HTTP request, when the event comes from the API
    """
    name: str
    tenant_id: UUID
    entity: Any
    actor: Optional[User] = None
    changes: Dict[str, Any] = field(default_factory=dict)
    request: Optional[Request] = None
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def entity_type(self) -> str:
        return self.name.split(".", 1)[0]

    @property
    def verb(self) -> str:
        return self.name.split(".", 1)[1] if "." in self.name else self.name


Handler = Callable[[Session, DomainEvent], None]

_handlers: Dict[str, List[Tuple[str, Handler]]] = {}


def subscribe(event: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
    """Register a handler for ``event`` (``*`` for every event).

    Example:
        @subscribe("deal.status_changed")
        def notify_assignee(db, event):
            ...
    """

    def decorator(handler: Handler) -> Handler:
        entries = _handlers.setdefault(event, [])
        handler_name = name or handler.__name__
        if all(existing != handler_name for existing, _ in entries):
            entries.append((handler_name, handler))
        return handler

    return decorator


def unsubscribe(event: str, name: str) -> None:
    _handlers[event] = [(n, h) for n, h in _handlers.get(event, []) if n != name]


def handlers_for(event: str) -> List[Tuple[str, Handler]]:
    return list(_handlers.get(ALL_EVENTS, [])) + list(_handlers.get(event, []))


def publish(
    db: Session,
    event: str,
    entity: Any,
    actor: Optional[User] = None,
    changes: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> DomainEvent:
    """Run every handler for ``event``.

    Args:
        db: Session the primary change was committed with
        event: Event name
        entity: ORM instance (must carry ``tenant_id``)
        actor: Acting user
        changes: Changed fields for update events
        request: Originating HTTP request

    Returns:
        The published DomainEvent
    """
    domain_event = DomainEvent(
        name=event,
        tenant_id=entity.tenant_id,
        entity=entity,
        actor=actor,
        changes=changes or {},
        request=request,
    )

    for handler_name, handler in handlers_for(event):
        try:
            handler(db, domain_event)
            db.commit()
        except Exception as e:
            db.rollback()
            event_handler_failures_total.labels(event=event, handler=handler_name).inc()
            logger.error(
                f"Event handler {handler_name} failed for {event}: {e}",
                exc_info=True,
                extra={"tenant_id": str(domain_event.tenant_id)},
            )

    return domain_event
