"""Domain events: publish/subscribe plus the built-in subscribers"""

from .bus import ALL_EVENTS, DomainEvent, publish, subscribe, unsubscribe
from . import handlers  # noqa: F401  registers the subscribers

__all__ = ["ALL_EVENTS", "DomainEvent", "publish", "subscribe", "unsubscribe"]
