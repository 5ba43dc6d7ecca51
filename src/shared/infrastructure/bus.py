"""Process-local event bus fed by the outbox relay."""

from __future__ import annotations

from collections import defaultdict
from typing import DefaultDict, List, Type

import structlog

from shared.domain.events import DomainEvent, EventHandler, IEventBus

logger = structlog.get_logger(__name__)


class InMemoryEventBus(IEventBus):
    """Calls every handler subscribed to the event's exact class, in order.

    A handler that raises stops delivery of that event and the error
    reaches the caller; the relay then marks the outbox row failed.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)

    def subscribe(self, event_class: Type[DomainEvent], handler: EventHandler) -> None:
        if handler not in self._handlers[event_class]:
            self._handlers[event_class].append(handler)

    def unsubscribe(self, event_class: Type[DomainEvent], handler: EventHandler) -> None:
        if handler in self._handlers.get(event_class, ()):
            self._handlers[event_class].remove(handler)

    def publish(self, event: DomainEvent) -> None:
        handlers = list(self._handlers.get(type(event), ()))
        logger.debug("event_bus.publish", event_name=event.event_name, handler_count=len(handlers))
        for handler in handlers:
            handler(event)


event_bus = InMemoryEventBus()
