"""Domain event primitives shared by every module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, Protocol, Type
from uuid import UUID, uuid4


@dataclass(frozen=True)
class DomainEvent:
    """Base domain event (immutable).

    Subclasses register themselves by class name so rows read back from
    the outbox can be turned into the matching event type again.
    """

    aggregate_id: UUID
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=uuid4)
    occurred_on: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_name: str = field(init=False)

    _registry: ClassVar[Dict[str, Type[DomainEvent]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        DomainEvent._registry[cls.__name__] = cls

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_name", self.__class__.__name__)

    @classmethod
    def resolve(cls, event_name: str) -> Type[DomainEvent]:
        """Return the event class registered under *event_name*.

        Raises:
            LookupError: no event class with that name was imported.
        """
        try:
            return cls._registry[event_name]
        except KeyError:
            raise LookupError(f"Unknown domain event {event_name!r}.") from None


class DomainEventMixin:
    """Mixin for aggregate roots that collect domain events in memory."""

    _domain_events: list[DomainEvent]

    def add_domain_event(self, event: DomainEvent) -> None:
        if not hasattr(self, "_domain_events"):
            self._domain_events = []
        self._domain_events.append(event)

    def clear_domain_events(self) -> None:
        if hasattr(self, "_domain_events"):
            self._domain_events.clear()

    @property
    def domain_events(self) -> list[DomainEvent]:
        if not hasattr(self, "_domain_events"):
            self._domain_events = []
        return list(self._domain_events)


EventHandler = Callable[[DomainEvent], None]


class IEventBus(Protocol):
    """Routes each published event to the handlers subscribed to its class."""

    def publish(self, event: DomainEvent) -> None: ...

    def subscribe(self, event_class: Type[DomainEvent], handler: EventHandler) -> None: ...

    def unsubscribe(self, event_class: Type[DomainEvent], handler: EventHandler) -> None: ...
