"""Order repository interface.

Extends ``IReadRepository[Order]`` with what the lifecycle engine needs:
atomic creation with line items, the per-store daily serial look-up
used by the allocator, version-checked writes and the status history.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import date
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from modules.core.repositories.interfaces import IReadRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IReadRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The aggregate includes OrderItem children and OrderStatusHistory
    records.  Soft-deleted orders are invisible to every read method.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any], items: List[Dict[str, Any]]) -> Order:
        """Insert an order and its line items.

        Raises ``IntegrityError`` when the ``(store, business_date,
        serial_number)`` triple is already taken.
        """

    @abstractmethod
    def get_by_id(self, id: str, store: Optional[str] = None) -> Optional[Order]:
        """Retrieve a live order with prefetched items and history."""

    @abstractmethod
    def get_for_update(self, id: str, store: Optional[str] = None) -> Optional[Order]:
        """Retrieve a live order holding a row-level lock."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        """Live orders matching ORM look-ups in *filters*."""

    @abstractmethod
    def max_serial(self, store: str, business_date: date) -> int:
        """Highest serial issued for *store* on *business_date*, 0 if none."""

    @abstractmethod
    def serial_taken(self, store: str, business_date: date, serial_number: int) -> bool:
        """Whether a serial is already committed (deleted orders included)."""

    @abstractmethod
    def replace_items(self, order: Order, items: List[Dict[str, Any]]) -> None:
        """Swap the order's line items for *items*."""

    @abstractmethod
    def save(self, entity: Order) -> Order:
        """Write *entity* only if its ``version`` is still current.

        Raises ``OrderConflict`` when another writer got there first.
        """

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def record_events(self, entity: Order) -> list:
        """Move the entity's pending domain events into the outbox."""
