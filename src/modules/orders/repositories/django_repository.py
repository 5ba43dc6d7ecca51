"""Django ORM implementation of the Order repository.

Writes to an existing order go through a conditional ``UPDATE ...
WHERE version = <read version>`` so that two writers racing on the same
order can never silently overwrite each other.  Domain events collected
on the aggregate are written to the outbox inside the same transaction.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Max, QuerySet
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.orders.exceptions import OrderConflict
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

# Never rewritten after insert.
_IMMUTABLE_FIELDS = {"id", "version", "created_at"}


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any], items: List[Dict[str, Any]]) -> Order:
        order = Order(**data)
        order.save(force_insert=True)

        for position, item_data in enumerate(items):
            OrderItem(order=order, position=position, **item_data).save()

        self.record_events(order)
        logger.info(
            "order.persisted",
            order_id=str(order.id),
            token_number=order.token_number,
            item_count=len(items),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _alive(self, store: Optional[str] = None) -> QuerySet[Order]:
        queryset = Order.objects.alive()
        if store is not None:
            queryset = queryset.filter(store=store)
        return queryset

    def get_by_id(self, id: str, store: Optional[str] = None) -> Optional[Order]:
        """Retrieve an order with eager-loaded items and status history.

        Returns ``None`` for non-existent, soft-deleted or invalid IDs.
        """
        try:
            return (
                self._alive(store)
                .prefetch_related("items", "status_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str, store: Optional[str] = None) -> Optional[Order]:
        try:
            return (
                self._alive(store)
                .select_for_update()
                .prefetch_related("items")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        """Live orders, lazily evaluated so DRF filters and pagination can chain.

        Supported filter keys are any ORM look-ups, e.g. ``store``,
        ``status``, ``created_at__gte``.
        """
        queryset = self._alive()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    # ------------------------------------------------------------------
    # Serial allocation support
    # ------------------------------------------------------------------

    def max_serial(self, store: str, business_date: date) -> int:
        # Deleted orders keep their serial; the unique constraint still covers them.
        result = Order.objects.filter(store=store, business_date=business_date).aggregate(
            highest=Max("serial_number")
        )
        return result["highest"] or 0

    def serial_taken(self, store: str, business_date: date, serial_number: int) -> bool:
        return Order.objects.filter(
            store=store, business_date=business_date, serial_number=serial_number
        ).exists()

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def replace_items(self, order: Order, items: List[Dict[str, Any]]) -> None:
        OrderItem.objects.filter(order=order).delete()
        for position, item_data in enumerate(items):
            OrderItem(order=order, position=position, **item_data).save()
        logger.info("order.items_replaced", order_id=str(order.id), item_count=len(items))

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        if entity._state.adding:
            raise ValueError("Use create() to insert new orders.")
        entity.ensure_not_resurrected()

        expected_version = entity.version
        now = timezone.now()
        values = {
            field.attname: getattr(entity, field.attname)
            for field in Order._meta.concrete_fields
            if field.attname not in _IMMUTABLE_FIELDS
        }
        values["updated_at"] = now

        rows = Order.objects.filter(
            pk=entity.pk,
            version=expected_version,
            deleted_at__isnull=True,
        ).update(version=F("version") + 1, **values)
        if rows == 0:
            logger.warning(
                "order.version_conflict",
                order_id=str(entity.pk),
                expected_version=expected_version,
            )
            raise OrderConflict(
                f"Order {entity.pk} was modified concurrently; reload and retry.",
                {"order_id": str(entity.pk), "expected_version": expected_version},
            )

        entity.version = expected_version + 1
        entity.updated_at = now
        entity._loaded_deleted_at = entity.deleted_at
        events = self.record_events(entity)
        logger.info(
            "order.saved",
            order_id=str(entity.id),
            version=entity.version,
            event_count=len(events),
        )
        return entity

    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            notes=notes,
            user_id=user_id,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history

    # ------------------------------------------------------------------
    # Outbox
    # ------------------------------------------------------------------

    def record_events(self, entity: Order) -> list:
        events = entity.domain_events
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=_serialize_event_payload(event),
                topic="orders",
            )
        entity.clear_domain_events()
        return events


def _serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
