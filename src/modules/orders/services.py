"""Order service layer (Use Cases).

Orchestrates token issuance, payments, status progression and
cancellation.  All write operations are atomic: the service defines the
unit-of-work boundary and every write ends in a single version-checked
save of the order row.

Business rules enforced:
- Serial numbers are unique per store and business day, gap-free under
  normal operation (see ``TokenAllocator``).
- Line prices are snapshotted from the catalog when the line is composed.
- Delivered and Cancelled orders are locked.
- Status only moves forward; Cancelled is reached through ``cancel_order``.
- Cancelling a paid order marks the payment Refunded and raises a
  ``RefundRequested`` obligation.
- History is recorded on creation and on every status change.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from modules.orders.allocator import AllocatedToken, TokenAllocator
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderDeleted,
    OrderStatusChanged,
    PaymentRecorded,
    RefundRequested,
)
from modules.orders.exceptions import (
    ItemsNotFound,
    OrderConflict,
    OrderNotFound,
    OrderValidationError,
)
from modules.orders.totals import (
    ZERO,
    LineItem,
    calculate_order_totals,
    derive_payment_status,
    pending_amount,
    to_amount,
)

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.catalog.repositories.interfaces import ICatalogRepository
    from modules.orders.dtos import (
        CreateOrderDTO,
        CreateOrderItemDTO,
        OrderSummary,
        RecordPaymentDTO,
        UpdateOrderDTO,
    )
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories via constructor injection (DIP).  The clock is
    injectable too, so the business day and payment timestamps can be
    pinned in tests.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        catalog_repository: ICatalogRepository,
        allocator: Optional[TokenAllocator] = None,
        category_keywords: Optional[Mapping[str, str]] = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._order_repo = order_repository
        self._catalog_repo = catalog_repository
        self._allocator = allocator or TokenAllocator(
            order_repository,
            day_timezone=settings.ORDER_DAY_TIMEZONE,
            max_retries=settings.ORDER_SERIAL_MAX_RETRIES,
        )
        if category_keywords is None:
            category_keywords = settings.ORDER_CATEGORY_KEYWORDS
        self._category_keywords = dict(category_keywords)
        self._clock = clock

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(
        self,
        dto: CreateOrderDTO,
        store: str,
        reference: Optional[datetime] = None,
        actor_id: Optional[int] = None,
    ) -> Order:
        """Issue a new token.

        Steps:
        1. Resolve every requested catalog item; missing or inactive ones
           fail the whole request.
        2. Snapshot names and prices into line items and compute totals.
        3. Allocate the day's next serial and insert the order, retrying
           on a concurrent duplicate.
        4. Record the initial status history and the ``OrderCreated`` event.

        Raises:
            ItemsNotFound: one or more catalog items are unknown or inactive.
            OrderValidationError: a quantity or amount is out of range.
            AllocationExhausted: no serial could be committed.
        """
        reference = reference or self._clock()
        log = logger.bind(store_id=store)
        log.info("order.creation_started", item_count=len(dto.items))

        lines = self._compose_lines(dto.items)
        summary = self._summarize(lines, dto.tax_amount, dto.discount_amount)
        customer = dto.customer

        def persist(token: AllocatedToken) -> Order:
            order = self._order_repo.create(
                {
                    "token_number": token.token_number,
                    "serial_number": token.serial_number,
                    "store": store,
                    "business_date": token.business_date,
                    "created_at": reference,
                    "customer_name": customer.name,
                    "customer_mobile": customer.mobile,
                    "customer_email": customer.email or "",
                    "customer_address": customer.address or "",
                    **self._summary_fields(summary),
                    "payment_status": derive_payment_status(
                        summary.grand_total, ZERO
                    ),
                    "pending_amount": summary.grand_total,
                    "status": OrderStatus.PLACED,
                    "order_type": dto.order_type,
                    "priority": dto.priority,
                    "estimated_time": dto.estimated_time,
                    "notes": dto.notes,
                    "created_by_id": actor_id,
                    "updated_by_id": actor_id,
                },
                [line.as_item_data() for line in lines],
            )
            self._order_repo.add_history(
                order_id=order.id,
                status=OrderStatus.PLACED,
                notes="Order created",
                user_id=actor_id,
            )
            order.add_domain_event(
                OrderCreated(
                    aggregate_id=order.id,
                    payload={
                        "token_number": order.token_number,
                        "store": store,
                        "grand_total": summary.grand_total,
                    },
                )
            )
            self._order_repo.record_events(order)
            return order

        order = self._allocator.allocate(store, reference, persist)
        log.info(
            "order.created",
            order_id=str(order.id),
            token_number=order.token_number,
            grand_total=str(order.grand_total),
        )
        return self._order_repo.get_by_id(str(order.id)) or order

    @transaction.atomic
    def record_payment(
        self,
        order_id: UUID,
        dto: RecordPaymentDTO,
        store: Optional[str] = None,
        actor_id: Optional[int] = None,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Write a payment record against an order.

        The stored status is derived from the amounts, except for an
        explicitly requested ``Refunded`` or ``Cancelled``.

        Raises:
            OrderNotFound: order does not exist.
            OrderLocked: order is Delivered or Cancelled.
            OrderConflict: the order changed since it was read.
        """
        order = self._load_for_update(order_id, store, expected_version)
        order.ensure_mutable()

        self._apply_payment(order, dto)
        order.updated_by_id = actor_id
        self._order_repo.save(order)

        logger.info(
            "order.payment_recorded",
            order_id=str(order.id),
            payment_status=order.payment_status,
            pending_amount=str(order.pending_amount),
        )
        return self._order_repo.get_by_id(str(order.id))

    @transaction.atomic
    def update_status(
        self,
        order_id: UUID,
        new_status: str,
        notes: str = "",
        store: Optional[str] = None,
        actor_id: Optional[int] = None,
        served_by_id: Optional[int] = None,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Move an order forward in the kitchen progression.

        A request for ``Cancelled`` is handed to ``cancel_order`` with
        *notes* as the reason.

        Raises:
            OrderNotFound: order does not exist.
            OrderLocked: order is Delivered or Cancelled.
            InvalidOrderStatus: the transition goes backwards or nowhere.
        """
        if new_status == OrderStatus.CANCELLED:
            return self.cancel_order(
                order_id,
                reason=notes,
                store=store,
                actor_id=actor_id,
                expected_version=expected_version,
            )

        order = self._load_for_update(order_id, store, expected_version)
        old_status = self._transition(order, new_status, served_by_id)
        order.updated_by_id = actor_id
        self._order_repo.save(order)

        self._order_repo.add_history(
            order_id=order.id,
            status=new_status,
            notes=notes,
            old_status=old_status,
            user_id=actor_id,
        )
        logger.info(
            "order.status_updated",
            order_id=str(order.id),
            old_status=old_status,
            new_status=new_status,
        )
        return self._order_repo.get_by_id(str(order.id))

    @transaction.atomic
    def cancel_order(
        self,
        order_id: UUID,
        reason: str,
        store: Optional[str] = None,
        actor_id: Optional[int] = None,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Cancel an order, flagging a refund when money was taken.

        Raises:
            OrderValidationError: *reason* is empty.
            OrderNotFound: order does not exist.
            OrderLocked: order is already Delivered or Cancelled.
        """
        reason = (reason or "").strip()
        if not reason:
            raise OrderValidationError("A cancellation reason is required.")

        order = self._load_for_update(order_id, store, expected_version)
        old_status = self._cancel(order, reason)
        order.updated_by_id = actor_id
        self._order_repo.save(order)

        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.CANCELLED,
            notes=reason,
            old_status=old_status,
            user_id=actor_id,
        )
        logger.info(
            "order.cancelled",
            order_id=str(order.id),
            old_status=old_status,
            payment_status=order.payment_status,
        )
        return self._order_repo.get_by_id(str(order.id))

    @transaction.atomic
    def update_order(
        self,
        order_id: UUID,
        dto: UpdateOrderDTO,
        store: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Order:
        """Apply a partial update in one version-checked write.

        Order of application: plain fields, items and amounts (totals are
        recomputed), payment, then status.  The lock check runs before
        anything is touched, so a locked order is left exactly as it was.

        Raises:
            OrderNotFound: order does not exist.
            OrderLocked: order is Delivered or Cancelled.
            OrderConflict: ``dto.expected_version`` is stale.
            ItemsNotFound: replacement items cannot be resolved.
            InvalidOrderStatus: the requested status is not reachable.
        """
        order = self._load_for_update(order_id, store, dto.expected_version)
        order.ensure_mutable()

        status_changes = dto.status is not None
        if status_changes and dto.status != OrderStatus.CANCELLED:
            order.ensure_can_transition_to(dto.status)

        log = logger.bind(order_id=str(order.id))

        if dto.customer is not None:
            order.customer_name = dto.customer.name
            order.customer_mobile = dto.customer.mobile
            order.customer_email = dto.customer.email or ""
            order.customer_address = dto.customer.address or ""
        if dto.order_type is not None:
            order.order_type = dto.order_type
        if dto.priority is not None:
            order.priority = dto.priority
        if dto.estimated_time is not None:
            order.estimated_time = dto.estimated_time
        if dto.notes is not None:
            order.notes = dto.notes

        if dto.touches_totals:
            if dto.items is not None:
                lines: Iterable[Any] = self._compose_lines(dto.items)
                self._order_repo.replace_items(
                    order, [line.as_item_data() for line in lines]
                )
            else:
                lines = list(order.items.all())
            summary = self._summarize(
                lines,
                dto.tax_amount if dto.tax_amount is not None else order.tax_amount,
                (
                    dto.discount_amount
                    if dto.discount_amount is not None
                    else order.discount_amount
                ),
            )
            for field, value in self._summary_fields(summary).items():
                setattr(order, field, value)
            order.pending_amount = pending_amount(order.grand_total, order.paid_amount)
            order.payment_status = derive_payment_status(
                order.grand_total, order.paid_amount, order.payment_status
            )
            log.info("order.totals_recomputed", grand_total=str(order.grand_total))

        if dto.payment is not None:
            self._apply_payment(order, dto.payment)

        old_status = None
        if status_changes:
            if dto.status == OrderStatus.CANCELLED:
                old_status = self._cancel(order, dto.cancel_reason.strip())
            else:
                old_status = self._transition(order, dto.status, dto.served_by_id)

        order.updated_by_id = actor_id
        self._order_repo.save(order)

        if status_changes:
            self._order_repo.add_history(
                order_id=order.id,
                status=dto.status,
                notes=(dto.cancel_reason or "").strip(),
                old_status=old_status,
                user_id=actor_id,
            )
        log.info("order.updated", version=order.version, status=order.status)
        return self._order_repo.get_by_id(str(order.id))

    @transaction.atomic
    def soft_delete_order(
        self,
        order_id: UUID,
        store: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Order:
        """Hide an order from every read path.  There is no undo.

        Returns the deleted order as it was last written.  The serial
        stays taken, so later tokens of the day never reuse it.

        Raises:
            OrderNotFound: order does not exist or is already deleted.
            OrderLocked: order is Delivered or Cancelled.
        """
        order = self._load_for_update(order_id, store)
        order.ensure_mutable()

        order.deleted_at = self._clock()
        order.updated_by_id = actor_id
        order.add_domain_event(
            OrderDeleted(
                aggregate_id=order.id,
                payload={"token_number": order.token_number},
            )
        )
        self._order_repo.save(order)
        logger.info("order.soft_deleted", order_id=str(order.id))
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: Any, store: Optional[str] = None) -> Order:
        """Retrieve a single live order.

        Raises:
            OrderNotFound: if the order does not exist or was deleted.
        """
        order = self._order_repo.get_by_id(str(order_id), store)
        if not order:
            raise OrderNotFound(
                f"Order {order_id} not found.", {"order_id": str(order_id)}
            )
        return order

    def list_orders(
        self, store: Optional[str] = None, filters: Optional[Dict[str, Any]] = None
    ) -> QuerySet[Order]:
        """Live orders, newest first, optionally scoped to *store*."""
        filters = dict(filters or {})
        if store is not None:
            filters["store"] = store
        return self._order_repo.list(filters)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_for_update(
        self,
        order_id: Any,
        store: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Order:
        order = self._order_repo.get_for_update(str(order_id), store)
        if not order:
            raise OrderNotFound(
                f"Order {order_id} not found.", {"order_id": str(order_id)}
            )
        if expected_version is not None and expected_version != order.version:
            raise OrderConflict(
                f"Order {order.id} is at version {order.version}, "
                f"not {expected_version}; reload and retry.",
                {
                    "order_id": str(order.id),
                    "expected_version": expected_version,
                    "current_version": order.version,
                },
            )
        return order

    def _compose_lines(self, items: List[CreateOrderItemDTO]) -> List[LineItem]:
        """Resolve requested items against the catalog and snapshot prices."""
        requested_ids = [item.catalog_item_id for item in items]
        catalog = self._catalog_repo.get_many(requested_ids)

        missing = {
            item_id
            for item_id in requested_ids
            if item_id not in catalog or not catalog[item_id].is_active
        }
        if missing:
            logger.warning("order.items_not_found", missing_count=len(missing))
            raise ItemsNotFound(missing)

        lines = []
        for item in items:
            if item.quantity < 1:
                raise OrderValidationError("Quantity must be at least 1.")
            catalog_item = catalog[item.catalog_item_id]
            lines.append(
                LineItem(
                    catalog_item_id=catalog_item.id,
                    item_name=catalog_item.name,
                    quantity=item.quantity,
                    unit_price=catalog_item.selling_price,
                    special_instructions=item.special_instructions,
                )
            )
        return lines

    def _summarize(self, lines: Iterable[Any], tax: Any, discount: Any) -> OrderSummary:
        return calculate_order_totals(
            lines,
            tax_amount=tax,
            discount_amount=discount,
            category_keywords=self._category_keywords,
        )

    @staticmethod
    def _summary_fields(summary: OrderSummary) -> Dict[str, Any]:
        return {
            "total_quantity": summary.total_quantity,
            "category_counts": summary.category_counts,
            "subtotal": summary.subtotal,
            "tax_amount": summary.tax_amount,
            "discount_amount": summary.discount_amount,
            "grand_total": summary.grand_total,
        }

    def _apply_payment(self, order: Order, dto: RecordPaymentDTO) -> None:
        paid = to_amount(dto.paid_amount, "paid_amount")
        order.paid_amount = paid
        order.pending_amount = pending_amount(order.grand_total, paid)
        order.payment_status = derive_payment_status(order.grand_total, paid, dto.status)
        if dto.method is not None:
            order.payment_method = dto.method
        order.transaction_id = dto.transaction_id or ""
        order.payment_date = self._clock()
        order.add_domain_event(
            PaymentRecorded(
                aggregate_id=order.id,
                payload={
                    "paid_amount": paid,
                    "pending_amount": order.pending_amount,
                    "payment_status": order.payment_status,
                    "method": order.payment_method,
                },
            )
        )

    def _ensure_user_exists(self, user_id: Optional[int], field: str) -> None:
        if user_id is None:
            return
        if not get_user_model().objects.filter(pk=user_id).exists():
            raise OrderValidationError(
                f"User {user_id} does not exist.", {field: user_id}
            )

    def _transition(
        self, order: Order, new_status: str, served_by_id: Optional[int] = None
    ) -> str:
        """Move *order* to *new_status* in memory; returns the previous status."""
        order.ensure_can_transition_to(new_status)
        self._ensure_user_exists(served_by_id, "served_by_id")
        old_status = order.status
        order.status = new_status
        if new_status == OrderStatus.DELIVERED:
            order.actual_delivery_time = self._clock()
            if served_by_id is not None:
                order.served_by_id = served_by_id
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                payload={"old_status": old_status, "new_status": new_status},
            )
        )
        return old_status

    def _cancel(self, order: Order, reason: str) -> str:
        order.ensure_can_transition_to(OrderStatus.CANCELLED)
        old_status = order.status
        order.status = OrderStatus.CANCELLED
        order.notes = f"{order.notes}\nCancelled: {reason}".strip()

        if order.paid_amount > 0:
            order.payment_status = derive_payment_status(
                order.grand_total, order.paid_amount, PaymentStatus.REFUNDED
            )
            order.add_domain_event(
                RefundRequested(
                    aggregate_id=order.id,
                    payload={
                        "amount": order.paid_amount,
                        "method": order.payment_method,
                        "token_number": order.token_number,
                    },
                )
            )
            logger.info(
                "order.refund_requested",
                order_id=str(order.id),
                amount=str(order.paid_amount),
            )

        order.add_domain_event(
            OrderCancelled(
                aggregate_id=order.id,
                payload={"reason": reason, "old_status": old_status},
            )
        )
        return old_status
