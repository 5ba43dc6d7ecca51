"""Order (token), OrderItem, and OrderStatusHistory models.

Business rules implemented:
- Serial number unique per store and business day (DB constraint).
- OrderItem snapshots the catalog price at creation time (``unit_price``);
  ``total_price`` is always ``quantity * unit_price``.
- Delivered and Cancelled orders are locked (enforced at service layer
  through ``Order.ensure_mutable``).
- Each status change generates a history record.
- ``version`` is bumped on every write for optimistic concurrency.
- Soft delete via ``deleted_at`` (one-way, inherited from TombstoneModel).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from django.conf import settings
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models

from modules.core.models import TimestampedModel, TombstoneModel
from modules.orders.constants import (
    CUSTOMER_MOBILE_PATTERN,
    DEFAULT_ESTIMATED_MINUTES,
    SERIAL_PAD_WIDTH,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderPriority,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.exceptions import InvalidOrderStatus, OrderLocked
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


def _money(**kwargs) -> models.DecimalField:
    return models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
        **kwargs,
    )


class Order(DomainEventMixin, TombstoneModel):
    """Order token aggregate root.

    ``token_number`` is the human-readable identifier printed on the
    ticket (``TKN<YYYYMMDD><serial>``); ``serial_number`` restarts at 1
    for every store each business day.  The UUIDv7 ``id`` is used for
    all internal references and API lookups.
    """

    token_number: models.CharField = models.CharField(max_length=32, editable=False)
    serial_number: models.PositiveIntegerField = models.PositiveIntegerField(
        editable=False
    )
    store: models.CharField = models.CharField(max_length=100)
    business_date: models.DateField = models.DateField(editable=False)

    # Customer details
    customer_name: models.CharField = models.CharField(max_length=100)
    customer_mobile: models.CharField = models.CharField(
        max_length=10,
        validators=[RegexValidator(CUSTOMER_MOBILE_PATTERN)],
    )
    customer_email: models.EmailField = models.EmailField(blank=True, default="")
    customer_address: models.CharField = models.CharField(
        max_length=300, blank=True, default=""
    )

    # Order summary
    total_quantity: models.PositiveIntegerField = models.PositiveIntegerField(default=0)
    category_counts: models.JSONField = models.JSONField(default=dict, blank=True)
    subtotal = _money()
    tax_amount = _money()
    discount_amount = _money()
    grand_total = _money()

    # Payment details
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    payment_method: models.CharField = models.CharField(
        max_length=10,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH,
    )
    paid_amount = _money()
    pending_amount = _money()
    transaction_id: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    payment_date: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PLACED,
    )
    order_type: models.CharField = models.CharField(
        max_length=10,
        choices=OrderType.choices,
        default=OrderType.TAKEAWAY,
    )
    priority: models.CharField = models.CharField(
        max_length=10,
        choices=OrderPriority.choices,
        default=OrderPriority.NORMAL,
    )
    estimated_time: models.PositiveIntegerField = models.PositiveIntegerField(
        default=DEFAULT_ESTIMATED_MINUTES
    )
    actual_delivery_time: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    created_by: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    updated_by: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    served_by: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["store", "business_date", "serial_number"],
                name="orders_store_day_serial_uniq",
            ),
        ]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["payment_status"], name="orders_payment_status_idx"),
            models.Index(fields=["customer_mobile"], name="orders_mobile_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
            models.Index(fields=["store", "deleted_at"], name="orders_store_alive_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is Delivered or Cancelled."""
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        allowed = VALID_TRANSITIONS.get(self.status, set())
        return new_status in allowed

    def ensure_mutable(self) -> None:
        """Raise ``OrderLocked`` when the order reached a terminal state."""
        if self.is_terminal:
            raise OrderLocked(
                f"Order {self.token_number} is {self.status} and can no longer be changed.",
                {"order_id": str(self.id), "status": self.status},
            )

    def ensure_can_transition_to(self, new_status: str) -> None:
        self.ensure_mutable()
        if not self.can_transition_to(new_status):
            raise InvalidOrderStatus(
                f"Cannot transition from {self.status} to {new_status}.",
                {"from_status": self.status, "to_status": new_status},
            )

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def short_token(self) -> str:
        """Counter display form, e.g. ``#007``."""
        return f"#{self.serial_number:0{SERIAL_PAD_WIDTH}d}"

    def is_overdue(self, now: datetime) -> bool:
        """``True`` when a non-terminal order exceeded its estimated time."""
        if self.is_terminal:
            return False
        elapsed_minutes = int((now - self.created_at).total_seconds() // 60)
        return elapsed_minutes > self.estimated_time

    def __str__(self) -> str:
        return f"{self.token_number} ({self.status})"


class OrderItem(TimestampedModel):
    """Line item with the catalog price captured at order time.

    ``item_name`` and ``unit_price`` are copies taken from the catalog
    when the line was composed; later catalog edits never reach them.
    Line items are replaced wholesale when an order's items are edited.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    catalog_item: models.ForeignKey = models.ForeignKey(
        "catalog.CatalogItem",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    position: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField(
        default=0
    )
    item_name: models.CharField = models.CharField(max_length=255)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price = _money(editable=False)
    total_price = _money(editable=False)
    special_instructions: models.CharField = models.CharField(
        max_length=200, blank=True, default=""
    )

    class Meta:
        db_table = "order_items"
        ordering = ["position", "created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def save(self, *args, **kwargs) -> None:
        self.total_price = self.unit_price * self.quantity
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.item_name} x{self.quantity} ({self.total_price})"


class OrderStatusHistory(TimestampedModel):
    """Append-only audit trail for order status transitions.

    ``user`` is nullable: ``None`` means the change was performed by the
    system or by an unauthenticated integration.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id}: {self.old_status} -> {self.new_status}"
