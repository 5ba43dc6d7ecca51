"""Default subscribers for order events: one structured log line each.

Wired to the bus in ``OrdersConfig.ready``.  Integrations (kitchen
display, refund executor) subscribe alongside these.
"""

from __future__ import annotations

import structlog

from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderDeleted,
    OrderStatusChanged,
    PaymentRecorded,
    RefundRequested,
)

logger = structlog.get_logger(__name__)


def log_order_created(event: OrderCreated) -> None:
    logger.info(
        "order.event.created",
        order_id=str(event.aggregate_id),
        token_number=event.payload.get("token_number"),
        grand_total=event.payload.get("grand_total"),
    )


def log_status_changed(event: OrderStatusChanged) -> None:
    logger.info(
        "order.event.status_changed",
        order_id=str(event.aggregate_id),
        old_status=event.payload.get("old_status"),
        new_status=event.payload.get("new_status"),
    )


def log_payment_recorded(event: PaymentRecorded) -> None:
    logger.info(
        "order.event.payment_recorded",
        order_id=str(event.aggregate_id),
        payment_status=event.payload.get("payment_status"),
        pending_amount=event.payload.get("pending_amount"),
    )


def log_order_cancelled(event: OrderCancelled) -> None:
    logger.info(
        "order.event.cancelled",
        order_id=str(event.aggregate_id),
        reason=event.payload.get("reason"),
    )


def log_refund_requested(event: RefundRequested) -> None:
    # Warning level: someone has to give money back.
    logger.warning(
        "order.event.refund_requested",
        order_id=str(event.aggregate_id),
        token_number=event.payload.get("token_number"),
        amount=event.payload.get("amount"),
        method=event.payload.get("method"),
    )


def log_order_deleted(event: OrderDeleted) -> None:
    logger.info(
        "order.event.deleted",
        order_id=str(event.aggregate_id),
        token_number=event.payload.get("token_number"),
    )


DEFAULT_SUBSCRIPTIONS = (
    (OrderCreated, log_order_created),
    (OrderStatusChanged, log_status_changed),
    (PaymentRecorded, log_payment_recorded),
    (OrderCancelled, log_order_cancelled),
    (RefundRequested, log_refund_requested),
    (OrderDeleted, log_order_deleted),
)
