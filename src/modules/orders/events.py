"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when a token is issued."""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised on every non-cancelling status transition."""


@dataclass(frozen=True)
class PaymentRecorded(DomainEvent):
    """Raised when a payment record is written against an order."""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled."""


@dataclass(frozen=True)
class RefundRequested(DomainEvent):
    """Refund obligation for a cancelled order that had been paid.

    ``payload["amount"]`` is the paid amount to give back; moving the
    money is the refund executor's job.
    """


@dataclass(frozen=True)
class OrderDeleted(DomainEvent):
    """Raised when an order is soft-deleted."""
