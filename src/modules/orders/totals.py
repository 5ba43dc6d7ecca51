"""Order totals calculation and payment-status derivation.

Everything here is a pure function of its arguments: no clock, no
database, no settings lookups.  The service layer feeds the results
into the ``Order`` row.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional, Protocol
from uuid import UUID

from modules.orders.constants import OVERRIDE_PAYMENT_STATUSES, PaymentStatus
from modules.orders.dtos import OrderSummary
from modules.orders.exceptions import OrderValidationError

ZERO = Decimal("0")


class PricedLine(Protocol):
    item_name: str
    quantity: int
    total_price: Decimal


@dataclass(frozen=True)
class LineItem:
    """A composed line before it is persisted as an ``OrderItem``."""

    catalog_item_id: UUID
    item_name: str
    quantity: int
    unit_price: Decimal
    special_instructions: str = ""

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    def as_item_data(self) -> dict[str, Any]:
        return {
            "catalog_item_id": self.catalog_item_id,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "special_instructions": self.special_instructions,
        }


def to_amount(value: Any, field: str) -> Decimal:
    """Coerce *value* to a non-negative ``Decimal``."""
    if value is None:
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise OrderValidationError(f"{field} must be a number.") from exc
    if not amount.is_finite():
        raise OrderValidationError(f"{field} must be a number.")
    if amount < 0:
        raise OrderValidationError(f"{field} cannot be negative.")
    return amount


def count_categories(
    lines: Iterable[PricedLine], category_keywords: Mapping[str, str]
) -> dict[str, int]:
    """Quantity per category, matching keywords case-insensitively in item names.

    Each category is matched independently, so one line can count towards
    several categories; a category is counted once per line even if
    several of its keywords match.
    """
    keywords_by_category: dict[str, list[str]] = {}
    for keyword, category in category_keywords.items():
        keywords_by_category.setdefault(category, []).append(keyword.lower())

    counts = {category: 0 for category in sorted(keywords_by_category)}
    for line in lines:
        name = line.item_name.lower()
        for category, keywords in keywords_by_category.items():
            if any(keyword in name for keyword in keywords):
                counts[category] += line.quantity
    return counts


def calculate_order_totals(
    lines: Iterable[PricedLine],
    tax_amount: Any = ZERO,
    discount_amount: Any = ZERO,
    category_keywords: Optional[Mapping[str, str]] = None,
) -> OrderSummary:
    """Build the order summary from priced line items.

    ``grand_total`` is floored at zero when the discount exceeds
    subtotal plus tax.

    Raises:
        OrderValidationError: a quantity below 1 or a negative amount.
    """
    lines = list(lines)
    tax = to_amount(tax_amount, "tax_amount")
    discount = to_amount(discount_amount, "discount_amount")

    total_quantity = 0
    subtotal = ZERO
    for line in lines:
        if line.quantity < 1:
            raise OrderValidationError(
                f"Quantity must be at least 1 (got {line.quantity} for {line.item_name})."
            )
        total_quantity += line.quantity
        subtotal += to_amount(line.total_price, "total_price")

    return OrderSummary(
        total_quantity=total_quantity,
        category_counts=count_categories(lines, category_keywords or {}),
        subtotal=subtotal,
        tax_amount=tax,
        discount_amount=discount,
        grand_total=max(ZERO, subtotal + tax - discount),
    )


def pending_amount(grand_total: Decimal, paid_amount: Decimal) -> Decimal:
    return max(ZERO, grand_total - paid_amount)


def derive_payment_status(
    grand_total: Decimal,
    paid_amount: Decimal,
    requested: Optional[str] = None,
) -> str:
    """Payment status implied by the amounts.

    ``Refunded`` and ``Cancelled`` are honoured when explicitly requested;
    any other requested value is replaced by the derived one.
    """
    if requested in OVERRIDE_PAYMENT_STATUSES:
        return requested
    if paid_amount >= grand_total:
        return PaymentStatus.PAID
    if paid_amount > 0:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.PENDING
