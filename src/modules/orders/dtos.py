"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.  They are
the contracts between the API layer (DRF serializers) and the service
layer.  All DTOs are immutable (``frozen=True``).

- ``CustomerDetailsDTO``: who the token is for.
- ``CreateOrderItemDTO`` / ``CreateOrderDTO``: order composition input.
- ``RecordPaymentDTO``: a payment record against an order.
- ``UpdateOrderDTO``: partial update (fields, items, payment, status).
- ``OrderSummary``: output of the totals calculator.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from modules.orders.constants import (
    CUSTOMER_EMAIL_PATTERN,
    CUSTOMER_MOBILE_PATTERN,
    DEFAULT_ESTIMATED_MINUTES,
    OrderPriority,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
)


def _check_choice(value: Optional[str], choices: type, label: str) -> Optional[str]:
    if value is not None and value not in choices.values:
        allowed = ", ".join(choices.values)
        raise ValueError(f"Invalid {label} {value!r}; expected one of: {allowed}.")
    return value


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CustomerDetailsDTO(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    mobile: str
    email: Optional[str] = None
    address: Optional[str] = Field(default=None, max_length=300)

    @field_validator("mobile")
    @classmethod
    def mobile_must_have_ten_digits(cls, v: str) -> str:
        if not re.match(CUSTOMER_MOBILE_PATTERN, v):
            raise ValueError("Please provide a valid 10-digit mobile number.")
        return v

    @field_validator("email")
    @classmethod
    def email_must_be_valid(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        v = v.lower()
        if not re.match(CUSTOMER_EMAIL_PATTERN, v):
            raise ValueError("Please provide a valid email.")
        return v


class CreateOrderItemDTO(BaseModel):
    """A requested line: the price is resolved from the catalog, never sent."""

    model_config = ConfigDict(frozen=True)

    catalog_item_id: UUID
    quantity: int
    special_instructions: str = Field(default="", max_length=200)

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class CreateOrderDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    customer: CustomerDetailsDTO
    items: List[CreateOrderItemDTO]
    order_type: str = OrderType.TAKEAWAY
    priority: str = OrderPriority.NORMAL
    estimated_time: int = Field(default=DEFAULT_ESTIMATED_MINUTES, ge=0)
    notes: str = Field(default="", max_length=500)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CreateOrderItemDTO]
    ) -> List[CreateOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @field_validator("order_type")
    @classmethod
    def order_type_must_be_known(cls, v: str) -> str:
        return _check_choice(v, OrderType, "order type")

    @field_validator("priority")
    @classmethod
    def priority_must_be_known(cls, v: str) -> str:
        return _check_choice(v, OrderPriority, "priority")


class RecordPaymentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    paid_amount: Decimal = Field(ge=0)
    status: Optional[str] = None
    method: Optional[str] = None
    transaction_id: Optional[str] = Field(default=None, max_length=100)

    @field_validator("status")
    @classmethod
    def status_must_be_known(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, PaymentStatus, "payment status")

    @field_validator("method")
    @classmethod
    def method_must_be_known(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, PaymentMethod, "payment method")


class UpdateOrderDTO(BaseModel):
    """Partial update.  ``None`` means "leave unchanged".

    ``expected_version`` lets a caller assert it is updating the revision
    it read; a mismatch is reported as a conflict.
    """

    model_config = ConfigDict(frozen=True)

    customer: Optional[CustomerDetailsDTO] = None
    items: Optional[List[CreateOrderItemDTO]] = None
    order_type: Optional[str] = None
    priority: Optional[str] = None
    estimated_time: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)
    tax_amount: Optional[Decimal] = Field(default=None, ge=0)
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    payment: Optional[RecordPaymentDTO] = None
    status: Optional[str] = None
    cancel_reason: Optional[str] = None
    served_by_id: Optional[int] = None
    expected_version: Optional[int] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: Optional[List[CreateOrderItemDTO]]
    ) -> Optional[List[CreateOrderItemDTO]]:
        if v is not None and not v:
            raise ValueError("Order must have at least one item.")
        return v

    @field_validator("order_type")
    @classmethod
    def order_type_must_be_known(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, OrderType, "order type")

    @field_validator("priority")
    @classmethod
    def priority_must_be_known(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, OrderPriority, "priority")

    @field_validator("status")
    @classmethod
    def status_must_be_known(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, OrderStatus, "order status")

    @model_validator(mode="after")
    def cancellation_needs_reason(self):
        if self.status == OrderStatus.CANCELLED and not (self.cancel_reason or "").strip():
            raise ValueError("A cancellation reason is required.")
        return self

    @property
    def touches_totals(self) -> bool:
        return (
            self.items is not None
            or self.tax_amount is not None
            or self.discount_amount is not None
        )


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class OrderSummary(BaseModel):
    """Derived order totals.  Identical inputs always give an equal summary."""

    model_config = ConfigDict(frozen=True)

    total_quantity: int
    category_counts: Dict[str, int]
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    grand_total: Decimal
