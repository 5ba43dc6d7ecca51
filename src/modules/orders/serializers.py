"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from django.utils import timezone
from rest_framework import serializers

from modules.orders.constants import (
    CUSTOMER_MOBILE_PATTERN,
    DEFAULT_ESTIMATED_MINUTES,
    OrderPriority,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.models import Order, OrderItem, OrderStatusHistory

_AMOUNT = {"max_digits": 12, "decimal_places": 2, "min_value": 0}

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CustomerDetailsSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    mobile = serializers.RegexField(
        CUSTOMER_MOBILE_PATTERN,
        error_messages={"invalid": "Please provide a valid 10-digit mobile number."},
    )
    email = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    address = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, max_length=300
    )


class CreateOrderItemSerializer(serializers.Serializer):
    """Validates a single requested line.  Prices come from the catalog."""

    catalog_item_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    special_instructions = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=200
    )


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload."""

    customer = CustomerDetailsSerializer()
    items = CreateOrderItemSerializer(many=True, allow_empty=False)
    order_type = serializers.ChoiceField(
        choices=OrderType.choices, required=False, default=OrderType.TAKEAWAY
    )
    priority = serializers.ChoiceField(
        choices=OrderPriority.choices, required=False, default=OrderPriority.NORMAL
    )
    estimated_time = serializers.IntegerField(
        min_value=0, required=False, default=DEFAULT_ESTIMATED_MINUTES
    )
    notes = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=500
    )
    tax_amount = serializers.DecimalField(required=False, default=0, **_AMOUNT)
    discount_amount = serializers.DecimalField(required=False, default=0, **_AMOUNT)


class PaymentDetailsSerializer(serializers.Serializer):
    paid_amount = serializers.DecimalField(**_AMOUNT)
    status = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)
    method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False)
    transaction_id = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, max_length=100
    )


class RecordPaymentSerializer(PaymentDetailsSerializer):
    expected_version = serializers.IntegerField(min_value=1, required=False)


class UpdateOrderSerializer(serializers.Serializer):
    """Partial update; omitted fields are left unchanged."""

    customer = CustomerDetailsSerializer(required=False)
    items = CreateOrderItemSerializer(many=True, required=False, allow_empty=False)
    order_type = serializers.ChoiceField(choices=OrderType.choices, required=False)
    priority = serializers.ChoiceField(choices=OrderPriority.choices, required=False)
    estimated_time = serializers.IntegerField(min_value=0, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500)
    tax_amount = serializers.DecimalField(required=False, **_AMOUNT)
    discount_amount = serializers.DecimalField(required=False, **_AMOUNT)
    payment = PaymentDetailsSerializer(required=False)
    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    cancel_reason = serializers.CharField(required=False, allow_blank=True)
    served_by_id = serializers.IntegerField(required=False, allow_null=True)
    expected_version = serializers.IntegerField(min_value=1, required=False)

    def validate_payment(self, value):
        if "expected_version" in self.initial_data.get("payment", {}):
            raise serializers.ValidationError(
                "expected_version belongs at the top level of the request."
            )
        return value


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField()
    expected_version = serializers.IntegerField(min_value=1, required=False)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Line item with the name and price captured at order time."""

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "catalog_item_id",
            "item_name",
            "quantity",
            "unit_price",
            "total_price",
            "special_instructions",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "user_id",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Full order projection with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)
    short_token = serializers.CharField(read_only=True)
    is_active = serializers.BooleanField(read_only=True)
    is_overdue = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "token_number",
            "short_token",
            "serial_number",
            "store",
            "business_date",
            "customer_name",
            "customer_mobile",
            "customer_email",
            "customer_address",
            "total_quantity",
            "category_counts",
            "subtotal",
            "tax_amount",
            "discount_amount",
            "grand_total",
            "payment_status",
            "payment_method",
            "paid_amount",
            "pending_amount",
            "transaction_id",
            "payment_date",
            "status",
            "order_type",
            "priority",
            "estimated_time",
            "actual_delivery_time",
            "is_overdue",
            "notes",
            "is_active",
            "created_by_id",
            "updated_by_id",
            "served_by_id",
            "version",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields

    def get_is_overdue(self, obj: Order) -> bool:
        return obj.is_overdue(timezone.now())


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    short_token = serializers.CharField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "token_number",
            "short_token",
            "customer_name",
            "customer_mobile",
            "status",
            "payment_status",
            "order_type",
            "priority",
            "grand_total",
            "pending_amount",
            "version",
            "created_at",
        ]
        read_only_fields = fields
