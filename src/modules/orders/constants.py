"""Order domain constants.

Defines the status vocabularies and the order state machine.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PLACED = "Placed", "Placed"
    CONFIRMED = "Confirmed", "Confirmed"
    PREPARING = "Preparing", "Preparing"
    READY = "Ready", "Ready"
    DELIVERED = "Delivered", "Delivered"
    CANCELLED = "Cancelled", "Cancelled"


class PaymentStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    PAID = "Paid", "Paid"
    PARTIALLY_PAID = "Partially Paid", "Partially Paid"
    REFUNDED = "Refunded", "Refunded"
    CANCELLED = "Cancelled", "Cancelled"


class PaymentMethod(models.TextChoices):
    CASH = "Cash", "Cash"
    CARD = "Card", "Card"
    UPI = "UPI", "UPI"
    ONLINE = "Online", "Online"
    WALLET = "Wallet", "Wallet"


class OrderType(models.TextChoices):
    DINE_IN = "Dine-In", "Dine-In"
    TAKEAWAY = "Takeaway", "Takeaway"
    DELIVERY = "Delivery", "Delivery"


class OrderPriority(models.TextChoices):
    NORMAL = "Normal", "Normal"
    HIGH = "High", "High"
    URGENT = "Urgent", "Urgent"


# Kitchen progression.  Any later stage may be reached directly.
STATUS_SEQUENCE: list[str] = [
    OrderStatus.PLACED,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
]

TERMINAL_STATES: set[str] = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

VALID_TRANSITIONS: dict[str, set[str]] = {
    status: set(STATUS_SEQUENCE[index + 1 :]) | {OrderStatus.CANCELLED}
    for index, status in enumerate(STATUS_SEQUENCE)
    if status not in TERMINAL_STATES
}
VALID_TRANSITIONS[OrderStatus.DELIVERED] = set()
VALID_TRANSITIONS[OrderStatus.CANCELLED] = set()

# Caller-requested payment statuses that describe a different business
# event than settlement and are stored as-is.
OVERRIDE_PAYMENT_STATUSES: set[str] = {PaymentStatus.REFUNDED, PaymentStatus.CANCELLED}

TOKEN_PREFIX = "TKN"
SERIAL_PAD_WIDTH = 3

DEFAULT_ESTIMATED_MINUTES = 15

CUSTOMER_MOBILE_PATTERN = r"^[0-9]{10}$"
CUSTOMER_EMAIL_PATTERN = r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$"
