import django_filters

from modules.orders.constants import OrderStatus, OrderType, PaymentStatus
from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    order_status = django_filters.ChoiceFilter(
        field_name="status", choices=OrderStatus.choices
    )
    payment_status = django_filters.ChoiceFilter(
        field_name="payment_status", choices=PaymentStatus.choices
    )
    order_type = django_filters.ChoiceFilter(
        field_name="order_type", choices=OrderType.choices
    )
    start_date = django_filters.DateFilter(field_name="business_date", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="business_date", lookup_expr="lte")

    class Meta:
        model = Order
        fields = [
            "order_status",
            "payment_status",
            "order_type",
            "start_date",
            "end_date",
        ]
