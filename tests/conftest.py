from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from django.contrib.auth import get_user_model

from rest_framework.test import APIClient

from modules.catalog.models import CatalogItem
from modules.catalog.repositories.django_repository import CatalogDjangoRepository
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, CustomerDetailsDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService

STORE = "S1"
NOON = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
CATEGORIES = {"tea": "Tea", "vada": "Vada"}


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def cashier():
    return get_user_model().objects.create_user(username="cashier", password="testpass123")


@pytest.fixture()
def auth_client(cashier):
    """APIClient authenticated as a cashier of store S1."""
    client = APIClient()
    client.force_authenticate(user=cashier)
    client.defaults["HTTP_X_STORE_ID"] = STORE
    return client


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def tea():
    return CatalogItem.objects.create(name="Masala Tea", selling_price=Decimal("20.00"))


@pytest.fixture()
def vada():
    return CatalogItem.objects.create(name="Medu Vada", selling_price=Decimal("30.00"))


@pytest.fixture()
def inactive_item():
    return CatalogItem.objects.create(
        name="Seasonal Kulfi", selling_price=Decimal("50.00"), is_active=False
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock():
    return FrozenClock(NOON)


@pytest.fixture()
def service(clock):
    return OrderService(
        order_repository=OrderDjangoRepository(),
        catalog_repository=CatalogDjangoRepository(),
        category_keywords=CATEGORIES,
        clock=clock,
    )


@pytest.fixture()
def make_order_dto():
    """Build a ``CreateOrderDTO`` from ``(catalog_item, quantity)`` pairs."""

    def _make(*lines, **overrides) -> CreateOrderDTO:
        customer = overrides.pop(
            "customer", CustomerDetailsDTO(name="Asha", mobile="9876543210")
        )
        return CreateOrderDTO(
            customer=customer,
            items=[
                CreateOrderItemDTO(catalog_item_id=item.id, quantity=quantity)
                for item, quantity in lines
            ],
            **overrides,
        )

    return _make


@pytest.fixture()
def placed_order(service, make_order_dto, tea, vada):
    """Placed order: 2 x tea (20.00) + 1 x vada (30.00) = 70.00."""
    return service.create_order(make_order_dto((tea, 2), (vada, 1)), store=STORE)


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def order_payload(tea, vada):
    """Request body for 2 x tea + 1 x vada."""
    return {
        "customer": {"name": "Asha", "mobile": "9876543210"},
        "items": [
            {"catalog_item_id": str(tea.id), "quantity": 2},
            {"catalog_item_id": str(vada.id), "quantity": 1},
        ],
    }


@pytest.fixture()
def api_order(auth_client, order_payload):
    """Order created through ``POST /api/v1/orders/``; returns the response body."""
    response = auth_client.post("/api/v1/orders/", order_payload, format="json")
    assert response.status_code == 201, response.content
    return response.json()
