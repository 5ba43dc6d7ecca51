"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.

The store scope comes from the ``X-Store-ID`` header set by the
upstream access-control layer (see ``RequestContextMiddleware``).
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type, TypeVar

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.catalog.repositories.django_repository import CatalogDjangoRepository
from modules.core.exceptions import error_response
from modules.core.middleware import resolve_store_id
from modules.core.pagination import StandardResultsSetPagination
from modules.orders.dtos import CreateOrderDTO, RecordPaymentDTO, UpdateOrderDTO
from modules.orders.exceptions import OrderError, OrderValidationError
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    RecordPaymentSerializer,
    UpdateOrderSerializer,
)
from modules.orders.services import OrderService

DTO = TypeVar("DTO", bound=BaseModel)


def _to_dto(dto_class: Type[DTO], data: Dict[str, Any]) -> DTO:
    try:
        return dto_class.model_validate(data)
    except PydanticValidationError as exc:
        raise OrderValidationError(
            "Invalid order data.",
            {
                "errors": [
                    {"loc": [str(part) for part in error["loc"]], "msg": error["msg"]}
                    for error in exc.errors()
                ]
            },
        ) from exc


class OrderViewSet(GenericViewSet):
    """ViewSet for order token operations.

    Uses ``OrderService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.all()
    filterset_class = OrderFilter
    search_fields = ["token_number", "customer_name", "customer_mobile"]
    ordering_fields = [
        "created_at",
        "serial_number",
        "grand_total",
        "status",
        "priority",
    ]
    ordering = ["-created_at", "-serial_number"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            catalog_repository=CatalogDjangoRepository(),
        )

    def get_throttles(self) -> list[BaseThrottle]:
        """Per-action throttling scopes."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    @staticmethod
    def _actor_id(request: Request) -> Optional[int]:
        user = request.user
        return user.pk if user and user.is_authenticated else None

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/"""
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        try:
            dto = _to_dto(CreateOrderDTO, create_serializer.validated_data)
            order = self._service.create_order(
                dto,
                store=resolve_store_id(request),
                actor_id=self._actor_id(request),
            )
        except OrderError as exc:
            return error_response(exc)

        out = OrderSerializer(order)
        return Response(out.data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def get_queryset(self):
        return self._service.list_orders(store=resolve_store_id(self.request))

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (order/payment status, order type, date range) is
        handled by ``OrderFilter``, text search by ``SearchFilter`` and
        sorting by ``OrderingFilter``.  Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(pk, store=resolve_store_id(request))
        except OrderError as exc:
            return error_response(exc)
        serializer = OrderSerializer(order)
        return Response(serializer.data)

    # ------------------------------------------------------------------
    # Update / Delete
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Accepts any subset of customer details, items, amounts, payment
        and status.  ``status: "Cancelled"`` requires ``cancel_reason``.
        """
        update_serializer = UpdateOrderSerializer(data=request.data)
        update_serializer.is_valid(raise_exception=True)

        try:
            dto = _to_dto(UpdateOrderDTO, update_serializer.validated_data)
            order = self._service.update_order(
                pk,
                dto,
                store=resolve_store_id(request),
                actor_id=self._actor_id(request),
            )
        except OrderError as exc:
            return error_response(exc)

        serializer = OrderSerializer(order)
        return Response(serializer.data)

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        """DELETE /api/v1/orders/{pk}/

        Soft delete; the response is the final, inactive projection.
        """
        try:
            order = self._service.soft_delete_order(
                pk,
                store=resolve_store_id(request),
                actor_id=self._actor_id(request),
            )
        except OrderError as exc:
            return error_response(exc)

        serializer = OrderSerializer(order)
        return Response(serializer.data)

    # ------------------------------------------------------------------
    # Payment / Cancel (dedicated actions)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def payment(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/payment/"""
        payment_serializer = RecordPaymentSerializer(data=request.data)
        payment_serializer.is_valid(raise_exception=True)
        data = dict(payment_serializer.validated_data)
        expected_version = data.pop("expected_version", None)

        try:
            dto = _to_dto(RecordPaymentDTO, data)
            order = self._service.record_payment(
                pk,
                dto,
                store=resolve_store_id(request),
                actor_id=self._actor_id(request),
                expected_version=expected_version,
            )
        except OrderError as exc:
            return error_response(exc)

        serializer = OrderSerializer(order)
        return Response(serializer.data)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels an order; a paid order is flagged for refund.
        """
        cancel_serializer = CancelOrderSerializer(data=request.data)
        cancel_serializer.is_valid(raise_exception=True)
        data = cancel_serializer.validated_data

        try:
            order = self._service.cancel_order(
                pk,
                reason=data["reason"],
                store=resolve_store_id(request),
                actor_id=self._actor_id(request),
                expected_version=data.get("expected_version"),
            )
        except OrderError as exc:
            return error_response(exc)

        serializer = OrderSerializer(order)
        return Response(serializer.data)
