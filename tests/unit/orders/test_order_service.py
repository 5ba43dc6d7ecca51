"""Unit tests for OrderService.

Covers:
- Token issuance: serials per store and day, price snapshot, totals.
- Catalog resolution failures (missing and inactive items).
- Status transitions and history recording.
- Partial updates: totals recomputation, locking, optimistic versions.
- Soft delete and read paths.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from modules.core.models import OutboxEvent
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.dtos import (
    CreateOrderItemDTO,
    CustomerDetailsDTO,
    RecordPaymentDTO,
    UpdateOrderDTO,
)
from modules.orders.exceptions import (
    InvalidOrderStatus,
    ItemsNotFound,
    OrderConflict,
    OrderLocked,
    OrderNotFound,
    OrderValidationError,
)
from modules.orders.models import Order, OrderItem, OrderStatusHistory

pytestmark = pytest.mark.unit

STORE = "S1"


def snapshot(order_id) -> dict:
    row = Order.objects.filter(id=order_id).values().get()
    items = list(OrderItem.objects.filter(order_id=order_id).values().order_by("position"))
    return {"order": row, "items": items}


# ===========================================================================
# Create
# ===========================================================================


class TestCreateOrder:
    def test_creates_placed_order_with_first_token(self, placed_order):
        assert placed_order.token_number == "TKN20240315001"
        assert placed_order.serial_number == 1
        assert placed_order.short_token == "#001"
        assert placed_order.business_date == date(2024, 3, 15)
        assert placed_order.store == STORE
        assert placed_order.status == OrderStatus.PLACED
        assert placed_order.payment_status == PaymentStatus.PENDING
        assert placed_order.version == 1

    def test_computes_summary(self, placed_order):
        assert placed_order.total_quantity == 3
        assert placed_order.subtotal == Decimal("70.00")
        assert placed_order.grand_total == Decimal("70.00")
        assert placed_order.pending_amount == Decimal("70.00")
        assert placed_order.paid_amount == Decimal("0.00")
        assert placed_order.category_counts == {"Tea": 2, "Vada": 1}

    def test_snapshots_catalog_name_and_price(self, placed_order, tea):
        items = list(placed_order.items.all())

        assert [item.item_name for item in items] == ["Masala Tea", "Medu Vada"]
        assert items[0].unit_price == Decimal("20.00")
        assert items[0].total_price == Decimal("40.00")

    def test_later_price_change_does_not_alter_existing_order(self, placed_order, tea):
        tea.selling_price = Decimal("99.00")
        tea.save()

        reloaded = Order.objects.get(id=placed_order.id)
        assert reloaded.items.get(catalog_item=tea).unit_price == Decimal("20.00")
        assert reloaded.grand_total == Decimal("70.00")

    def test_two_orders_same_day_get_consecutive_tokens(
        self, service, make_order_dto, tea
    ):
        first = service.create_order(make_order_dto((tea, 1)), store=STORE)
        second = service.create_order(make_order_dto((tea, 1)), store=STORE)

        assert (first.serial_number, second.serial_number) == (1, 2)
        assert first.token_number == "TKN20240315001"
        assert second.token_number == "TKN20240315002"

    def test_serials_restart_each_day(self, service, make_order_dto, tea, clock):
        service.create_order(make_order_dto((tea, 1)), store=STORE)
        clock.advance(days=1)

        order = service.create_order(make_order_dto((tea, 1)), store=STORE)

        assert order.serial_number == 1
        assert order.token_number == "TKN20240316001"

    def test_serials_are_independent_per_store(self, service, make_order_dto, tea):
        service.create_order(make_order_dto((tea, 1)), store=STORE)

        other = service.create_order(make_order_dto((tea, 1)), store="S2")

        assert other.serial_number == 1

    def test_explicit_reference_instant_sets_day_and_creation_time(
        self, service, make_order_dto, tea
    ):
        reference = datetime(2024, 1, 2, 9, 30, tzinfo=timezone.utc)

        order = service.create_order(
            make_order_dto((tea, 1)), store=STORE, reference=reference
        )

        assert order.token_number == "TKN20240102001"
        assert order.created_at == reference

    def test_customer_and_options_are_stored(self, service, make_order_dto, tea, cashier):
        dto = make_order_dto(
            (tea, 1),
            customer=CustomerDetailsDTO(
                name="Ravi",
                mobile="9123456789",
                email="Ravi@Example.com",
                address="Stall 4",
            ),
            order_type="Dine-In",
            priority="Urgent",
            estimated_time=5,
            notes="Less sugar",
        )

        order = service.create_order(dto, store=STORE, actor_id=cashier.id)

        assert order.customer_email == "ravi@example.com"
        assert order.customer_address == "Stall 4"
        assert order.order_type == "Dine-In"
        assert order.priority == "Urgent"
        assert order.estimated_time == 5
        assert order.notes == "Less sugar"
        assert order.created_by_id == cashier.id

    def test_tax_and_discount_feed_grand_total(self, service, make_order_dto, tea):
        order = service.create_order(
            make_order_dto(
                (tea, 1), tax_amount=Decimal("1.00"), discount_amount=Decimal("50.00")
            ),
            store=STORE,
        )

        assert order.grand_total == Decimal("0.00")
        assert order.pending_amount == Decimal("0.00")

    def test_records_initial_history_and_event(self, placed_order):
        history = list(placed_order.status_history.all())

        assert len(history) == 1
        assert history[0].old_status is None
        assert history[0].new_status == OrderStatus.PLACED
        assert history[0].notes == "Order created"
        event = OutboxEvent.objects.get(
            event_type="OrderCreated", aggregate_id=str(placed_order.id)
        )
        assert event.payload["payload"]["token_number"] == "TKN20240315001"

    def test_missing_items_fail_the_whole_request(self, service, make_order_dto, tea):
        ghost_id = uuid4()
        dto = make_order_dto((tea, 1))
        dto = dto.model_copy(
            update={
                "items": [
                    *dto.items,
                    CreateOrderItemDTO(catalog_item_id=ghost_id, quantity=1),
                ]
            }
        )

        with pytest.raises(ItemsNotFound) as exc_info:
            service.create_order(dto, store=STORE)

        assert exc_info.value.missing_ids == [str(ghost_id)]
        assert exc_info.value.payload == {"missing_ids": [str(ghost_id)]}
        assert Order.objects.count() == 0

    def test_inactive_items_are_not_orderable(
        self, service, make_order_dto, tea, inactive_item
    ):
        with pytest.raises(ItemsNotFound) as exc_info:
            service.create_order(make_order_dto((tea, 1), (inactive_item, 1)), store=STORE)

        assert exc_info.value.missing_ids == [str(inactive_item.id)]
        assert Order.objects.count() == 0


# ===========================================================================
# Status transitions
# ===========================================================================


class TestUpdateStatus:
    def test_forward_transition_records_history(self, service, placed_order, cashier):
        order = service.update_status(
            placed_order.id, OrderStatus.CONFIRMED, notes="Kitchen ack", actor_id=cashier.id
        )

        assert order.status == OrderStatus.CONFIRMED
        assert order.version == 2
        last = list(order.status_history.all())[-1]
        assert (last.old_status, last.new_status) == (OrderStatus.PLACED, OrderStatus.CONFIRMED)
        assert last.notes == "Kitchen ack"
        assert last.user_id == cashier.id

    def test_skipping_stages_is_allowed(self, service, placed_order):
        order = service.update_status(placed_order.id, OrderStatus.READY)

        assert order.status == OrderStatus.READY

    def test_going_back_to_placed_is_a_state_error(self, service, placed_order):
        service.update_status(placed_order.id, OrderStatus.PREPARING)

        with pytest.raises(InvalidOrderStatus):
            service.update_status(placed_order.id, OrderStatus.PLACED)

        assert Order.objects.get(id=placed_order.id).status == OrderStatus.PREPARING

    def test_unknown_server_is_a_validation_error(self, service, placed_order):
        with pytest.raises(OrderValidationError):
            service.update_status(
                placed_order.id, OrderStatus.DELIVERED, served_by_id=999999
            )

        assert Order.objects.get(id=placed_order.id).status == OrderStatus.PLACED

    def test_delivery_stamps_time_and_server(self, service, placed_order, clock, cashier):
        clock.advance(minutes=12)

        order = service.update_status(
            placed_order.id, OrderStatus.DELIVERED, served_by_id=cashier.id
        )

        assert order.actual_delivery_time == clock.now
        assert order.served_by_id == cashier.id

    def test_delivered_order_is_locked(self, service, placed_order):
        service.update_status(placed_order.id, OrderStatus.DELIVERED)

        with pytest.raises(OrderLocked):
            service.update_status(placed_order.id, OrderStatus.READY)

    def test_cancelled_request_is_routed_to_cancellation(self, service, placed_order):
        order = service.update_status(
            placed_order.id, OrderStatus.CANCELLED, notes="duplicate order"
        )

        assert order.status == OrderStatus.CANCELLED
        assert "Cancelled: duplicate order" in order.notes

    def test_unknown_order_raises_not_found(self, service):
        with pytest.raises(OrderNotFound):
            service.update_status(uuid4(), OrderStatus.CONFIRMED)

    def test_event_is_written_to_outbox(self, service, placed_order):
        service.update_status(placed_order.id, OrderStatus.CONFIRMED)

        event = OutboxEvent.objects.get(
            event_type="OrderStatusChanged", aggregate_id=str(placed_order.id)
        )
        assert event.payload["payload"] == {
            "old_status": OrderStatus.PLACED,
            "new_status": OrderStatus.CONFIRMED,
        }


# ===========================================================================
# Partial update
# ===========================================================================


class TestUpdateOrder:
    def test_same_status_is_a_state_error(self, service, placed_order):
        with pytest.raises(InvalidOrderStatus):
            service.update_order(
                placed_order.id, UpdateOrderDTO(status=OrderStatus.PLACED, notes="x")
            )

        order = Order.objects.get(id=placed_order.id)
        assert order.version == 1
        assert order.notes != "x"

    def test_simple_fields(self, service, placed_order):
        order = service.update_order(
            placed_order.id,
            UpdateOrderDTO(priority="High", notes="No onion", estimated_time=25),
        )

        assert order.priority == "High"
        assert order.notes == "No onion"
        assert order.estimated_time == 25
        assert order.version == 2

    def test_replacing_items_recomputes_totals(self, service, placed_order, vada):
        order = service.update_order(
            placed_order.id,
            UpdateOrderDTO(items=[CreateOrderItemDTO(catalog_item_id=vada.id, quantity=4)]),
        )

        assert [item.item_name for item in order.items.all()] == ["Medu Vada"]
        assert order.total_quantity == 4
        assert order.subtotal == Decimal("120.00")
        assert order.grand_total == Decimal("120.00")
        assert order.pending_amount == Decimal("120.00")
        assert order.category_counts == {"Tea": 0, "Vada": 4}

    def test_changing_discount_recomputes_from_existing_items(self, service, placed_order):
        order = service.update_order(
            placed_order.id, UpdateOrderDTO(discount_amount=Decimal("10.00"))
        )

        assert order.subtotal == Decimal("70.00")
        assert order.grand_total == Decimal("60.00")
        assert order.pending_amount == Decimal("60.00")

    def test_recompute_updates_payment_status(self, service, placed_order):
        service.record_payment(placed_order.id, RecordPaymentDTO(paid_amount=Decimal("60")))

        order = service.update_order(
            placed_order.id, UpdateOrderDTO(discount_amount=Decimal("10.00"))
        )

        assert order.payment_status == PaymentStatus.PAID
        assert order.pending_amount == Decimal("0.00")

    def test_payment_and_status_together(self, service, placed_order):
        order = service.update_order(
            placed_order.id,
            UpdateOrderDTO(
                payment=RecordPaymentDTO(paid_amount=Decimal("70"), method="UPI"),
                status=OrderStatus.READY,
            ),
        )

        assert order.payment_status == PaymentStatus.PAID
        assert order.payment_method == "UPI"
        assert order.status == OrderStatus.READY
        assert order.version == 2

    def test_update_with_cancelled_status_runs_cancellation(self, service, placed_order):
        service.record_payment(placed_order.id, RecordPaymentDTO(paid_amount=Decimal("20")))

        order = service.update_order(
            placed_order.id,
            UpdateOrderDTO(status=OrderStatus.CANCELLED, cancel_reason="wrong stall"),
        )

        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.notes.endswith("Cancelled: wrong stall")

    def test_invalid_transition_leaves_order_unchanged(self, service, placed_order):
        service.update_status(placed_order.id, OrderStatus.READY)
        before = snapshot(placed_order.id)

        with pytest.raises(InvalidOrderStatus):
            service.update_order(
                placed_order.id,
                UpdateOrderDTO(notes="changed", status=OrderStatus.CONFIRMED),
            )

        assert snapshot(placed_order.id) == before

    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_locked_order_rejects_update_and_stays_identical(
        self, service, placed_order, vada, terminal
    ):
        service.update_status(placed_order.id, terminal, notes="closing")
        before = snapshot(placed_order.id)

        with pytest.raises(OrderLocked):
            service.update_order(
                placed_order.id,
                UpdateOrderDTO(
                    notes="late edit",
                    items=[CreateOrderItemDTO(catalog_item_id=vada.id, quantity=9)],
                ),
            )

        assert snapshot(placed_order.id) == before

    def test_stale_expected_version_is_a_conflict(self, service, placed_order):
        service.update_order(placed_order.id, UpdateOrderDTO(notes="first"))

        with pytest.raises(OrderConflict) as exc_info:
            service.update_order(
                placed_order.id, UpdateOrderDTO(notes="second", expected_version=1)
            )

        assert exc_info.value.payload["current_version"] == 2
        assert Order.objects.get(id=placed_order.id).notes == "first"

    def test_matching_expected_version_is_accepted(self, service, placed_order):
        order = service.update_order(
            placed_order.id, UpdateOrderDTO(notes="ok", expected_version=1)
        )

        assert order.version == 2

    def test_unknown_replacement_items_raise(self, service, placed_order):
        ghost_id = uuid4()

        with pytest.raises(ItemsNotFound):
            service.update_order(
                placed_order.id,
                UpdateOrderDTO(items=[CreateOrderItemDTO(catalog_item_id=ghost_id, quantity=1)]),
            )

        assert OrderItem.objects.filter(order_id=placed_order.id).count() == 2


# ===========================================================================
# Soft delete and queries
# ===========================================================================


class TestSoftDeleteAndQueries:
    def test_soft_deleted_order_is_not_found(self, service, placed_order, clock):
        deleted = service.soft_delete_order(placed_order.id)

        assert deleted.is_deleted
        assert deleted.deleted_at == clock.now
        assert Order.objects.filter(id=placed_order.id).exists()
        with pytest.raises(OrderNotFound):
            service.get_order(placed_order.id)
        with pytest.raises(OrderNotFound):
            service.soft_delete_order(placed_order.id)
        assert OutboxEvent.objects.filter(event_type="OrderDeleted").count() == 1

    def test_deleted_serial_is_not_reused(self, service, placed_order, make_order_dto, tea):
        service.soft_delete_order(placed_order.id)

        order = service.create_order(make_order_dto((tea, 1)), store=STORE)

        assert order.serial_number == 2

    def test_delivered_order_cannot_be_deleted(self, service, placed_order):
        service.update_status(placed_order.id, OrderStatus.DELIVERED)

        with pytest.raises(OrderLocked):
            service.soft_delete_order(placed_order.id)

    def test_get_order_is_scoped_to_store(self, service, placed_order):
        assert service.get_order(placed_order.id, store=STORE).id == placed_order.id
        with pytest.raises(OrderNotFound):
            service.get_order(placed_order.id, store="S2")

    def test_malformed_id_is_not_found(self, service):
        with pytest.raises(OrderNotFound):
            service.get_order("not-a-uuid")

    def test_list_orders_filters_by_store_and_hides_deleted(
        self, service, make_order_dto, tea
    ):
        kept = service.create_order(make_order_dto((tea, 1)), store=STORE)
        gone = service.create_order(make_order_dto((tea, 1)), store=STORE)
        service.create_order(make_order_dto((tea, 1)), store="S2")
        service.soft_delete_order(gone.id)

        ids = list(service.list_orders(store=STORE).values_list("id", flat=True))

        assert ids == [kept.id]

    def test_history_rows_are_append_only(self, service, placed_order):
        service.update_status(placed_order.id, OrderStatus.CONFIRMED)
        service.update_status(placed_order.id, OrderStatus.DELIVERED)

        statuses = list(
            OrderStatusHistory.objects.filter(order_id=placed_order.id).values_list(
                "new_status", flat=True
            )
        )
        assert statuses == [OrderStatus.PLACED, OrderStatus.CONFIRMED, OrderStatus.DELIVERED]
