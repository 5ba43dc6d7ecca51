"""Unit tests for the Order model state machine helpers and derived values."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from modules.orders.constants import (
    STATUS_SEQUENCE,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
)
from modules.orders.events import OrderCreated
from modules.orders.exceptions import InvalidOrderStatus, OrderLocked
from modules.orders.models import Order

pytestmark = pytest.mark.unit

NOON = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_order(**kwargs) -> Order:
    defaults = {
        "token_number": "TKN20240315007",
        "serial_number": 7,
        "store": "S1",
        "customer_name": "Asha",
        "customer_mobile": "9876543210",
        "created_at": NOON,
    }
    defaults.update(kwargs)
    return Order(**defaults)


class TestTransitionTable:
    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL_STATES:
            assert VALID_TRANSITIONS[state] == set()

    def test_every_active_state_can_be_cancelled(self):
        for state in STATUS_SEQUENCE[:-1]:
            assert OrderStatus.CANCELLED in VALID_TRANSITIONS[state]

    def test_no_state_can_return_to_placed(self):
        assert all(OrderStatus.PLACED not in targets for targets in VALID_TRANSITIONS.values())


class TestCanTransitionTo:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (OrderStatus.PLACED, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.PREPARING),
            (OrderStatus.PREPARING, OrderStatus.READY),
            (OrderStatus.READY, OrderStatus.DELIVERED),
            (OrderStatus.PLACED, OrderStatus.READY),
            (OrderStatus.PLACED, OrderStatus.DELIVERED),
        ],
    )
    def test_forward_moves_are_allowed(self, current, target):
        assert make_order(status=current).can_transition_to(target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (OrderStatus.CONFIRMED, OrderStatus.PLACED),
            (OrderStatus.READY, OrderStatus.PREPARING),
            (OrderStatus.PREPARING, OrderStatus.PREPARING),
        ],
    )
    def test_backward_and_same_state_moves_are_refused(self, current, target):
        order = make_order(status=current)

        assert not order.can_transition_to(target)
        with pytest.raises(InvalidOrderStatus) as exc_info:
            order.ensure_can_transition_to(target)
        assert exc_info.value.code == "StateError"
        assert exc_info.value.payload == {"from_status": current, "to_status": target}

    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_terminal_orders_are_locked(self, terminal):
        order = make_order(status=terminal)

        assert order.is_terminal
        with pytest.raises(OrderLocked):
            order.ensure_mutable()
        with pytest.raises(OrderLocked):
            order.ensure_can_transition_to(OrderStatus.CANCELLED)


class TestDerivedValues:
    def test_short_token(self):
        assert make_order(serial_number=7).short_token == "#007"

    def test_not_overdue_within_estimate(self):
        order = make_order(estimated_time=15)

        assert not order.is_overdue(NOON + timedelta(minutes=15))

    def test_overdue_after_estimate(self):
        order = make_order(estimated_time=15)

        assert order.is_overdue(NOON + timedelta(minutes=16))

    def test_terminal_orders_are_never_overdue(self):
        order = make_order(status=OrderStatus.DELIVERED, estimated_time=15)

        assert not order.is_overdue(NOON + timedelta(hours=3))

    def test_str_shows_token_and_status(self):
        assert str(make_order()) == "TKN20240315007 (Placed)"


class TestDomainEvents:
    def test_order_registers_and_clears_domain_events(self):
        order = make_order()
        assert order.domain_events == []

        event = OrderCreated(aggregate_id=order.id)
        order.add_domain_event(event)

        assert order.domain_events == [event]
        assert event.event_name == "OrderCreated"

        order.clear_domain_events()
        assert order.domain_events == []
