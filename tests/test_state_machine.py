from datetime import date, datetime, time, timedelta

import pytest

from backoffice.core.exceptions import InvalidTransitionError
from backoffice.models import OrderRecord, OrderStatus, PendingCart, Table
from backoffice.services.orders.state_machine import (
    Cancelled,
    Completed,
    Draft,
    InService,
    OrderEvent,
    Placed,
    Reserved,
    can_transition,
    is_expired,
    reservation_deadline,
    state_from_cart,
    state_from_record,
    transition,
)


def reservation(**kwargs) -> OrderRecord:
    return OrderRecord(id=9, table_id=3, user_id=1, status=OrderStatus.RESERVED, **kwargs)


class TestTransitions:
    @pytest.mark.parametrize(
        "state, event, expected",
        [
            (Draft(table_id=5), OrderEvent.CONFIRM, Placed(order_id=42)),
            (Placed(order_id=42), OrderEvent.CONFIRM, Placed(order_id=42)),
            (Draft(table_id=5), OrderEvent.PAY, InService(order_id=42)),
            (Placed(order_id=42), OrderEvent.PAY, InService(order_id=42)),
            (Reserved(order_id=42), OrderEvent.PAY, InService(order_id=42)),
            (Reserved(order_id=42), OrderEvent.EXPIRE, Cancelled(order_id=42)),
            (Placed(order_id=42), OrderEvent.CANCEL, Cancelled(order_id=42)),
            (InService(order_id=42), OrderEvent.CANCEL, Cancelled(order_id=42)),
            (InService(order_id=42), OrderEvent.COMPLETE, Completed(order_id=42)),
        ],
    )
    def test_allowed(self, state, event, expected):
        assert can_transition(state, event)
        assert transition(state, event, order_id=42) == expected

    def test_cancel_draft_has_no_order(self):
        assert transition(Draft(table_id=5), OrderEvent.CANCEL) == Cancelled(order_id=None)

    @pytest.mark.parametrize(
        "state, event",
        [
            (Cancelled(order_id=42), OrderEvent.CONFIRM),
            (Cancelled(order_id=42), OrderEvent.CANCEL),
            (Completed(order_id=42), OrderEvent.PAY),
            (Placed(order_id=42), OrderEvent.EXPIRE),
            (InService(order_id=42), OrderEvent.CONFIRM),
            (Draft(table_id=5), OrderEvent.COMPLETE),
            (Reserved(order_id=42), OrderEvent.CONFIRM),
        ],
    )
    def test_rejected(self, state, event):
        assert not can_transition(state, event)
        with pytest.raises(InvalidTransitionError) as info:
            transition(state, event)
        assert info.value.state == state
        assert info.value.event == event

    def test_leaving_draft_needs_an_order_id(self):
        with pytest.raises(ValueError):
            transition(Draft(table_id=5), OrderEvent.CONFIRM)

    def test_terminal_flags(self):
        assert Cancelled().terminal and Completed(order_id=1).terminal
        assert not Placed(order_id=1).terminal


class TestDerivedState:
    def test_from_cart(self):
        assert state_from_cart(None) is None
        assert state_from_cart(PendingCart(table_id=5)) == Draft(table_id=5)
        assert state_from_cart(PendingCart(table_id=5, order_id=42)) == Placed(order_id=42)

    @pytest.mark.parametrize(
        "status, has_cart, expected",
        [
            (OrderStatus.PLACED, True, Placed(order_id=9)),
            (OrderStatus.IN_SERVICE, True, InService(order_id=9)),
            (OrderStatus.IN_SERVICE, False, Completed(order_id=9)),
            (OrderStatus.RESERVED, False, Reserved(order_id=9)),
            (OrderStatus.CANCELLED, False, Cancelled(order_id=9)),
        ],
    )
    def test_from_record(self, status, has_cart, expected):
        record = OrderRecord(id=9, table_id=3, user_id=1, status=status)
        assert state_from_record(record, has_cart) == expected


class TestReservationExpiry:
    def test_deadline_defaults_to_end_of_day(self):
        record = reservation(reserved_date=date(2024, 5, 1))
        assert reservation_deadline(record) == datetime(2024, 5, 1, 23, 59, 59)

    def test_deadline_uses_reserved_time(self):
        record = reservation(reserved_date=date(2024, 5, 1), reserved_time=time(19, 30))
        assert reservation_deadline(record) == datetime(2024, 5, 1, 19, 30)

    def test_deadline_falls_back_to_table_end_time(self):
        table = Table(id=3, number=3, capacity=4, end_time=datetime(2024, 5, 1, 21, 0))
        assert reservation_deadline(reservation(), table) == datetime(2024, 5, 1, 21, 0)
        assert reservation_deadline(reservation()) is None

    def test_is_expired(self):
        record = reservation(reserved_date=date(2024, 5, 1), reserved_time=time(19, 30))
        assert not is_expired(record, datetime(2024, 5, 1, 19, 0))
        assert is_expired(record, datetime(2024, 5, 1, 19, 31))

    def test_only_reservations_expire(self):
        record = OrderRecord(
            id=9, table_id=3, user_id=1, status=OrderStatus.PLACED,
            reserved_date=date(2000, 1, 1),
        )
        assert not is_expired(record, datetime.now())

    def test_without_deadline_never_expires(self):
        assert not is_expired(reservation(), datetime.now() + timedelta(days=365))
