from datetime import date, datetime, timedelta

import pytest

from backoffice.core.exceptions import BackendError, NetworkError, ValidationError
from backoffice.models import OrderRecord, OrderStatus, TableStatus
from backoffice.services.orders.state_machine import Cancelled, Placed, Reserved

from tests.conftest import PHO, SPRING_ROLLS


class TestConfirm:
    async def test_first_confirm_creates_order(self, lifecycle, store, order_service):
        await store.add_or_increment(5, PHO, 2)

        result = await lifecycle.confirm(5)

        assert result.created
        assert result.state == Placed(order_id=result.order_id)
        assert result.total_amount == 200000
        assert store.load(5).order_id == result.order_id
        assert order_service.orders[result.order_id].status == OrderStatus.PLACED
        assert order_service.calls_of("sync_items")

    async def test_reconfirm_updates_status_and_total(self, lifecycle, store, order_service):
        await store.add_or_increment(5, PHO, 1)
        first = await lifecycle.confirm(5)
        await store.add_or_increment(5, SPRING_ROLLS, 1)
        await store.drain()

        second = await lifecycle.confirm(5)

        assert not second.created
        assert second.order_id == first.order_id
        assert len(order_service.calls_of("create_order")) == 1
        _, update = order_service.calls_of("update_order")[-1]
        assert update.to_wire() == {"status": 1, "total_payment": 150000}

    async def test_empty_cart_is_rejected(self, lifecycle, order_service):
        with pytest.raises(ValidationError):
            await lifecycle.confirm(5)
        assert order_service.calls == []


class TestCancel:
    async def test_cancel_frees_table_and_drops_cart(self, lifecycle, store, order_service):
        order_service.set_table_status(5, TableStatus.OCCUPIED)
        await store.add_or_increment(5, PHO, 1)
        confirmed = await lifecycle.confirm(5)

        result = await lifecycle.cancel(5)

        assert result.state == Cancelled(order_id=confirmed.order_id)
        assert store.load(5) is None
        assert order_service.tables[5].persisted_status == TableStatus.AVAILABLE
        assert order_service.tables[5].start_time is None
        assert order_service.orders[confirmed.order_id].status == OrderStatus.CANCELLED
        cancels = [u for _, u in order_service.calls_of("update_order") if u.status == OrderStatus.CANCELLED]
        assert len(cancels) == 1

    async def test_cancel_draft_makes_no_order_call(self, lifecycle, store, order_service):
        await store.add_or_increment(5, PHO, 1)
        result = await lifecycle.cancel(5)
        assert result.order_id is None
        assert order_service.calls_of("update_order") == []
        assert store.load(5) is None

    async def test_cancel_clears_cart_even_when_backend_fails(self, lifecycle, store, order_service):
        await store.add_or_increment(5, PHO, 1)
        await lifecycle.confirm(5)
        order_service.failure_rate = 1.0

        with pytest.raises(NetworkError):
            await lifecycle.cancel(5)
        assert store.load(5) is None


class TestOpenDetail:
    async def test_lapsed_reservation_is_cancelled_on_read(self, lifecycle, order_service):
        yesterday = date.today() - timedelta(days=1)
        order_service.seed_order(
            OrderRecord(
                id=77, table_id=3, user_id=1,
                status=OrderStatus.RESERVED, reserved_date=yesterday,
            )
        )

        detail = await lifecycle.open_detail(77)

        assert detail.expired_on_read
        assert detail.state == Cancelled(order_id=77)
        assert detail.record.status == OrderStatus.CANCELLED
        assert order_service.orders[77].status == OrderStatus.CANCELLED

    async def test_future_reservation_is_untouched(self, lifecycle, order_service):
        tomorrow = date.today() + timedelta(days=1)
        order_service.seed_order(
            OrderRecord(
                id=78, table_id=3, user_id=1,
                status=OrderStatus.RESERVED, reserved_date=tomorrow,
            )
        )

        detail = await lifecycle.open_detail(78)

        assert not detail.expired_on_read
        assert detail.state == Reserved(order_id=78)
        assert order_service.calls_of("update_order") == []

    async def test_reservation_without_date_uses_table_end_time(self, lifecycle, order_service):
        order_service.tables[3].end_time = datetime.now() - timedelta(hours=1)
        order_service.seed_order(
            OrderRecord(id=79, table_id=3, user_id=1, status=OrderStatus.RESERVED)
        )

        detail = await lifecycle.open_detail(79)

        assert detail.expired_on_read
        assert order_service.calls_of("get_table") == [3]

    async def test_unknown_order_propagates(self, lifecycle):
        with pytest.raises(BackendError) as info:
            await lifecycle.open_detail(999)
        assert info.value.status_code == 404
