import json
from datetime import date

import httpx
import pytest

from backoffice.core.exceptions import AuthError, BackendError, NetworkError
from backoffice.models import DepositStatus, OrderStatus, TableStatus
from backoffice.schemas import OrderCreate, OrderUpdate, SyncItem, TableUpdate
from backoffice.services.orders.http import HttpOrderService, unwrap_envelope


class RecordingHandler:
    """MockTransport handler answering from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes.get((request.method, request.url.path))
        if answer is None:
            return httpx.Response(404, json={"message": "not found"})
        if isinstance(answer, Exception):
            raise answer
        status, body = answer
        return httpx.Response(status, json=body)

    def body(self, index=-1):
        return json.loads(self.requests[index].content)


def make_service(routes, token="secret"):
    handler = RecordingHandler(routes)
    service = HttpOrderService(
        base_url="http://api.test",
        token=token,
        prefix="/api/admin",
        async_keywords=["sepay", "qr"],
        default_capacity=4,
        transport=httpx.MockTransport(handler),
    )
    return service, handler


def test_unwrap_envelope():
    assert unwrap_envelope({"data": {"data": {"id": 1}}}) == {"id": 1}
    assert unwrap_envelope({"data": [1, 2]}) == [1, 2]
    assert unwrap_envelope({"id": 1}) == {"id": 1}


async def test_get_order_unwraps_and_coerces():
    service, handler = make_service(
        {
            ("GET", "/api/admin/orders/42"): (
                200,
                {
                    "data": {
                        "data": {
                            "id": 42,
                            "id_table": 5,
                            "id_user": 1,
                            "status": "2",
                            "status_deposit": 2,
                            "total_payment": "200000",
                            "date": "2024-05-01",
                            "time": "19:30:00",
                        }
                    }
                },
            )
        }
    )

    record = await service.get_order(42)

    assert record.id == 42
    assert record.table_id == 5
    assert record.status == OrderStatus.IN_SERVICE
    assert record.is_paid
    assert record.deposit_status == DepositStatus.PAID
    assert record.total_payment == 200000
    assert record.reserved_date == date(2024, 5, 1)
    assert handler.requests[0].headers["Authorization"] == "Bearer secret"
    await service.aclose()


async def test_create_order_sends_wire_names():
    service, handler = make_service(
        {("POST", "/api/admin/orders"): (201, {"data": {"id": 42, "created_at": "2024-05-01T12:00:00"}})}
    )
    payload = OrderCreate(
        table_id=5,
        user_id=1,
        table_number=5,
        capacity=4,
        customer_name="Walk-in guest",
        order_date=date(2024, 5, 1),
        total_payment=100000,
    )

    record = await service.create_order(payload)

    assert record.id == 42
    assert record.table_id == 5
    assert record.created_at.year == 2024
    assert handler.body() == {
        "id_table": 5,
        "id_user": 1,
        "number_table": 5,
        "capacity": 4,
        "name_user": "Walk-in guest",
        "date": "2024-05-01",
        "phone": None,
        "total_payment": 100000,
        "status": 1,
    }
    await service.aclose()


async def test_create_without_id_is_a_backend_error():
    service, _ = make_service({("POST", "/api/admin/orders"): (200, {"data": {}})})
    payload = OrderCreate(
        table_id=5, table_number=5, capacity=4,
        customer_name="Walk-in guest", order_date=date(2024, 5, 1),
    )
    with pytest.raises(BackendError):
        await service.create_order(payload)
    await service.aclose()


async def test_partial_update_and_sync_items():
    service, handler = make_service(
        {
            ("PUT", "/api/admin/orders/42"): (200, {"data": {"id": 42}}),
            ("POST", "/api/admin/orders/42/sync-items"): (200, {"success": True}),
        }
    )

    await service.update_order(42, OrderUpdate(total_payment=150000))
    assert handler.body() == {"total_payment": 150000}

    await service.update_order(
        42,
        OrderUpdate(status=OrderStatus.IN_SERVICE, payment_method_id=1, deposit_status=DepositStatus.PAID),
    )
    assert handler.body() == {"status": 2, "id_payment": 1, "status_deposit": 2}

    await service.sync_items(42, [SyncItem(product_id=1, quantity=2), SyncItem(product_id=2, quantity=1)])
    assert handler.body() == {
        "items": [{"id_product": 1, "quantity": 2}, {"id_product": 2, "quantity": 1}]
    }
    await service.aclose()


async def test_table_read_and_full_update():
    service, handler = make_service(
        {
            ("GET", "/api/admin/tables/5"): (200, {"data": {"id": 5, "number_table": 5, "status": 2}}),
            ("PATCH", "/api/admin/tables/5"): (200, {"data": {"id": 5}}),
        }
    )

    table = await service.get_table(5)
    assert table.number == 5
    assert table.capacity == 4
    assert table.persisted_status == TableStatus.OCCUPIED

    await service.update_table(
        5,
        TableUpdate(status=TableStatus.AVAILABLE, table_number=5, capacity=4, name="Table 5"),
    )
    assert handler.body() == {
        "status": 1,
        "start_time": None,
        "end_time": None,
        "description": None,
        "number_table": 5,
        "capacity": 4,
        "name": "Table 5",
    }
    await service.aclose()


async def test_payment_methods_are_classified():
    service, _ = make_service(
        {
            ("GET", "/api/admin/payment-method"): (
                200,
                {
                    "data": [
                        {"id": 1, "payment_method": "Cash", "payment_status": 1},
                        {"id": 4, "payment_method": "SePay QR", "payment_status": 1},
                        {"id": 5, "payment_method": "Voucher", "payment_status": 2},
                    ]
                },
            )
        }
    )

    methods = {m.id: m for m in await service.list_payment_methods()}

    assert not methods[1].is_asynchronous and methods[1].is_active
    assert methods[4].is_asynchronous
    assert not methods[5].is_active
    await service.aclose()


async def test_unauthorized_drops_token():
    service, handler = make_service(
        {("GET", "/api/admin/orders/42"): (401, {"message": "Token expired"})}
    )

    with pytest.raises(AuthError, match="Token expired"):
        await service.get_order(42)
    assert service.token is None

    with pytest.raises(AuthError):
        await service.get_order(42)
    assert "Authorization" not in handler.requests[-1].headers
    await service.aclose()


async def test_backend_error_carries_message_and_status():
    service, _ = make_service(
        {("PUT", "/api/admin/orders/42"): (422, {"message": "Order already paid"})}
    )

    with pytest.raises(BackendError) as info:
        await service.update_order(42, OrderUpdate(status=OrderStatus.CANCELLED))

    assert info.value.status_code == 422
    assert info.value.message == "Order already paid"
    await service.aclose()


async def test_transport_failure_is_a_network_error():
    service, _ = make_service(
        {("GET", "/api/admin/orders/42"): httpx.ConnectError("connection refused")}
    )

    with pytest.raises(NetworkError):
        await service.get_order(42)
    assert not await service.health_check()
    await service.aclose()
