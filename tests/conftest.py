import asyncio

import pytest

from backoffice.core.config import Settings
from backoffice.models import OrderLineItem
from backoffice.services.cart.file import FileCartBackend
from backoffice.services.cart.store import PendingCartStore
from backoffice.services.orders.lifecycle import OrderLifecycleService
from backoffice.services.orders.mock import MockOrderService
from backoffice.services.orders.sync import OrderSyncService
from backoffice.services.payment.coordinator import PaymentCoordinator

PHO = OrderLineItem(product_id=1, name="Pho bo", unit_price=100000.0)
SPRING_ROLLS = OrderLineItem(product_id=2, name="Spring rolls", unit_price=50000.0)
ICED_TEA = OrderLineItem(product_id=3, name="Iced tea", unit_price=15000.0)


class FakeSleep:
    """Records requested delays and only yields to the loop."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def order_service():
    return MockOrderService()


@pytest.fixture
def backend(tmp_path):
    return FileCartBackend(directory=str(tmp_path / "carts"), lock_timeout=1)


@pytest.fixture
def store(backend):
    return PendingCartStore(backend)


@pytest.fixture
def sync_service(order_service, store):
    sync = OrderSyncService(order_service, store)
    store.attach_sync_service(sync)
    return sync


@pytest.fixture
def lifecycle(order_service, store, sync_service):
    return OrderLifecycleService(order_service, store, sync_service)


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def payment_settings():
    return Settings(payment_poll_interval=3.0, payment_poll_timeout=600.0)


@pytest.fixture
async def coordinator(order_service, store, sync_service, payment_settings, fake_sleep):
    coordinator = PaymentCoordinator(
        order_service,
        store,
        sync_service,
        settings=payment_settings,
        sleep=fake_sleep,
    )
    yield coordinator
    await coordinator.shutdown()
    await store.drain()
