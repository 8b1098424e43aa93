"""
Mock Order Service Implementation

In-memory stand-in for the back-office API, used in development mode
(ENV_MODE=development) and by the test-suite to:
    - Exercise the whole table, cart and payment flow without a backend
    - Simulate the bank's out-of-band payment callback (``mark_paid``)
    - Inject latency and transport failures

Behavior:
    - Seeds a handful of tables and the usual payment methods
    - Assigns incrementing order ids
    - Records every call in ``calls`` for inspection
"""

import asyncio
import logging
import random
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

from backoffice.core.exceptions import BackendError, NetworkError
from backoffice.models import (
    DepositStatus,
    OrderRecord,
    OrderStatus,
    PaymentMethod,
    Table,
    TableStatus,
)
from backoffice.schemas import OrderCreate, OrderUpdate, SyncItem, TableUpdate
from backoffice.services.orders.base import BaseOrderService

logger = logging.getLogger(__name__)

DEFAULT_ASYNC_KEYWORDS = ["sepay", "qr"]


class MockOrderService(BaseOrderService):
    """
    Mock implementation of the remote order service.

    Attributes:
        failure_rate: Probability that a call raises NetworkError (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds
        calls: Log of (operation, args) tuples in call order

    Example:
        >>> service = MockOrderService()
        >>> record = await service.create_order(payload)
        >>> service.mark_paid(record.id)
        >>> (await service.get_order(record.id)).is_paid
        True
    """

    SEED_METHODS = [
        (1, "Cash", 1),
        (2, "Card", 1),
        (3, "Bank transfer", 1),
        (4, "SePay QR", 1),
        (5, "Voucher", 2),
    ]

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        table_count: int = 10,
        default_capacity: int = 4,
        async_keywords: Optional[list[str]] = None,
        first_order_id: int = 1,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.async_keywords = async_keywords or DEFAULT_ASYNC_KEYWORDS

        self.orders: dict[int, OrderRecord] = {}
        self.order_items: dict[int, list[SyncItem]] = {}
        self.tables: dict[int, Table] = {
            i: Table(id=i, number=i, capacity=default_capacity)
            for i in range(1, table_count + 1)
        }
        self.payment_methods: list[PaymentMethod] = [
            PaymentMethod(
                id=method_id,
                label=label,
                is_active=status == 1,
                is_asynchronous=any(k in label.lower() for k in self.async_keywords),
            )
            for method_id, label, status in self.SEED_METHODS
        ]
        self.calls: list[tuple[str, Any]] = []
        self._next_id = first_order_id

        logger.info(
            f"MockOrderService initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s, tables={table_count})"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_call(self, operation: str, args: Any = None) -> None:
        self.calls.append((operation, args))
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))
        else:
            # Still yield so callers observe a real suspension point
            await asyncio.sleep(0)
        if self.failure_rate and random.random() < self.failure_rate:
            logger.debug(f"Mock: simulated transport failure on {operation}")
            raise NetworkError(f"Simulated network failure during {operation}")

    def calls_of(self, operation: str) -> list[Any]:
        """Arguments of every recorded call of one operation."""
        return [args for name, args in self.calls if name == operation]

    def _require_order(self, order_id: int) -> OrderRecord:
        record = self.orders.get(order_id)
        if record is None:
            raise BackendError(f"Order {order_id} not found", status_code=404)
        return record

    def _require_table(self, table_id: int) -> Table:
        table = self.tables.get(table_id)
        if table is None:
            raise BackendError(f"Table {table_id} not found", status_code=404)
        return table

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def create_order(self, payload: OrderCreate) -> OrderRecord:
        await self._simulate_call("create_order", payload)
        self._require_table(payload.table_id)

        order_id = self._next_id
        self._next_id += 1
        record = OrderRecord(
            id=order_id,
            table_id=payload.table_id,
            user_id=payload.user_id,
            status=payload.status,
            total_payment=payload.total_payment,
            created_at=datetime.now(),
            customer_name=payload.customer_name,
            phone=payload.phone,
            reserved_date=payload.order_date if payload.status == OrderStatus.RESERVED else None,
        )
        self.orders[order_id] = record
        self.order_items[order_id] = []

        logger.info(f"Mock: created order {order_id} for table {payload.table_id}")
        return replace(record)

    async def update_order(self, order_id: int, update: OrderUpdate) -> None:
        await self._simulate_call("update_order", (order_id, update))
        record = self._require_order(order_id)

        if update.status is not None:
            record.status = update.status
        if update.payment_method_id is not None:
            record.payment_method_id = update.payment_method_id
        if update.deposit_status is not None:
            record.deposit_status = update.deposit_status
        if update.total_payment is not None:
            record.total_payment = update.total_payment

        logger.debug(f"Mock: updated order {order_id} with {update.to_wire()}")

    async def sync_items(self, order_id: int, items: list[SyncItem]) -> None:
        await self._simulate_call("sync_items", (order_id, list(items)))
        self._require_order(order_id)
        self.order_items[order_id] = list(items)

    async def get_order(self, order_id: int) -> OrderRecord:
        await self._simulate_call("get_order", order_id)
        return replace(self._require_order(order_id))

    # =========================================================================
    # TABLES
    # =========================================================================

    async def get_table(self, table_id: int) -> Table:
        await self._simulate_call("get_table", table_id)
        return replace(self._require_table(table_id))

    async def update_table(self, table_id: int, update: TableUpdate) -> None:
        await self._simulate_call("update_table", (table_id, update))
        table = self._require_table(table_id)
        table.persisted_status = int(update.status)
        table.start_time = update.start_time
        table.end_time = update.end_time
        table.description = update.description
        table.number = update.table_number
        table.capacity = update.capacity
        table.name = update.name

    # =========================================================================
    # PAYMENT METHODS
    # =========================================================================

    async def list_payment_methods(self) -> list[PaymentMethod]:
        await self._simulate_call("list_payment_methods")
        return [replace(m) for m in self.payment_methods]

    async def health_check(self) -> bool:
        logger.debug("Mock: Health check passed")
        return True

    # =========================================================================
    # SIMULATION HOOKS
    # =========================================================================

    def mark_paid(self, order_id: int) -> OrderRecord:
        """Simulate the bank confirming a transfer for an order."""
        record = self._require_order(order_id)
        record.status = OrderStatus.IN_SERVICE
        record.deposit_status = DepositStatus.PAID
        logger.info(f"Mock: order {order_id} marked paid by simulated bank callback")
        return replace(record)

    def seed_order(self, record: OrderRecord) -> None:
        """Insert a pre-existing order, e.g. a reservation."""
        self.orders[record.id] = record
        self.order_items.setdefault(record.id, [])
        self._next_id = max(self._next_id, record.id + 1)

    def set_table_status(self, table_id: int, status: TableStatus) -> None:
        self._require_table(table_id).persisted_status = int(status)
