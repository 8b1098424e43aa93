"""
Order Lifecycle Service

Checkout confirmation, cancellation and order detail for a table.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from backoffice.core.exceptions import BackofficeError, ValidationError
from backoffice.models import OrderRecord, OrderStatus, StaffUser, Table, TableStatus
from backoffice.schemas import OrderUpdate, TableUpdate
from backoffice.services.cart.store import PendingCartStore
from backoffice.services.orders.base import BaseOrderService
from backoffice.services.orders.state_machine import (
    Draft,
    OrderEvent,
    OrderState,
    Reserved,
    is_expired,
    state_from_cart,
    state_from_record,
    transition,
)
from backoffice.services.orders.sync import OrderSyncService

logger = logging.getLogger(__name__)


async def reset_table_to_available(order_service: BaseOrderService, table_id: int) -> None:
    """
    Mark a table available and clear its session fields.

    The update endpoint replaces every field, so the current number,
    capacity and name are read first and sent back unchanged.
    """
    table = await order_service.get_table(table_id)
    await order_service.update_table(
        table_id,
        TableUpdate(
            status=TableStatus.AVAILABLE,
            start_time=None,
            end_time=None,
            description=None,
            table_number=table.number,
            capacity=table.capacity,
            name=table.name or f"Table {table.number}",
        ),
    )
    logger.info(f"Table {table_id} reset to available")


@dataclass
class ConfirmResult:
    table_id: int
    order_id: int
    state: OrderState
    total_amount: float
    created: bool


@dataclass
class OrderDetail:
    record: OrderRecord
    state: OrderState
    expired_on_read: bool = False


@dataclass
class CancelResult:
    table_id: int
    order_id: Optional[int]
    state: OrderState


class OrderLifecycleService:
    """
    Drives a table's order through confirm and cancel.

    Example:
        >>> lifecycle = OrderLifecycleService(orders, store, sync)
        >>> result = await lifecycle.confirm(5)
        >>> result.state
        Placed(order_id=42)
    """

    def __init__(
        self,
        order_service: BaseOrderService,
        cart_store: PendingCartStore,
        sync_service: OrderSyncService,
    ):
        self.order_service = order_service
        self.cart_store = cart_store
        self.sync_service = sync_service

    async def confirm(self, table_id: int, user: Optional[StaffUser] = None) -> ConfirmResult:
        """
        Confirm the table's pending cart.

        A first confirmation creates the remote order and pushes its items.
        Confirming again re-places the existing order with the current total.

        Raises:
            ValidationError: the table has no pending items
        """
        cart = self.cart_store.load(table_id)
        if cart is None or cart.is_empty:
            raise ValidationError(f"Table {table_id} has no pending items")

        state = state_from_cart(cart)
        if isinstance(state, Draft):
            order_id = await self.sync_service.create_or_get_order(table_id, user)
            new_state = transition(state, OrderEvent.CONFIRM, order_id=order_id)
            cart = self.cart_store.load(table_id) or cart
            cart.order_id = order_id
            await self.sync_service.sync_cart(cart)
            created = True
        else:
            new_state = transition(state, OrderEvent.CONFIRM)
            order_id = cart.order_id
            await self.order_service.update_order(
                order_id,
                OrderUpdate(status=OrderStatus.PLACED, total_payment=cart.total_amount),
            )
            created = False

        logger.info(
            f"Table {table_id}: order {order_id} confirmed "
            f"(total={cart.total_amount:.0f}, created={created})"
        )
        return ConfirmResult(
            table_id=table_id,
            order_id=order_id,
            state=new_state,
            total_amount=cart.total_amount,
            created=created,
        )

    async def open_detail(self, order_id: int, now: Optional[datetime] = None) -> OrderDetail:
        """
        Read an order, cancelling it first if its reservation has lapsed.
        """
        now = now or datetime.now()
        record = await self.order_service.get_order(order_id)

        expired = False
        if record.status == OrderStatus.RESERVED:
            table: Optional[Table] = None
            if record.reserved_date is None and record.table_id:
                table = await self.order_service.get_table(record.table_id)
            if is_expired(record, now, table):
                transition(Reserved(order_id=record.id), OrderEvent.EXPIRE)
                await self.order_service.update_order(
                    record.id, OrderUpdate(status=OrderStatus.CANCELLED)
                )
                record.status = OrderStatus.CANCELLED
                expired = True
                logger.info(f"Reservation {record.id} expired on read; cancelled")

        cart = self.cart_store.load(record.table_id) if record.table_id else None
        has_cart = cart is not None and cart.order_id == record.id
        return OrderDetail(
            record=record,
            state=state_from_record(record, has_cart),
            expired_on_read=expired,
        )

    async def cancel(self, table_id: int) -> CancelResult:
        """
        Cancel the table's order and free the table.

        The table reset and the remote cancellation are both attempted; the
        cart entry is removed whatever happens. The first failure is raised
        afterwards.
        """
        cart = self.cart_store.load(table_id)
        order_id = cart.order_id if cart else None
        state = state_from_cart(cart) or Draft(table_id=table_id)
        new_state = transition(state, OrderEvent.CANCEL)

        first_error: Optional[BackofficeError] = None
        try:
            try:
                await reset_table_to_available(self.order_service, table_id)
            except BackofficeError as e:
                logger.error(f"Table {table_id}: reset failed during cancel: {e}")
                first_error = e

            if order_id is not None:
                try:
                    await self.order_service.update_order(
                        order_id, OrderUpdate(status=OrderStatus.CANCELLED)
                    )
                except BackofficeError as e:
                    logger.error(f"Order {order_id}: remote cancel failed: {e}")
                    first_error = first_error or e
        finally:
            self.cart_store.clear(table_id)

        if first_error is not None:
            raise first_error

        logger.info(f"Table {table_id}: order {order_id} cancelled")
        return CancelResult(table_id=table_id, order_id=order_id, state=new_state)
