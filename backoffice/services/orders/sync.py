"""
Order Synchronization Service

Bridges a table's pending cart with its remote order:
- Creates the remote order lazily, the first time a cart is confirmed
- Pushes the complete item list (full replace, never a diff)
- Pushes the total as a separate partial update after each item sync

Item validation happens before anything is sent. There is no automatic
retry; a failed sync is reported to the caller and the cart is untouched.
"""

import logging
from datetime import date
from typing import Optional

from backoffice.core.config import get_settings
from backoffice.core.exceptions import ValidationError
from backoffice.models import OrderLineItem, PendingCart, StaffUser, Table
from backoffice.schemas import OrderCreate, OrderUpdate, SyncItem
from backoffice.services.cart.store import PendingCartStore
from backoffice.services.orders.base import BaseOrderService

logger = logging.getLogger(__name__)


def validate_items(items: list[OrderLineItem]) -> list[SyncItem]:
    """
    Check a cart's lines and convert them to the sync payload.

    An empty list is valid: it clears the remote order's items.

    Raises:
        ValidationError: missing product reference or non-positive quantity
    """
    payload = []
    for item in items:
        if not item.product_id:
            raise ValidationError(f"Item '{item.name}' has no product reference")
        if item.quantity < 1:
            raise ValidationError(
                f"Item '{item.name}' has invalid quantity {item.quantity}"
            )
        payload.append(SyncItem(product_id=item.product_id, quantity=item.quantity))
    return payload


class OrderSyncService:
    """Keeps remote orders in line with the pending carts."""

    def __init__(self, order_service: BaseOrderService, cart_store: PendingCartStore):
        self.order_service = order_service
        self.cart_store = cart_store
        self.settings = get_settings()

    async def create_or_get_order(
        self,
        table_id: int,
        user: Optional[StaffUser] = None,
        table: Optional[Table] = None,
    ) -> int:
        """
        Return the table's remote order id, creating the order if needed.

        The created id is written onto the cart as it is *after* the create
        call returns, so lines added while the call was in flight are kept.

        Raises:
            ValidationError: the table has no pending items
        """
        cart = self.cart_store.load(table_id)
        if cart is None or cart.is_empty:
            raise ValidationError(f"Table {table_id} has no pending items")
        if cart.order_id is not None:
            return cart.order_id

        if table is None:
            table = await self.order_service.get_table(table_id)
        user = user or StaffUser(id=self.settings.default_user_id)

        payload = OrderCreate(
            table_id=table_id,
            user_id=user.id,
            table_number=table.number or table_id,
            capacity=table.capacity or self.settings.default_table_capacity,
            customer_name=user.name or self.settings.default_guest_name,
            order_date=date.today(),
            phone=user.phone,
            total_payment=cart.total_amount,
        )
        record = await self.order_service.create_order(payload)

        latest = self.cart_store.load(table_id)
        if latest is None:
            # Cleared while the create was in flight; the order stays remote only
            logger.warning(
                f"Cart of table {table_id} vanished while creating order {record.id}"
            )
            return record.id
        if latest.order_id is not None and latest.order_id != record.id:
            logger.warning(
                f"Table {table_id}: order {latest.order_id} replaced by {record.id}"
            )
        latest.order_id = record.id
        if record.created_at is not None:
            latest.created_at = record.created_at
        self.cart_store.persist(latest)

        logger.info(f"Table {table_id}: created order {record.id}")
        return record.id

    async def sync_items(self, order_id: int, items: list[OrderLineItem]) -> None:
        """Send the complete item list of an order."""
        payload = validate_items(items)
        await self.order_service.sync_items(order_id, payload)
        logger.debug(f"Order {order_id}: synced {len(payload)} item(s)")

    async def update_total(self, order_id: int, total: float) -> None:
        await self.order_service.update_order(order_id, OrderUpdate(total_payment=total))

    async def sync_cart(self, cart: PendingCart) -> None:
        """Item sync followed by the total update."""
        if cart.order_id is None:
            raise ValidationError(f"Cart of table {cart.table_id} has no remote order")
        await self.sync_items(cart.order_id, cart.items)
        await self.update_total(cart.order_id, cart.total_amount)
