"""
Pending Cart Store

Local-first holder of every table's in-progress order. Each mutation is
written to the durable backend before anything touches the network; when
the cart is already linked to a remote order, the mutation additionally
schedules a background full-list sync of that order.

Background syncs are fire-and-forget from the caller's point of view. The
store keeps a handle on each task so ``drain()`` can wait for them on
shutdown, and so a failure is logged instead of surfacing as an
unretrieved task exception.
"""

import asyncio
import json
import logging
from typing import Optional, Protocol

from pydantic import ValidationError as SchemaError

from backoffice.models import OrderLineItem, PendingCart
from backoffice.schemas import CartDocument
from backoffice.services.cart.base import BaseCartBackend

logger = logging.getLogger(__name__)


class CartSyncTarget(Protocol):
    """Anything able to push a cart's item list to its remote order."""

    async def sync_cart(self, cart: PendingCart) -> None:
        ...


class PendingCartStore:
    """
    Per-table pending carts over a durable backend.

    Example:
        >>> store = PendingCartStore(FileCartBackend("data/carts"))
        >>> cart = await store.add_or_increment(5, item, 1)
        >>> cart.total_amount
        100000.0
    """

    def __init__(
        self,
        backend: BaseCartBackend,
        sync_service: Optional[CartSyncTarget] = None,
    ):
        self.backend = backend
        self.sync_service = sync_service
        self._sync_tasks: set[asyncio.Task] = set()
        self._sync_locks: dict[int, asyncio.Lock] = {}

    @property
    def backend_name(self) -> str:
        return self.backend.backend_name

    def attach_sync_service(self, sync_service: CartSyncTarget) -> None:
        """Wire the service that receives reorder syncs."""
        self.sync_service = sync_service

    # =========================================================================
    # DURABLE ACCESS
    # =========================================================================

    def load(self, table_id: int) -> Optional[PendingCart]:
        """
        Read a table's cart from the backend.

        A document that cannot be parsed is logged and treated as absent.
        The total is always recomputed from the stored items.
        """
        raw = self.backend.get(table_id)
        if raw is None:
            return None
        try:
            document = CartDocument.model_validate(json.loads(raw))
        except (json.JSONDecodeError, SchemaError) as e:
            logger.warning(f"Ignoring corrupt cart document of table {table_id}: {e}")
            return None
        if document.table_id != table_id:
            logger.warning(
                f"Cart document of table {table_id} claims table {document.table_id}; ignoring"
            )
            return None
        return document.to_cart()

    def persist(self, cart: PendingCart) -> PendingCart:
        """Write the full cart to the backend, replacing the stored one."""
        document = CartDocument.from_cart(cart)
        self.backend.set(cart.table_id, document.model_dump_json())
        return cart

    def clear(self, table_id: int) -> bool:
        """Remove a table's cart entry. Returns True if one existed."""
        removed = self.backend.delete(table_id)
        if removed:
            logger.info(f"Cleared pending cart of table {table_id}")
        return removed

    def has_pending_items(self, table_id: int) -> bool:
        cart = self.load(table_id)
        return cart is not None and not cart.is_empty

    def table_ids(self) -> list[int]:
        return self.backend.table_ids()

    def health_check(self) -> bool:
        return self.backend.health_check()

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def add_or_increment(
        self,
        table_id: int,
        item: OrderLineItem,
        delta: int = 1,
    ) -> PendingCart:
        """
        Add a product to the table's cart or change its quantity.

        Args:
            table_id: Table owning the cart
            item: Product to add; only its identity and display fields are used
            delta: Quantity change. A change bringing the line to zero or
                below removes it. A non-positive change on a product that
                is not in the cart does nothing.

        Returns:
            PendingCart: The cart after the mutation
        """
        cart = self.load(table_id)
        existing = cart.find(item.product_id) if cart else None

        if existing is None:
            if delta <= 0:
                return cart or PendingCart(table_id=table_id)
            if cart is None:
                cart = PendingCart(table_id=table_id)
            cart.items.append(
                OrderLineItem(
                    product_id=item.product_id,
                    name=item.name,
                    unit_price=item.unit_price,
                    quantity=delta,
                    image_ref=item.image_ref,
                    availability_label=item.availability_label,
                )
            )
        elif existing.quantity + delta <= 0:
            cart.items.remove(existing)
        else:
            existing.quantity = max(1, existing.quantity + delta)

        self.persist(cart)
        logger.debug(
            f"Table {table_id}: product {item.product_id} delta {delta:+d}, "
            f"total {cart.total_amount:.0f}"
        )
        self._schedule_sync(cart)
        return cart

    async def remove(self, table_id: int, product_id: int) -> PendingCart:
        """
        Drop a product line from the table's cart.

        Removing the last line keeps an empty entry so the cart stays
        linked to its remote order.
        """
        cart = self.load(table_id)
        if cart is None:
            return PendingCart(table_id=table_id)
        existing = cart.find(product_id)
        if existing is None:
            return cart

        cart.items.remove(existing)
        self.persist(cart)
        logger.debug(f"Table {table_id}: removed product {product_id}")
        self._schedule_sync(cart)
        return cart

    # =========================================================================
    # REORDER SYNC
    # =========================================================================

    def _schedule_sync(self, cart: PendingCart) -> None:
        if cart.order_id is None or self.sync_service is None:
            return
        task = asyncio.get_running_loop().create_task(self._run_sync(cart.table_id))
        self._sync_tasks.add(task)
        task.add_done_callback(self._sync_tasks.discard)

    async def _run_sync(self, table_id: int) -> None:
        # Syncs of a table run one at a time and send the cart as stored now
        lock = self._sync_locks.setdefault(table_id, asyncio.Lock())
        async with lock:
            cart = None
            try:
                cart = self.load(table_id)
                if cart is None or cart.order_id is None:
                    return
                await self.sync_service.sync_cart(cart)
            except Exception as e:
                order_id = cart.order_id if cart else None
                logger.error(
                    f"Background sync of order {order_id} (table {table_id}) failed: {e}"
                )

    @property
    def pending_syncs(self) -> int:
        return len(self._sync_tasks)

    async def drain(self) -> None:
        """Wait for every outstanding background sync."""
        while self._sync_tasks:
            await asyncio.gather(*list(self._sync_tasks), return_exceptions=True)
