"""
Payment Coordinator

Drives a table's order to "paid".

Instant methods:
    validate → ensure order → mark paid → final sync → clear cart → free table

Asynchronous methods (QR bank transfer):
    begin    → ensure order, show QR, start polling the order every few seconds
    poll     → order observed paid: session confirmed, poll stops
    complete → final sync, record method and deposit, clear cart, free table

At most one session exists per table. Starting a session, switching method
or leaving the table cancels the previous poll and waits for it to stop.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from backoffice.core.config import Settings, get_settings
from backoffice.core.exceptions import (
    AuthError,
    BackendError,
    BackofficeError,
    NetworkError,
    PaymentStateError,
    ValidationError,
)
from backoffice.models import DepositStatus, OrderStatus, PaymentMethod, StaffUser
from backoffice.schemas import OrderUpdate
from backoffice.services.cart.store import PendingCartStore
from backoffice.services.orders.base import BaseOrderService
from backoffice.services.orders.lifecycle import reset_table_to_available
from backoffice.services.orders.state_machine import (
    InService,
    OrderEvent,
    state_from_cart,
    transition,
)
from backoffice.services.orders.sync import OrderSyncService, validate_items
from backoffice.services.payment.base import (
    PaymentAction,
    PaymentOutcome,
    PaymentSession,
    PollResult,
)
from backoffice.services.payment.qr import build_qr_payload

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class PaymentCoordinator:
    """
    Per-table payment flows over the order service and cart store.

    Example:
        >>> coordinator = get_payment_coordinator()
        >>> await coordinator.select_method(5, 4)       # SePay QR
        >>> outcome = await coordinator.confirm(5)       # session started
        >>> await coordinator.session(5).result          # PollResult.CONFIRMED
        >>> outcome = await coordinator.confirm(5)       # completed
    """

    def __init__(
        self,
        order_service: BaseOrderService,
        cart_store: PendingCartStore,
        sync_service: OrderSyncService,
        settings: Optional[Settings] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.order_service = order_service
        self.cart_store = cart_store
        self.sync_service = sync_service
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._selected: dict[int, PaymentMethod] = {}
        self._sessions: dict[int, PaymentSession] = {}

    # =========================================================================
    # METHODS
    # =========================================================================

    async def list_methods(self) -> list[PaymentMethod]:
        """Active payment methods only."""
        methods = await self.order_service.list_payment_methods()
        return [m for m in methods if m.is_active]

    async def select_method(self, table_id: int, method_id: int) -> PaymentMethod:
        """
        Choose the payment method of a table.

        Switching method stops any session running for the table.

        Raises:
            PaymentStateError: unknown or inactive method
        """
        methods = await self.list_methods()
        method = next((m for m in methods if m.id == method_id), None)
        if method is None:
            raise PaymentStateError(f"Payment method {method_id} is not available")

        await self.cancel(table_id)
        self._selected[table_id] = method
        logger.info(f"Table {table_id}: payment method set to {method.label}")
        return method

    def selected_method(self, table_id: int) -> Optional[PaymentMethod]:
        return self._selected.get(table_id)

    def _require_method(self, table_id: int) -> PaymentMethod:
        method = self._selected.get(table_id)
        if method is None:
            raise PaymentStateError(f"No payment method selected for table {table_id}")
        return method

    def session(self, table_id: int) -> Optional[PaymentSession]:
        return self._sessions.get(table_id)

    # =========================================================================
    # INSTANT PATH
    # =========================================================================

    async def confirm_instant(
        self,
        table_id: int,
        user: Optional[StaffUser] = None,
    ) -> PaymentOutcome:
        """
        Settle the table's cart with an instant method.

        Raises:
            PaymentStateError: no method selected, or the method is asynchronous
            ValidationError: empty cart or invalid lines
        """
        method = self._require_method(table_id)
        if method.is_asynchronous:
            raise PaymentStateError(f"{method.label} is confirmed by the bank, not instantly")

        cart = self.cart_store.load(table_id)
        if cart is None or cart.is_empty:
            raise ValidationError(f"Table {table_id} has no pending items")
        validate_items(cart.items)
        state = state_from_cart(cart)
        total = cart.total_amount

        order_id = cart.order_id
        try:
            order_id = await self.sync_service.create_or_get_order(table_id, user)
            transition(state, OrderEvent.PAY, order_id=order_id)
            await self.order_service.update_order(
                order_id,
                OrderUpdate(
                    status=OrderStatus.IN_SERVICE,
                    payment_method_id=method.id,
                    deposit_status=DepositStatus.PAID,
                    total_payment=total,
                ),
            )
            await self.sync_service.sync_items(order_id, cart.items)
            await self.sync_service.update_total(order_id, total)
        except (NetworkError, BackendError) as e:
            logger.error(f"Table {table_id}: instant payment failed: {e}")
            return PaymentOutcome(
                success=False,
                action=PaymentAction.FAILED,
                message=f"Payment failed: {e.message}",
                order_id=order_id,
            )

        await self._finalize_table(table_id)
        logger.info(f"Table {table_id}: order {order_id} paid by {method.label} ({total:.0f})")
        return PaymentOutcome(
            success=True,
            action=PaymentAction.INSTANT_PAID,
            message=f"Paid {total:.0f} by {method.label}",
            order_id=order_id,
        )

    # =========================================================================
    # ASYNCHRONOUS PATH
    # =========================================================================

    async def begin(self, table_id: int, user: Optional[StaffUser] = None) -> PaymentSession:
        """
        Start an asynchronous payment for the table.

        Any previous session of the table is cancelled first.

        Raises:
            PaymentStateError: no method selected, or the method is instant
            ValidationError: empty cart or invalid lines
        """
        method = self._require_method(table_id)
        if not method.is_asynchronous:
            raise PaymentStateError(f"{method.label} does not use bank confirmation")

        await self.cancel(table_id)

        cart = self.cart_store.load(table_id)
        if cart is None or cart.is_empty:
            raise ValidationError(f"Table {table_id} has no pending items")
        validate_items(cart.items)

        order_id = await self.sync_service.create_or_get_order(table_id, user)
        amount = cart.total_amount

        session = PaymentSession(
            table_id=table_id,
            order_id=order_id,
            method_id=method.id,
            amount=amount,
            qr_payload=build_qr_payload(self.settings, amount, table_id),
            payment_url=self.settings.payment_link_url,
        )
        loop = asyncio.get_running_loop()
        session.result = loop.create_future()

        # Register before awaiting anything so a concurrent begin sees it
        previous = self._sessions.pop(table_id, None)
        self._sessions[table_id] = session
        session.task = loop.create_task(self._poll(session))
        if previous is not None:
            await self._stop(previous)

        logger.info(
            f"Table {table_id}: payment session started for order {order_id} "
            f"(amount={amount:.0f})"
        )
        return session

    async def _poll(self, session: PaymentSession) -> None:
        interval = self.settings.payment_poll_interval
        timeout = self.settings.payment_poll_timeout
        elapsed = 0.0
        try:
            while True:
                await self._sleep(interval)
                elapsed += interval

                try:
                    record = await self.order_service.get_order(session.order_id)
                except (NetworkError, BackendError, AuthError) as e:
                    logger.warning(f"Order {session.order_id}: status poll failed: {e}")
                    record = None

                if record is not None and record.status == OrderStatus.IN_SERVICE:
                    session.confirmed = True
                    session.resolve(PollResult.CONFIRMED)
                    logger.info(
                        f"Table {session.table_id}: payment of order {session.order_id} confirmed"
                    )
                    return

                if elapsed >= timeout:
                    session.resolve(PollResult.TIMED_OUT)
                    logger.warning(
                        f"Table {session.table_id}: payment of order {session.order_id} "
                        f"not confirmed after {timeout:.0f}s; polling stopped"
                    )
                    return
        except asyncio.CancelledError:
            session.resolve(PollResult.CANCELLED)
            raise

    async def _stop(self, session: PaymentSession) -> None:
        task = session.task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        session.resolve(PollResult.CANCELLED)

    async def cancel(self, table_id: int) -> bool:
        """
        Stop the table's session and wait for its poll to end.

        Returns:
            bool: True if a session existed
        """
        session = self._sessions.pop(table_id, None)
        if session is None:
            return False
        await self._stop(session)
        logger.info(f"Table {table_id}: payment session closed ({session.status})")
        return True

    async def complete(self, table_id: int) -> PaymentOutcome:
        """
        Finalize a confirmed asynchronous payment.

        Only valid once the session is confirmed; a second call does nothing.

        Raises:
            PaymentStateError: no session, or not confirmed yet
        """
        session = self._sessions.get(table_id)
        if session is None:
            raise PaymentStateError(f"No payment in progress for table {table_id}")
        if session.completed or session.completing:
            return PaymentOutcome(
                success=True,
                action=PaymentAction.ALREADY_COMPLETED,
                message="Payment already completed",
                order_id=session.order_id,
                session=session,
            )
        if not session.confirmed:
            raise PaymentStateError(f"Payment of table {table_id} is not confirmed yet")

        transition(InService(order_id=session.order_id), OrderEvent.COMPLETE)
        session.completing = True
        cart = self.cart_store.load(table_id)
        try:
            if cart is not None and not cart.is_empty:
                await self.sync_service.sync_items(session.order_id, cart.items)
                await self.sync_service.update_total(session.order_id, cart.total_amount)
            await self.order_service.update_order(
                session.order_id,
                OrderUpdate(
                    payment_method_id=session.method_id,
                    deposit_status=DepositStatus.PAID,
                ),
            )
        except (NetworkError, BackendError) as e:
            session.completing = False
            logger.error(f"Table {table_id}: payment finalization failed: {e}")
            return PaymentOutcome(
                success=False,
                action=PaymentAction.FAILED,
                message=f"Could not finalize payment: {e.message}",
                order_id=session.order_id,
                session=session,
            )
        except BackofficeError:
            session.completing = False
            raise

        await self._finalize_table(table_id)
        session.completed = True
        session.completing = False
        logger.info(f"Table {table_id}: order {session.order_id} payment completed")
        return PaymentOutcome(
            success=True,
            action=PaymentAction.COMPLETED,
            message=f"Paid {session.amount:.0f} by bank transfer",
            order_id=session.order_id,
            session=session,
        )

    # =========================================================================
    # UNIFIED ACTION
    # =========================================================================

    async def confirm(self, table_id: int, user: Optional[StaffUser] = None) -> PaymentOutcome:
        """
        The single "complete payment" action.

        Instant methods settle immediately. For asynchronous methods the
        first call opens a session, later calls report that confirmation is
        still pending, and the call after confirmation finalizes it.
        """
        session = self._sessions.get(table_id)
        if session is not None and (session.completed or session.confirmed):
            return await self.complete(table_id)

        method = self._require_method(table_id)
        if not method.is_asynchronous:
            return await self.confirm_instant(table_id, user)

        if session is not None and session.is_live:
            return PaymentOutcome(
                success=False,
                action=PaymentAction.AWAITING_CONFIRMATION,
                message="Waiting for the bank to confirm the transfer",
                order_id=session.order_id,
                session=session,
            )

        try:
            session = await self.begin(table_id, user)
        except (NetworkError, BackendError) as e:
            logger.error(f"Table {table_id}: could not start payment: {e}")
            return PaymentOutcome(
                success=False,
                action=PaymentAction.FAILED,
                message=f"Could not start payment: {e.message}",
            )
        return PaymentOutcome(
            success=True,
            action=PaymentAction.SESSION_STARTED,
            message="Scan the QR code to pay",
            order_id=session.order_id,
            session=session,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _finalize_table(self, table_id: int) -> None:
        self.cart_store.clear(table_id)
        self._selected.pop(table_id, None)
        try:
            await reset_table_to_available(self.order_service, table_id)
        except BackofficeError as e:
            logger.warning(f"Table {table_id}: paid, but table reset failed: {e}")

    async def shutdown(self) -> None:
        """Cancel every session; used on application shutdown."""
        for table_id in list(self._sessions):
            await self.cancel(table_id)
