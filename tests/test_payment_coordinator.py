import asyncio

import pytest

from backoffice.core.config import Settings
from backoffice.core.exceptions import NetworkError, PaymentStateError, ValidationError
from backoffice.models import DepositStatus, OrderStatus, TableStatus
from backoffice.services.orders.mock import MockOrderService
from backoffice.services.orders.sync import OrderSyncService
from backoffice.services.orders.state_machine import Completed, InService, OrderEvent
from backoffice.services.payment import coordinator as coordinator_module
from backoffice.services.payment.base import PaymentAction, PollResult
from backoffice.services.payment.coordinator import PaymentCoordinator
from backoffice.services.payment.qr import build_qr_payload

from tests.conftest import PHO, FakeSleep

CASH = 1
SEPAY_QR = 4
VOUCHER = 5


class ScriptedPollService(MockOrderService):
    """
    Answers status polls from a script: "unpaid", "fail" or "paid".

    "paid" marks the order paid before answering, as the bank would.
    """

    def __init__(self, script, **kwargs):
        super().__init__(**kwargs)
        self.script = list(script)
        self.polls = 0

    async def get_order(self, order_id):
        self.polls += 1
        step = self.script[min(self.polls, len(self.script)) - 1]
        if step == "fail":
            self.calls.append(("get_order", order_id))
            raise NetworkError("poll failed")
        if step == "paid":
            self.mark_paid(order_id)
        return await super().get_order(order_id)


def build_coordinator(service, store, sleep, **settings):
    sync = OrderSyncService(service, store)
    store.attach_sync_service(sync)
    config = Settings(
        payment_poll_interval=settings.get("interval", 3.0),
        payment_poll_timeout=settings.get("timeout", 600.0),
    )
    return PaymentCoordinator(service, store, sync, settings=config, sleep=sleep)


async def wait_result(session):
    return await asyncio.wait_for(asyncio.shield(session.result), timeout=2)


class TestMethods:
    async def test_only_active_methods_are_listed(self, coordinator):
        methods = await coordinator.list_methods()
        ids = [m.id for m in methods]
        assert VOUCHER not in ids
        by_id = {m.id: m for m in methods}
        assert by_id[SEPAY_QR].is_asynchronous
        assert not by_id[CASH].is_asynchronous

    async def test_inactive_method_cannot_be_selected(self, coordinator):
        with pytest.raises(PaymentStateError):
            await coordinator.select_method(5, VOUCHER)
        assert coordinator.selected_method(5) is None

    async def test_confirm_without_method(self, coordinator, store):
        await store.add_or_increment(5, PHO, 1)
        with pytest.raises(PaymentStateError):
            await coordinator.confirm(5)


class TestInstantPayment:
    async def test_instant_payment_settles_and_frees_table(self, coordinator, store, order_service):
        order_service.set_table_status(5, TableStatus.OCCUPIED)
        await store.add_or_increment(5, PHO, 2)
        await coordinator.select_method(5, CASH)

        outcome = await coordinator.confirm(5)

        assert outcome.success
        assert outcome.action == PaymentAction.INSTANT_PAID
        record = order_service.orders[outcome.order_id]
        assert record.status == OrderStatus.IN_SERVICE
        assert record.deposit_status == DepositStatus.PAID
        assert record.payment_method_id == CASH
        assert record.total_payment == 200000
        assert order_service.order_items[outcome.order_id][0].quantity == 2
        assert store.load(5) is None
        assert order_service.tables[5].persisted_status == TableStatus.AVAILABLE

    async def test_empty_cart_is_rejected_before_any_call(self, coordinator, order_service):
        await coordinator.select_method(5, CASH)
        calls_before = len(order_service.calls)
        with pytest.raises(ValidationError):
            await coordinator.confirm(5)
        assert len(order_service.calls) == calls_before

    async def test_failure_keeps_cart(self, coordinator, store, order_service):
        await store.add_or_increment(5, PHO, 1)
        await coordinator.select_method(5, CASH)
        order_service.failure_rate = 1.0

        outcome = await coordinator.confirm(5)

        assert not outcome.success
        assert outcome.action == PaymentAction.FAILED
        assert "Payment failed" in outcome.message
        assert store.load(5).find(PHO.product_id).quantity == 1

    async def test_table_reset_failure_does_not_fail_payment(self, coordinator, store, order_service):
        await store.add_or_increment(5, PHO, 1)
        await coordinator.select_method(5, CASH)

        async def broken_update_table(table_id, update):
            raise NetworkError("table endpoint down")

        order_service.update_table = broken_update_table
        outcome = await coordinator.confirm(5)

        assert outcome.success
        assert store.load(5) is None


class TestAsyncPayment:
    async def test_paid_on_third_poll(self, store):
        sleep = FakeSleep()
        service = ScriptedPollService(["unpaid", "unpaid", "paid"])
        coordinator = build_coordinator(service, store, sleep)
        await store.add_or_increment(5, PHO, 2)
        await coordinator.select_method(5, SEPAY_QR)

        session = await coordinator.begin(5)

        assert session.table_id == 5
        assert session.amount == 200000
        assert "amount=200000" in session.qr_payload
        assert "table+5" in session.qr_payload
        assert not session.confirmed

        assert await wait_result(session) == PollResult.CONFIRMED
        await asyncio.sleep(0)
        assert session.confirmed
        assert session.task.done()
        assert sleep.calls == [3.0, 3.0, 3.0]
        assert service.polls == 3

    async def test_qr_payload_is_deterministic(self, payment_settings):
        first = build_qr_payload(payment_settings, 200000, 5)
        assert first == build_qr_payload(payment_settings, 200000.0, 5)
        assert first.startswith(payment_settings.qr_image_base_url + "?")
        assert "acc=" + payment_settings.qr_bank_account in first

    async def test_poll_errors_are_swallowed(self, store):
        service = ScriptedPollService(["fail", "fail", "paid"])
        coordinator = build_coordinator(service, store, FakeSleep())
        await store.add_or_increment(5, PHO, 1)
        await coordinator.select_method(5, SEPAY_QR)

        session = await coordinator.begin(5)

        assert await wait_result(session) == PollResult.CONFIRMED
        assert service.polls == 3

    async def test_poll_times_out(self, store):
        sleep = FakeSleep()
        service = ScriptedPollService(["unpaid"])
        coordinator = build_coordinator(service, store, sleep, interval=3.0, timeout=9.0)
        await store.add_or_increment(5, PHO, 1)
        await coordinator.select_method(5, SEPAY_QR)

        session = await coordinator.begin(5)

        assert await wait_result(session) == PollResult.TIMED_OUT
        assert sleep.calls == [3.0, 3.0, 3.0]
        assert not session.confirmed
        assert session.status == "timed_out"

    async def test_new_session_cancels_previous(self, store):
        service = ScriptedPollService(["unpaid"])
        coordinator = build_coordinator(service, store, FakeSleep(), timeout=10_000.0)
        await store.add_or_increment(5, PHO, 1)
        await coordinator.select_method(5, SEPAY_QR)

        first = await coordinator.begin(5)
        second = await coordinator.begin(5)

        assert await wait_result(first) == PollResult.CANCELLED
        assert first.task.done()
        assert coordinator.session(5) is second
        assert not second.task.done()
        assert first.order_id == second.order_id
        await coordinator.shutdown()
        assert await wait_result(second) == PollResult.CANCELLED

    async def test_switching_method_cancels_session(self, store):
        service = ScriptedPollService(["unpaid"])
        coordinator = build_coordinator(service, store, FakeSleep(), timeout=10_000.0)
        await store.add_or_increment(5, PHO, 1)
        await coordinator.select_method(5, SEPAY_QR)
        session = await coordinator.begin(5)

        await coordinator.select_method(5, CASH)

        assert await wait_result(session) == PollResult.CANCELLED
        assert coordinator.session(5) is None

    async def test_complete_requires_confirmation(self, store):
        service = ScriptedPollService(["unpaid"])
        coordinator = build_coordinator(service, store, FakeSleep(), timeout=10_000.0)
        await store.add_or_increment(5, PHO, 1)
        await coordinator.select_method(5, SEPAY_QR)
        await coordinator.begin(5)

        with pytest.raises(PaymentStateError):
            await coordinator.complete(5)
        assert store.load(5) is not None
        await coordinator.shutdown()

    async def test_complete_once(self, store):
        service = ScriptedPollService(["paid"])
        coordinator = build_coordinator(service, store, FakeSleep())
        service.set_table_status(5, TableStatus.OCCUPIED)
        await store.add_or_increment(5, PHO, 2)
        await coordinator.select_method(5, SEPAY_QR)
        session = await coordinator.begin(5)
        await wait_result(session)

        outcome = await coordinator.complete(5)

        assert outcome.success
        assert outcome.action == PaymentAction.COMPLETED
        assert session.completed
        record = service.orders[session.order_id]
        assert record.deposit_status == DepositStatus.PAID
        assert record.payment_method_id == SEPAY_QR
        assert record.total_payment == 200000
        assert store.load(5) is None
        assert service.tables[5].persisted_status == TableStatus.AVAILABLE

        calls_before = len(service.calls)
        again = await coordinator.complete(5)
        assert again.action == PaymentAction.ALREADY_COMPLETED
        assert len(service.calls) == calls_before

    async def test_complete_goes_through_the_state_machine(self, store, monkeypatch):
        seen = []
        real_transition = coordinator_module.transition

        def recording_transition(state, event, order_id=None):
            new_state = real_transition(state, event, order_id=order_id)
            seen.append((state, event, new_state))
            return new_state

        monkeypatch.setattr(coordinator_module, "transition", recording_transition)
        service = ScriptedPollService(["paid"])
        coordinator = build_coordinator(service, store, FakeSleep())
        await store.add_or_increment(5, PHO, 1)
        await coordinator.select_method(5, SEPAY_QR)
        session = await coordinator.begin(5)
        await wait_result(session)

        await coordinator.complete(5)

        order_id = session.order_id
        assert seen == [
            (InService(order_id=order_id), OrderEvent.COMPLETE, Completed(order_id=order_id))
        ]

    async def test_finalization_failure_keeps_cart(self, store):
        service = ScriptedPollService(["paid"])
        coordinator = build_coordinator(service, store, FakeSleep())
        await store.add_or_increment(5, PHO, 1)
        await coordinator.select_method(5, SEPAY_QR)
        session = await coordinator.begin(5)
        await wait_result(session)

        service.failure_rate = 1.0
        outcome = await coordinator.complete(5)

        assert not outcome.success
        assert outcome.action == PaymentAction.FAILED
        assert not session.completed
        assert store.load(5) is not None

        service.failure_rate = 0.0
        assert (await coordinator.complete(5)).action == PaymentAction.COMPLETED

    async def test_single_action_walks_the_flow(self, store):
        service = ScriptedPollService(["unpaid"])
        coordinator = build_coordinator(service, store, FakeSleep(), timeout=10_000.0)
        await store.add_or_increment(5, PHO, 1)
        await coordinator.select_method(5, SEPAY_QR)

        started = await coordinator.confirm(5)
        assert started.action == PaymentAction.SESSION_STARTED
        assert started.session.qr_payload

        waiting = await coordinator.confirm(5)
        assert waiting.action == PaymentAction.AWAITING_CONFIRMATION
        assert not waiting.success

        service.script = ["paid"]
        await wait_result(started.session)

        done = await coordinator.confirm(5)
        assert done.action == PaymentAction.COMPLETED
        assert (await coordinator.confirm(5)).action == PaymentAction.ALREADY_COMPLETED

    async def test_shutdown_cancels_all_sessions(self, store):
        service = ScriptedPollService(["unpaid"])
        coordinator = build_coordinator(service, store, FakeSleep(), timeout=10_000.0)
        sessions = []
        for table_id in (2, 3):
            await store.add_or_increment(table_id, PHO, 1)
            await coordinator.select_method(table_id, SEPAY_QR)
            sessions.append(await coordinator.begin(table_id))

        await coordinator.shutdown()

        for session in sessions:
            assert await wait_result(session) == PollResult.CANCELLED
            assert session.task.done()
        assert coordinator.session(2) is None
