"""
Payment Coordinator Factory

Usage:
    from backoffice.services.payment import get_payment_coordinator

    coordinator = get_payment_coordinator()
    await coordinator.select_method(5, 1)
    outcome = await coordinator.confirm(5)
"""

import logging
from functools import lru_cache

from backoffice.services.cart import get_cart_store
from backoffice.services.orders import get_order_service, get_sync_service
from backoffice.services.payment.base import (
    PaymentAction,
    PaymentOutcome,
    PaymentSession,
    PollResult,
)
from backoffice.services.payment.coordinator import PaymentCoordinator
from backoffice.services.payment.qr import build_qr_payload

logger = logging.getLogger(__name__)


@lru_cache()
def get_payment_coordinator() -> PaymentCoordinator:
    """Get the shared payment coordinator; sessions live as long as it does."""
    return PaymentCoordinator(get_order_service(), get_cart_store(), get_sync_service())


def reset_payment_coordinator() -> None:
    """
    Clear the cached coordinator.

    Call ``shutdown()`` on the old instance first if it may hold sessions.
    """
    get_payment_coordinator.cache_clear()
    logger.debug("Payment coordinator cache cleared")


__all__ = [
    "get_payment_coordinator",
    "reset_payment_coordinator",
    "build_qr_payload",
    "PaymentAction",
    "PaymentCoordinator",
    "PaymentOutcome",
    "PaymentSession",
    "PollResult",
]
