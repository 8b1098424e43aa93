"""
Order Service Factory

Provides a single entry point for the remote order service and the
services built on it.

Usage:
    from backoffice.services.orders import get_order_service

    # Returns MockOrderService or HttpOrderService based on ENV_MODE
    orders = get_order_service()
    record = await orders.get_order(42)

Environment Switching:
    - ENV_MODE=development → MockOrderService (in-memory, no network)
    - ENV_MODE=staging/production → HttpOrderService (ORDER_API_BASE_URL)
"""

import logging
from functools import lru_cache

from backoffice.core.config import get_settings
from backoffice.services.cart import get_cart_store
from backoffice.services.orders.base import BaseOrderService
from backoffice.services.orders.http import HttpOrderService
from backoffice.services.orders.lifecycle import OrderLifecycleService
from backoffice.services.orders.mock import MockOrderService
from backoffice.services.orders.sync import OrderSyncService

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_service() -> BaseOrderService:
    """
    Get the configured order service instance.

    Returns:
        BaseOrderService: Mock in development, HTTP client otherwise

    Raises:
        ValueError: If real services are requested without ORDER_API_BASE_URL
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Order Service: Using MockOrderService (development mode)")
        return MockOrderService(
            min_latency=0.05,
            max_latency=0.2,
            default_capacity=settings.default_table_capacity,
            async_keywords=settings.async_payment_keywords_list,
        )

    logger.info(f"Order Service: Using HttpOrderService ({settings.env_mode.value} mode)")
    return HttpOrderService()


@lru_cache()
def get_sync_service() -> OrderSyncService:
    """Get the sync service and register it for reorder syncs of the cart store."""
    store = get_cart_store()
    sync = OrderSyncService(get_order_service(), store)
    store.attach_sync_service(sync)
    return sync


@lru_cache()
def get_lifecycle_service() -> OrderLifecycleService:
    return OrderLifecycleService(get_order_service(), get_cart_store(), get_sync_service())


def reset_order_services() -> None:
    """
    Clear the cached order services.

    The next call to get_order_service() will create a new instance.
    """
    get_lifecycle_service.cache_clear()
    get_sync_service.cache_clear()
    get_order_service.cache_clear()
    logger.debug("Order service cache cleared")


__all__ = [
    "get_order_service",
    "get_sync_service",
    "get_lifecycle_service",
    "reset_order_services",
    "BaseOrderService",
    "HttpOrderService",
    "MockOrderService",
    "OrderLifecycleService",
    "OrderSyncService",
]
