"""
Cart Store Factory

Single entry point for the pending cart store and its durable backend.

Usage:
    from backoffice.services.cart import get_cart_store

    store = get_cart_store()
    cart = await store.add_or_increment(5, item, 1)

Environment Switching:
    - ENV_MODE=development → FileCartBackend (JSON files under DATA_DIRECTORY)
    - ENV_MODE=staging/production → RedisCartBackend (REDIS_URL)
"""

import logging
from functools import lru_cache

from backoffice.core.config import get_settings
from backoffice.services.cart.base import BaseCartBackend
from backoffice.services.cart.file import FileCartBackend
from backoffice.services.cart.redis import RedisCartBackend
from backoffice.services.cart.store import PendingCartStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_cart_backend() -> BaseCartBackend:
    """
    Get the configured cart backend instance.

    Returns:
        BaseCartBackend: File backend in development, Redis otherwise
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Cart Backend: Using FileCartBackend (development mode)")
        return FileCartBackend(
            directory=settings.data_directory,
            lock_timeout=settings.cart_lock_timeout,
        )

    logger.info(f"Cart Backend: Using RedisCartBackend ({settings.env_mode.value} mode)")
    return RedisCartBackend(url=settings.redis_url)


@lru_cache()
def get_cart_store() -> PendingCartStore:
    """Get the shared pending cart store."""
    return PendingCartStore(get_cart_backend())


def reset_cart_store() -> None:
    """Clear the cached store and backend; the next call builds new ones."""
    get_cart_store.cache_clear()
    get_cart_backend.cache_clear()
    logger.debug("Cart store cache cleared")


__all__ = [
    "get_cart_backend",
    "get_cart_store",
    "reset_cart_store",
    "BaseCartBackend",
    "FileCartBackend",
    "RedisCartBackend",
    "PendingCartStore",
]
