"""
Redis Cart Backend

Production cart storage. Each table's document is a Redis string under
``pending_order:<table_id>``, so every back-office terminal talking to the
same Redis sees the same pending carts.

Requirements:
    - REDIS_URL must point at a reachable Redis instance
"""

import logging
from typing import Optional

import redis

from backoffice.core.exceptions import StorageError
from backoffice.services.cart.base import BaseCartBackend

logger = logging.getLogger(__name__)

KEY_PREFIX = "pending_order:"


class RedisCartBackend(BaseCartBackend):
    """Redis-backed cart storage."""

    def __init__(self, url: Optional[str] = None, client: Optional[redis.Redis] = None):
        if client is None:
            if not url:
                raise ValueError("REDIS_URL is required for the Redis cart backend")
            client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=2)
        self._client = client

        logger.info("RedisCartBackend initialized")

    @property
    def backend_name(self) -> str:
        return "redis"

    @staticmethod
    def _key(table_id: int) -> str:
        return f"{KEY_PREFIX}{table_id}"

    def get(self, table_id: int) -> Optional[str]:
        try:
            value = self._client.get(self._key(table_id))
        except redis.RedisError as e:
            logger.error(f"Redis read failed for table {table_id}: {e}")
            raise StorageError(f"Cannot read cart of table {table_id}")
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, table_id: int, document: str) -> None:
        try:
            self._client.set(self._key(table_id), document)
        except redis.RedisError as e:
            logger.error(f"Redis write failed for table {table_id}: {e}")
            raise StorageError(f"Cannot write cart of table {table_id}")

    def delete(self, table_id: int) -> bool:
        try:
            return bool(self._client.delete(self._key(table_id)))
        except redis.RedisError as e:
            logger.error(f"Redis delete failed for table {table_id}: {e}")
            raise StorageError(f"Cannot delete cart of table {table_id}")

    def table_ids(self) -> list[int]:
        ids = []
        try:
            for key in self._client.scan_iter(match=f"{KEY_PREFIX}*"):
                if isinstance(key, bytes):
                    key = key.decode("utf-8")
                suffix = key[len(KEY_PREFIX):]
                if suffix.isdigit():
                    ids.append(int(suffix))
        except redis.RedisError as e:
            logger.error(f"Redis scan failed: {e}")
            raise StorageError("Cannot list pending carts")
        return sorted(ids)

    def health_check(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
