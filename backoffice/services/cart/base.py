"""
Cart Backend Abstract Base Class

Defines the storage contract behind the pending cart store. A backend is a
plain keyed document store: the table id is the index and the value is the
serialized cart document of that table. Backends know nothing about carts;
PendingCartStore owns (de)serialization and cart semantics.

Implementations:
    - FileCartBackend: one JSON file per table, guarded by a file lock
    - RedisCartBackend: one Redis string per table

All methods are synchronous. A cart write must land in durable storage
before the caller dispatches any network call for that mutation.
"""

from abc import ABC, abstractmethod
from typing import Optional


class BaseCartBackend(ABC):
    """
    Abstract base class for durable cart storage.

    Example:
        >>> backend = get_cart_backend()
        >>> backend.set(5, '{"table_id": 5, ...}')
        >>> backend.get(5)
        '{"table_id": 5, ...}'
        >>> backend.delete(5)
        True
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """
        Return the name of the storage backend.

        Returns:
            str: Backend name (e.g., "file", "redis")
        """
        pass

    @abstractmethod
    def get(self, table_id: int) -> Optional[str]:
        """
        Read the stored document of a table.

        Returns:
            The raw document, or None when the table has no entry
        """
        pass

    @abstractmethod
    def set(self, table_id: int, document: str) -> None:
        """Replace the stored document of a table."""
        pass

    @abstractmethod
    def delete(self, table_id: int) -> bool:
        """
        Remove the entry of a table.

        Returns:
            bool: True if an entry existed
        """
        pass

    @abstractmethod
    def table_ids(self) -> list[int]:
        """List the ids of all tables that currently have an entry."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """
        Verify the storage is reachable and writable.

        Returns:
            bool: True if operational
        """
        pass
