"""
Order Service Abstract Base Class

Defines the interface contract of the remote order service: the back-office
API that owns orders, tables and payment methods. Both MockOrderService and
HttpOrderService implement it, so the sync, lifecycle and payment code runs
unchanged against either.

Error contract (see backoffice.core.exceptions):
    - NetworkError: the API could not be reached
    - AuthError: the API rejected the credentials
    - BackendError: the API answered with a non-success status
"""

from abc import ABC, abstractmethod

from backoffice.models import OrderRecord, PaymentMethod, Table
from backoffice.schemas import OrderCreate, OrderUpdate, SyncItem, TableUpdate


class BaseOrderService(ABC):
    """
    Abstract base class for remote order services.

    Example:
        >>> service = get_order_service()  # Mock or HTTP
        >>> record = await service.create_order(payload)
        >>> await service.sync_items(record.id, [SyncItem(product_id=7, quantity=2)])
        >>> await service.update_order(record.id, OrderUpdate(total_payment=200000))
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the order service provider.

        Returns:
            str: Provider name (e.g., "mock", "http")
        """
        pass

    @abstractmethod
    async def create_order(self, payload: OrderCreate) -> OrderRecord:
        """
        Create a remote order.

        Returns:
            OrderRecord: The created order; at least ``id`` and ``created_at``
        """
        pass

    @abstractmethod
    async def update_order(self, order_id: int, update: OrderUpdate) -> None:
        """Apply a partial update to an order."""
        pass

    @abstractmethod
    async def sync_items(self, order_id: int, items: list[SyncItem]) -> None:
        """Replace the whole item list of an order."""
        pass

    @abstractmethod
    async def get_order(self, order_id: int) -> OrderRecord:
        """Read an order."""
        pass

    @abstractmethod
    async def get_table(self, table_id: int) -> Table:
        """Read a table."""
        pass

    @abstractmethod
    async def update_table(self, table_id: int, update: TableUpdate) -> None:
        """Write every field of a table."""
        pass

    @abstractmethod
    async def list_payment_methods(self) -> list[PaymentMethod]:
        """Read all configured payment methods, active or not."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the order service is reachable.

        Returns:
            bool: True if service is operational
        """
        pass

    async def aclose(self) -> None:
        """Release network resources. Nothing to release by default."""
        return None
