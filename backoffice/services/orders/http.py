"""
HTTP Order Service Implementation

Production client of the back-office order API, used when ENV_MODE is
staging or production.

Requirements:
    - ORDER_API_BASE_URL must point at the back-office API
    - ORDER_API_TOKEN is sent as a bearer token

Wire notes:
    - Responses may be wrapped in one or two ``data`` envelopes
    - A 401 drops the stored token; every later call goes out unauthenticated
      until a new token is set (global sign-out)
    - No retries; callers decide what a failure means
"""

import logging
from typing import Any, Optional

import httpx

from backoffice.core.config import get_settings
from backoffice.core.exceptions import AuthError, BackendError, NetworkError
from backoffice.models import OrderRecord, PaymentMethod, Table
from backoffice.schemas import (
    OrderCreate,
    OrderUpdate,
    RemoteOrder,
    RemotePaymentMethod,
    RemoteTable,
    SyncItem,
    TableUpdate,
)
from backoffice.services.orders.base import BaseOrderService

logger = logging.getLogger(__name__)


def unwrap_envelope(payload: Any, depth: int = 2) -> Any:
    """Strip up to ``depth`` nested ``{"data": ...}`` envelopes."""
    for _ in range(depth):
        if isinstance(payload, dict) and "data" in payload:
            payload = payload["data"]
        else:
            break
    return payload


class HttpOrderService(BaseOrderService):
    """
    Remote order service over HTTP.

    Example:
        >>> service = HttpOrderService()
        >>> record = await service.get_order(42)
        >>> record.status
        <OrderStatus.PLACED: 1>
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        prefix: Optional[str] = None,
        timeout: Optional[float] = None,
        async_keywords: Optional[list[str]] = None,
        default_capacity: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()

        base_url = base_url or settings.order_api_base_url
        if not base_url:
            raise ValueError("ORDER_API_BASE_URL is required for the HTTP order service")
        prefix = settings.order_api_prefix if prefix is None else prefix

        self._token = token if token is not None else settings.order_api_token
        self.async_keywords = async_keywords or settings.async_payment_keywords_list
        self.default_capacity = default_capacity or settings.default_table_capacity
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + prefix,
            timeout=timeout or settings.order_api_timeout,
            transport=transport,
        )

        logger.info(f"HttpOrderService initialized (base_url={self._client.base_url})")

    @property
    def provider_name(self) -> str:
        return "http"

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    # =========================================================================
    # REQUEST PLUMBING
    # =========================================================================

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error") or body.get("detail")
            if message:
                return str(message)
        return f"Order API returned HTTP {response.status_code}"

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, path, json=json, headers=self._headers()
            )
        except httpx.TransportError as e:
            logger.error(f"Order API unreachable ({method} {path}): {e}")
            raise NetworkError(f"Order API unreachable: {e}")

        if response.status_code == 401:
            logger.warning("Order API rejected credentials; dropping token")
            self._token = None
            raise AuthError(self._error_message(response))

        if not response.is_success:
            message = self._error_message(response)
            logger.error(f"Order API error ({method} {path}): {response.status_code} {message}")
            raise BackendError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return unwrap_envelope(response.json())
        except ValueError:
            raise BackendError("Order API returned a malformed body", response.status_code)

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def create_order(self, payload: OrderCreate) -> OrderRecord:
        body = await self._request("POST", "/orders", json=payload.to_wire())
        if not isinstance(body, dict) or "id" not in body:
            raise BackendError("Create order response carries no id")

        data = {
            "id_table": payload.table_id,
            "id_user": payload.user_id,
            "status": int(payload.status),
            "total_payment": payload.total_payment,
            "name_user": payload.customer_name,
            "phone": payload.phone,
        }
        data.update({k: v for k, v in body.items() if v is not None})
        record = RemoteOrder.model_validate(data).to_record()
        logger.info(f"Created order {record.id} for table {payload.table_id}")
        return record

    async def update_order(self, order_id: int, update: OrderUpdate) -> None:
        await self._request("PUT", f"/orders/{order_id}", json=update.to_wire())

    async def sync_items(self, order_id: int, items: list[SyncItem]) -> None:
        await self._request(
            "POST",
            f"/orders/{order_id}/sync-items",
            json={"items": [item.to_wire() for item in items]},
        )

    async def get_order(self, order_id: int) -> OrderRecord:
        body = await self._request("GET", f"/orders/{order_id}")
        if not isinstance(body, dict):
            raise BackendError(f"Order {order_id} response is not an object")
        return RemoteOrder.model_validate(body).to_record()

    # =========================================================================
    # TABLES
    # =========================================================================

    async def get_table(self, table_id: int) -> Table:
        body = await self._request("GET", f"/tables/{table_id}")
        if not isinstance(body, dict):
            raise BackendError(f"Table {table_id} response is not an object")
        return RemoteTable.model_validate(body).to_table(self.default_capacity)

    async def update_table(self, table_id: int, update: TableUpdate) -> None:
        await self._request("PATCH", f"/tables/{table_id}", json=update.to_wire())

    # =========================================================================
    # PAYMENT METHODS
    # =========================================================================

    async def list_payment_methods(self) -> list[PaymentMethod]:
        body = await self._request("GET", "/payment-method")
        if not isinstance(body, list):
            raise BackendError("Payment method response is not a list")
        return [
            RemotePaymentMethod.model_validate(entry).to_method(self.async_keywords)
            for entry in body
        ]

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "/payment-method")
            return True
        except (NetworkError, BackendError, AuthError) as e:
            logger.error(f"Order API health check failed: {e}")
            return False

    async def aclose(self) -> None:
        await self._client.aclose()
