"""
HTTP Order Store Implementation

Production client for the restaurant's order store REST API.
Used when ENV_MODE=production or ENV_MODE=staging.

Endpoints consumed:
    GET    /api/menu-items
    GET    /api/tables                     POST /api/tables
    PUT    /api/tables/{tableId}
    GET    /api/orders?tableId=&status=    POST /api/orders
    GET    /api/order-items/order/{orderId}
    POST   /api/order-items                DELETE /api/order-items/{id}
    POST   /api/order-items/order/{orderId}/send
    POST   /api/order-items/order/{orderId}/send-now

Calls are made once; there is no automatic retry. Transport errors and
non-2xx answers become NetworkFailure, unparseable bodies InconsistentState.

Version: 1.0.0
"""

import logging
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from order_entry.core.config import get_settings
from order_entry.core.exceptions import InconsistentState, NetworkFailure
from order_entry.schemas import (
    MenuItem,
    Order,
    OrderCreate,
    OrderItem,
    OrderItemCreate,
    OrderStatus,
    SentItem,
    Table,
    TableCreate,
    TableStatus,
)
from order_entry.services.store.base import BaseOrderStore

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class HttpOrderStore(BaseOrderStore):
    """
    Order store client over HTTP (httpx.AsyncClient).

    Configuration:
        STORE_BASE_URL and STORE_TIMEOUT_SECONDS from settings, unless
        passed explicitly. A prepared client can be injected (tests use an
        httpx.MockTransport).

    Example:
        >>> store = HttpOrderStore(base_url="http://pos-backend:8080")
        >>> tables = await store.get_tables()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self._base_url = (base_url or settings.store_base_url).rstrip("/")

        if not self._base_url:
            raise ValueError(
                "STORE_BASE_URL is required for production mode. "
                "Set it in your .env file or environment variables."
            )

        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout if timeout is not None else settings.store_timeout_seconds,
            headers={"Content-Type": "application/json"},
        )

        logger.info(f"HttpOrderStore initialized ({self._base_url})")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "http"

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        **kwargs: Any,
    ) -> Any:
        """
        Perform one request and return the decoded JSON body (None if empty).

        Raises:
            NetworkFailure: on transport errors or non-2xx responses
            InconsistentState: if the body is not valid JSON
        """
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Store timeout during {operation}: {e}")
            raise NetworkFailure(f"Order store timed out ({operation})", operation=operation, cause=e)
        except httpx.HTTPError as e:
            logger.error(f"Store transport error during {operation}: {e}")
            raise NetworkFailure(f"Order store unreachable ({operation})", operation=operation, cause=e)

        if response.is_error:
            logger.error(
                f"Store rejected {operation}: {response.status_code} {response.text[:200]}"
            )
            raise NetworkFailure(
                f"Order store returned {response.status_code} ({operation})",
                operation=operation,
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise InconsistentState(f"Order store sent invalid JSON ({operation})", cause=e)

    @staticmethod
    def _parse(model: type[ModelT], payload: Any, operation: str) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise InconsistentState(f"Unexpected {model.__name__} payload ({operation})", cause=e)

    @staticmethod
    def _parse_list(model: type[ModelT], payload: Any, operation: str) -> list[ModelT]:
        try:
            return TypeAdapter(list[model]).validate_python(payload or [])
        except ValidationError as e:
            raise InconsistentState(f"Unexpected {model.__name__} list ({operation})", cause=e)

    # =========================================================================
    # STORE CONTRACT
    # =========================================================================

    async def list_menu_items(self) -> list[MenuItem]:
        payload = await self._request("GET", "/api/menu-items", "list_menu_items")
        return self._parse_list(MenuItem, payload, "list_menu_items")

    async def get_tables(self) -> list[Table]:
        payload = await self._request("GET", "/api/tables", "get_tables")
        return self._parse_list(Table, payload, "get_tables")

    async def create_table(self, table: TableCreate) -> Table:
        payload = await self._request("POST", "/api/tables", "create_table", json=table.to_wire())
        return self._parse(Table, payload, "create_table")

    async def update_table(self, table_id: int, status: TableStatus) -> Table:
        payload = await self._request(
            "PUT",
            f"/api/tables/{table_id}",
            "update_table",
            json={"status": TableStatus(status).value},
        )
        return self._parse(Table, payload, "update_table")

    async def get_orders(
        self,
        table_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
    ) -> list[Order]:
        params: dict[str, Any] = {}
        if table_id is not None:
            params["tableId"] = table_id
        if status is not None:
            params["status"] = OrderStatus(status).value
        payload = await self._request("GET", "/api/orders", "get_orders", params=params)
        orders = self._parse_list(Order, payload, "get_orders")
        # The store may ignore filters it does not support.
        return [
            order for order in orders
            if (table_id is None or order.table_id == table_id)
            and (status is None or order.status == status)
        ]

    async def create_order(self, order: OrderCreate) -> Order:
        payload = await self._request("POST", "/api/orders", "create_order", json=order.to_wire())
        return self._parse(Order, payload, "create_order")

    async def get_order_items(self, order_id: int) -> list[OrderItem]:
        payload = await self._request(
            "GET", f"/api/order-items/order/{order_id}", "get_order_items"
        )
        return self._parse_list(OrderItem, payload, "get_order_items")

    async def create_order_item(self, item: OrderItemCreate) -> OrderItem:
        payload = await self._request(
            "POST", "/api/order-items", "create_order_item", json=item.to_wire()
        )
        return self._parse(OrderItem, payload, "create_order_item")

    async def delete_order_item(self, item_id: int) -> None:
        await self._request("DELETE", f"/api/order-items/{item_id}", "delete_order_item")

    async def send_draft_items(self, order_id: int) -> list[SentItem]:
        payload = await self._request(
            "POST", f"/api/order-items/order/{order_id}/send", "send_draft_items"
        )
        return self._parse_list(SentItem, payload, "send_draft_items")

    async def send_now(self, order_id: int) -> None:
        await self._request(
            "POST", f"/api/order-items/order/{order_id}/send-now", "send_now"
        )

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "/api/tables", "health_check")
            return True
        except NetworkFailure:
            return False

    async def aclose(self) -> None:
        await self._client.aclose()
