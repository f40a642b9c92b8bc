"""
Order Store Abstract Base Class

Defines the interface contract for the restaurant's order/table/menu store.
Both MockOrderStore and HttpOrderStore implement these methods, so the
composition core behaves identically whichever one is active.

Design Pattern: Strategy Pattern
    - In-memory store for development and tests
    - HTTP store for a live floor
    - The core depends only on this contract

Every method raises NetworkFailure when the store cannot be reached or
rejects the call, and InconsistentState when it answers with data that
does not parse.

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from typing import Optional

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


class BaseOrderStore(ABC):
    """
    Abstract base class for order store clients.

    Example:
        >>> store = get_order_store()  # Mock or HTTP
        >>> order = await store.create_order(OrderCreate(table_id=3))
        >>> sent = await store.send_draft_items(order.id)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the store provider name (e.g. "mock", "http")."""
        pass

    # =========================================================================
    # MENU
    # =========================================================================

    @abstractmethod
    async def list_menu_items(self) -> list[MenuItem]:
        """Return the full menu catalog."""
        pass

    # =========================================================================
    # TABLES
    # =========================================================================

    @abstractmethod
    async def get_tables(self) -> list[Table]:
        """Return every table on the floor, quick-order tables included."""
        pass

    @abstractmethod
    async def create_table(self, table: TableCreate) -> Table:
        """Create a table and return it with its assigned id."""
        pass

    @abstractmethod
    async def update_table(self, table_id: int, status: TableStatus) -> Table:
        """Change a table's status."""
        pass

    # =========================================================================
    # ORDERS
    # =========================================================================

    @abstractmethod
    async def get_orders(
        self,
        table_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
    ) -> list[Order]:
        """
        List orders, optionally filtered.

        Args:
            table_id: Only orders against this table
            status: Only orders in this status
        """
        pass

    @abstractmethod
    async def create_order(self, order: OrderCreate) -> Order:
        """Open a new order."""
        pass

    # =========================================================================
    # ORDER ITEMS
    # =========================================================================

    @abstractmethod
    async def get_order_items(self, order_id: int) -> list[OrderItem]:
        """Return every item of an order."""
        pass

    @abstractmethod
    async def create_order_item(self, item: OrderItemCreate) -> OrderItem:
        """Persist a new (draft) item."""
        pass

    @abstractmethod
    async def delete_order_item(self, item_id: int) -> None:
        """Delete an item that is still inside its edit window."""
        pass

    @abstractmethod
    async def send_draft_items(self, order_id: int) -> list[SentItem]:
        """
        Release every draft item of the order into its grace period.

        Returns:
            The items actually transmitted, each with its release expiry.
        """
        pass

    @abstractmethod
    async def send_now(self, order_id: int) -> None:
        """Release the order's limbo items immediately, skipping the grace period."""
        pass

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the store.

        Returns:
            bool: True if the store is reachable
        """
        pass

    async def aclose(self) -> None:
        """Release any held connections."""
        return None
