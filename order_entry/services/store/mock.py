"""
Mock Order Store Implementation

Keeps tables, orders and items in memory and reproduces the order store's
own behaviour, so the full composition workflow runs without a backend.
Used in development mode (ENV_MODE=development) to:
    - Exercise the send / edit-window / send-now flow locally
    - Drive the API from scripts/simulate.py
    - Back the test suite

Behavior:
    - send_draft_items flips draft -> limbo and stamps expiry = now + window
    - send_now and release_expired flip limbo -> pending
    - Optional simulated latency and random failures (NetworkFailure)
    - Every call is recorded in `calls` for inspection

Version: 1.0.0
"""

import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from order_entry.core.exceptions import NetworkFailure
from order_entry.schemas import (
    ItemStatus,
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
from order_entry.timer import utc_now

logger = logging.getLogger(__name__)


class MockOrderStore(BaseOrderStore):
    """
    In-memory implementation of the order store.

    Attributes:
        failure_rate: Probability of a simulated NetworkFailure (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds
        failing_operations: Operation names that always fail
        calls: Ordered log of (operation, argument) pairs

    Example:
        >>> store = MockOrderStore()
        >>> table = await store.create_table(TableCreate(number="W3"))
        >>> table.id
        1
    """

    DEFAULT_MENU = [
        ("Avocado Toast", 11.50, "Savory"),
        ("Breakfast Burrito", 12.00, "Savory"),
        ("Belgian Waffle", 10.00, "Sweet"),
        ("Cinnamon Roll", 5.25, "Sweet"),
        ("Build Your Own Bowl", 13.00, "Build Your Own"),
        ("Truffle Fries", 7.00, "Snacks & Sides"),
        ("Fresh Orange Juice", 5.00, "Beverages"),
        ("Mimosa", 9.00, "Cocktails"),
        ("Latte", 4.50, "Coffee"),
        ("Cold Brew", 4.75, "Coffee"),
    ]

    def __init__(
        self,
        edit_window_seconds: int = 15,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        menu: Optional[Iterable[MenuItem]] = None,
        clock: Callable[[], datetime] = utc_now,
        failing_operations: Optional[Iterable[str]] = None,
    ):
        self.edit_window_seconds = edit_window_seconds
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.failing_operations = set(failing_operations or ())
        self.calls: list[tuple[str, object]] = []
        self._clock = clock

        self._menu: dict[int, MenuItem] = {}
        self._tables: dict[int, Table] = {}
        self._orders: dict[int, Order] = {}
        self._items: dict[int, OrderItem] = {}
        self._next_id = {"table": 1, "order": 1, "item": 1}

        if menu is None:
            menu = [
                MenuItem(id=index, name=name, price=price, category=category)
                for index, (name, price, category) in enumerate(self.DEFAULT_MENU, start=1)
            ]
        for menu_item in menu:
            self._menu[menu_item.id] = menu_item

        logger.info(
            f"MockOrderStore initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s, "
            f"menu={len(self._menu)} items)"
        )

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "mock"

    # =========================================================================
    # SIMULATION HELPERS
    # =========================================================================

    def _allocate(self, kind: str) -> int:
        value = self._next_id[kind]
        self._next_id[kind] += 1
        return value

    async def _simulate(self, operation: str, argument: object = None) -> None:
        """Record the call, wait out the simulated latency, maybe fail."""
        self.calls.append((operation, argument))
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))
        if operation in self.failing_operations or random.random() < self.failure_rate:
            logger.debug(f"Mock: {operation} failed (simulated)")
            raise NetworkFailure(f"Simulated store failure during {operation}", operation=operation)

    def call_count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def add_table(self, table: TableCreate, server_id: Optional[str] = None) -> Table:
        """Seed a table directly (floor plan setup)."""
        created = Table(id=self._allocate("table"), server_id=server_id, **table.model_dump())
        self._tables[created.id] = created
        return created

    def add_order(self, order: OrderCreate, created_at: Optional[datetime] = None) -> Order:
        """Seed an order directly, optionally backdated."""
        created = Order(
            id=self._allocate("order"),
            created_at=created_at or self._clock(),
            **order.model_dump(),
        )
        self._orders[created.id] = created
        return created

    def add_item(self, item: OrderItemCreate) -> OrderItem:
        """Seed an item directly, in any status."""
        created = OrderItem(id=self._allocate("item"), **item.model_dump())
        self._items[created.id] = created
        return created

    def item(self, item_id: int) -> Optional[OrderItem]:
        return self._items.get(item_id)

    def set_item_status(self, item_id: int, status: ItemStatus) -> OrderItem:
        """Stand-in for the preparation queue reporting progress."""
        updated = self._items[item_id].model_copy(update={"status": status})
        self._items[item_id] = updated
        return updated

    def release_expired(self, now: Optional[datetime] = None) -> list[OrderItem]:
        """Lock limbo items whose grace period ran out (the store's own sweep)."""
        now = now or self._clock()
        released = []
        for item in list(self._items.values()):
            if item.status == ItemStatus.LIMBO and item.release_expiry and item.release_expiry <= now:
                released.append(self.set_item_status(item.id, ItemStatus.PENDING))
        return released

    @property
    def menu(self) -> list[MenuItem]:
        return list(self._menu.values())

    @property
    def tables(self) -> list[Table]:
        return list(self._tables.values())

    @property
    def orders(self) -> list[Order]:
        return list(self._orders.values())

    # =========================================================================
    # STORE CONTRACT
    # =========================================================================

    async def list_menu_items(self) -> list[MenuItem]:
        await self._simulate("list_menu_items")
        return list(self._menu.values())

    async def get_tables(self) -> list[Table]:
        await self._simulate("get_tables")
        return list(self._tables.values())

    async def create_table(self, table: TableCreate) -> Table:
        await self._simulate("create_table", table.number)
        created = self.add_table(table)
        logger.debug(f"Mock: Created table {created.number} (#{created.id})")
        return created

    async def update_table(self, table_id: int, status: TableStatus) -> Table:
        await self._simulate("update_table", table_id)
        if table_id not in self._tables:
            raise NetworkFailure(f"Table {table_id} not found", operation="update_table", status_code=404)
        updated = self._tables[table_id].model_copy(update={"status": TableStatus(status)})
        self._tables[table_id] = updated
        return updated

    async def get_orders(
        self,
        table_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
    ) -> list[Order]:
        await self._simulate("get_orders", table_id)
        return [
            order for order in self._orders.values()
            if (table_id is None or order.table_id == table_id)
            and (status is None or order.status == status)
        ]

    async def create_order(self, order: OrderCreate) -> Order:
        await self._simulate("create_order", order.table_id)
        if order.table_id not in self._tables:
            raise NetworkFailure(
                f"Table {order.table_id} not found", operation="create_order", status_code=404
            )
        created = self.add_order(order)
        logger.debug(f"Mock: Opened order #{created.id} on table #{created.table_id}")
        return created

    async def get_order_items(self, order_id: int) -> list[OrderItem]:
        await self._simulate("get_order_items", order_id)
        return [item for item in self._items.values() if item.order_id == order_id]

    async def create_order_item(self, item: OrderItemCreate) -> OrderItem:
        await self._simulate("create_order_item", item.menu_item_id)
        if item.order_id not in self._orders:
            raise NetworkFailure(
                f"Order {item.order_id} not found", operation="create_order_item", status_code=404
            )
        return self.add_item(item)

    async def delete_order_item(self, item_id: int) -> None:
        await self._simulate("delete_order_item", item_id)
        item = self._items.get(item_id)
        if item is None:
            raise NetworkFailure(f"Item {item_id} not found", operation="delete_order_item", status_code=404)
        if item.status not in (ItemStatus.DRAFT, ItemStatus.LIMBO):
            raise NetworkFailure(
                f"Cannot delete locked item {item_id}", operation="delete_order_item", status_code=409
            )
        del self._items[item_id]

    async def send_draft_items(self, order_id: int) -> list[SentItem]:
        await self._simulate("send_draft_items", order_id)
        expiry = self._clock() + timedelta(seconds=self.edit_window_seconds)
        sent = []
        for item in list(self._items.values()):
            if item.order_id == order_id and item.status == ItemStatus.DRAFT:
                self._items[item.id] = item.model_copy(
                    update={"status": ItemStatus.LIMBO, "release_expiry": expiry}
                )
                sent.append(SentItem(item_id=item.id, release_expiry=expiry))
        logger.debug(f"Mock: Sent {len(sent)} item(s) on order #{order_id}")
        return sent

    async def send_now(self, order_id: int) -> None:
        await self._simulate("send_now", order_id)
        for item in list(self._items.values()):
            if item.order_id == order_id and item.status == ItemStatus.LIMBO:
                self.set_item_status(item.id, ItemStatus.PENDING)

    async def health_check(self) -> bool:
        """Mock health check always returns True."""
        return True
