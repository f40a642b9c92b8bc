"""
Order/Table Aggregator

A table can end up with more than one open order at once (split checks,
or separate save/send sessions that each opened an order). The entry
screen still shows one bill: items from every open order are flattened
into a single list, while new items are written to one canonical order,
the earliest-created open one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from order_entry.schemas import MenuItem, Order, OrderStatus, Table
from order_entry.services.store.base import BaseOrderStore
from order_entry.state_machine import SessionItem

logger = logging.getLogger(__name__)

_NEVER = datetime.max.replace(tzinfo=timezone.utc)


@dataclass
class TableView:
    """Merged state of a table's open orders."""
    canonical_order_id: Optional[int] = None
    open_order_ids: list[int] = field(default_factory=list)
    items: list[SessionItem] = field(default_factory=list)


def _creation_key(order: Order) -> tuple[datetime, int]:
    return (order.created_at or _NEVER, order.id)


def canonical_order(orders: Iterable[Order]) -> Optional[Order]:
    """Earliest-created order; orders without a timestamp sort last, ties by id."""
    return min(orders, key=_creation_key, default=None)


async def fetch_items(
    store: BaseOrderStore,
    order_ids: Iterable[int],
    menu: Optional[list[MenuItem]] = None,
) -> list[SessionItem]:
    """
    Fetch and flatten the items of several orders, resolving display names.

    Orders are fetched concurrently; the result keeps order_ids order.
    """
    order_ids = list(order_ids)
    if not order_ids:
        return []

    if menu is None:
        menu = await store.list_menu_items()
    names = {menu_item.id: menu_item.name for menu_item in menu}

    per_order = await asyncio.gather(*(store.get_order_items(order_id) for order_id in order_ids))
    return [
        SessionItem.from_order_item(item, name=names.get(item.menu_item_id))
        for items in per_order
        for item in items
    ]


async def load_table_view(store: BaseOrderStore, table: Table) -> TableView:
    """
    Rebuild the editable view of an occupied table.

    A table with no open orders yields an empty view rather than an error.
    """
    orders = await store.get_orders(table_id=table.id, status=OrderStatus.OPEN)
    open_orders = sorted(
        (order for order in orders if order.status == OrderStatus.OPEN),
        key=_creation_key,
    )
    if not open_orders:
        logger.info(f"Table {table.number} has no open orders")
        return TableView()

    if len(open_orders) > 1:
        logger.info(
            f"Table {table.number} has {len(open_orders)} open orders; merging "
            f"{[order.id for order in open_orders]}"
        )

    view = TableView(
        canonical_order_id=canonical_order(open_orders).id,
        open_order_ids=[order.id for order in open_orders],
    )
    view.items = await fetch_items(store, view.open_order_ids)
    logger.info(
        f"Loaded {len(view.items)} item(s) for table {table.number} "
        f"(canonical order #{view.canonical_order_id})"
    )
    return view
