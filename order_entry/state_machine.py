"""
Order Item State Machine

Line item lifecycle, strictly forward:

    draft -> limbo -> pending -> fired -> completed

Only draft and limbo are mutable from the order entry screen. The core
drives exactly two transitions itself (draft -> limbo on send, limbo ->
pending on edit-window expiry); everything after pending is reported by
the preparation queue and accepted as-is, as long as it does not move an
item backwards. Removal is not a transition: a removed item is deleted.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, Optional

from order_entry.core.exceptions import InconsistentState
from order_entry.schemas import ItemStatus, MenuItem, OrderItem

logger = logging.getLogger(__name__)


FORWARD_ORDER = (
    ItemStatus.DRAFT,
    ItemStatus.LIMBO,
    ItemStatus.PENDING,
    ItemStatus.FIRED,
    ItemStatus.COMPLETED,
)

_RANK = {status: position for position, status in enumerate(FORWARD_ORDER)}

MUTABLE_STATUSES = frozenset({ItemStatus.DRAFT, ItemStatus.LIMBO})
LOCKED_STATUSES = frozenset(FORWARD_ORDER) - MUTABLE_STATUSES

# Transitions this core is allowed to perform on its own.
CORE_TRANSITIONS = {
    ItemStatus.DRAFT: frozenset({ItemStatus.LIMBO}),
    ItemStatus.LIMBO: frozenset({ItemStatus.PENDING}),
}


def rank(status: ItemStatus) -> int:
    return _RANK[ItemStatus(status)]


def is_mutable(status: ItemStatus) -> bool:
    return ItemStatus(status) in MUTABLE_STATUSES


def is_locked(status: ItemStatus) -> bool:
    return ItemStatus(status) in LOCKED_STATUSES


@dataclass
class SessionItem:
    """
    One line of the order being composed.

    An item without an id has never been persisted. order_id records which
    open order the item belongs to once it is persisted, since a table's
    view can span several open orders.
    """
    menu_item_id: int
    price: float
    name: Optional[str] = None
    quantity: int = 1
    status: ItemStatus = ItemStatus.DRAFT
    id: Optional[int] = None
    order_id: Optional[int] = None
    release_expiry: Optional[datetime] = None
    locked_at: Optional[datetime] = None

    @property
    def persisted(self) -> bool:
        return self.id is not None

    @property
    def editable(self) -> bool:
        return is_mutable(self.status)

    @property
    def locked(self) -> bool:
        return is_locked(self.status)

    @property
    def saved_draft(self) -> bool:
        return self.status == ItemStatus.DRAFT and self.persisted

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    @classmethod
    def from_menu_item(cls, menu_item: MenuItem, quantity: int = 1) -> "SessionItem":
        return cls(
            menu_item_id=menu_item.id,
            name=menu_item.name,
            price=menu_item.price,
            quantity=quantity,
        )

    @classmethod
    def from_order_item(cls, item: OrderItem, name: Optional[str] = None) -> "SessionItem":
        return cls(
            menu_item_id=item.menu_item_id,
            name=name,
            price=item.price,
            quantity=item.quantity,
            status=item.status,
            id=item.id,
            order_id=item.order_id,
            release_expiry=item.release_expiry,
        )


def transition(item: SessionItem, target: ItemStatus) -> SessionItem:
    """
    Apply a core-driven transition, returning the updated copy.

    Raises:
        InconsistentState: if the move is not one the core may make, or the
            item would enter limbo without having been persisted.
    """
    target = ItemStatus(target)
    allowed = CORE_TRANSITIONS.get(item.status, frozenset())
    if target not in allowed:
        raise InconsistentState(
            f"Illegal item transition {item.status.value} -> {target.value}"
        )
    if target == ItemStatus.LIMBO and not item.persisted:
        raise InconsistentState("Item cannot enter limbo before it is persisted")
    return replace(item, status=target)


def apply_expiry(items: Iterable[SessionItem], now: datetime) -> list[SessionItem]:
    """
    Close the edit window over the given items.

    Every limbo item becomes pending (stamped with now); items in any other
    status are returned untouched. Pure: the input sequence is not mutated.
    """
    expired = []
    for item in items:
        if item.status == ItemStatus.LIMBO:
            expired.append(replace(transition(item, ItemStatus.PENDING), locked_at=now))
        else:
            expired.append(item)
    return expired


def merge_status(local: ItemStatus, reported: ItemStatus) -> ItemStatus:
    """
    Reconcile a locally known status with one reported by the store.

    The reported status wins unless it would move the item backwards.
    """
    local, reported = ItemStatus(local), ItemStatus(reported)
    if rank(reported) < rank(local):
        logger.debug(f"Ignoring stale status {reported.value} (local is {local.value})")
        return local
    return reported
