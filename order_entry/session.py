"""
Order Session Context

Everything the entry screen knows about the order being composed: the
table, the canonical order new items are written to, every open order the
view spans, and the items themselves. A session is created when a table is
selected (or a quick order is started) and discarded on navigation away or
payment completion; the Release Coordinator owns it.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from order_entry.formatters import format_table_name, round_money
from order_entry.schemas import ItemStatus, SessionItemView, SessionView, Table
from order_entry.state_machine import SessionItem


# =============================================================================
# NOTIFICATION TEXT
# =============================================================================

DRAFT_SAVED_NOTICE = "Draft saved! Items remain editable"
COUNTDOWN_NOTICE = "{seconds} seconds to edit"
LOCKED_NOTICE = "Items locked and sent to prep station"
EMPTY_NOTICE = "Add items to order"
READY_NOTICE = "Ready to send or save as draft"


@dataclass
class ActionResult:
    """
    Outcome of one consumer action.

    Collaborator failures never escape an action; they come back here with
    success=False and a message suitable for the user.
    """
    success: bool
    message: Optional[str] = None
    error_code: Optional[str] = None
    item: Optional[SessionItem] = None

    @classmethod
    def ok(cls, message: Optional[str] = None, item: Optional[SessionItem] = None) -> "ActionResult":
        return cls(success=True, message=message, item=item)

    @classmethod
    def failed(cls, message: str, error_code: str) -> "ActionResult":
        return cls(success=False, message=message, error_code=error_code)


@dataclass
class OrderSession:
    """Mutable state of one order-composition screen."""
    table: Optional[Table] = None
    order_id: Optional[int] = None
    open_order_ids: list[int] = field(default_factory=list)
    items: list[SessionItem] = field(default_factory=list)
    draft_saved: bool = False
    window_closed: bool = False
    failure_notice: Optional[str] = None
    closed: bool = False
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def items_in(self, *statuses: ItemStatus) -> list[SessionItem]:
        return [item for item in self.items if item.status in statuses]

    @property
    def limbo_items(self) -> list[SessionItem]:
        return self.items_in(ItemStatus.LIMBO)

    @property
    def draft_items(self) -> list[SessionItem]:
        return self.items_in(ItemStatus.DRAFT)

    @property
    def unsaved_items(self) -> list[SessionItem]:
        return [item for item in self.draft_items if not item.persisted]

    def track_order(self, order_id: int) -> None:
        if order_id not in self.open_order_ids:
            self.open_order_ids.append(order_id)

    def totals(self, tax_rate: float) -> tuple[float, float, float]:
        """Subtotal, tax and total, rounded to cents."""
        subtotal = sum(item.line_total for item in self.items)
        tax = subtotal * tax_rate
        return round_money(subtotal), round_money(tax), round_money(subtotal + tax)

    def notification(self, seconds_left: Optional[int], window_open: bool) -> str:
        if self.draft_saved:
            return DRAFT_SAVED_NOTICE
        if window_open and seconds_left:
            return COUNTDOWN_NOTICE.format(seconds=seconds_left)
        if self.window_closed:
            return LOCKED_NOTICE
        if not self.items:
            return EMPTY_NOTICE
        return READY_NOTICE

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def discard(self) -> None:
        """Drop all in-memory order state."""
        self.order_id = None
        self.open_order_ids = []
        self.items = []
        self.draft_saved = False
        self.window_closed = False
        self.failure_notice = None
        self.closed = True

    def to_view(
        self,
        *,
        seconds_left: Optional[int],
        window_open: bool,
        tax_rate: float,
        quick_order_prefix: str = "QO",
    ) -> SessionView:
        subtotal, tax, total = self.totals(tax_rate)
        return SessionView(
            session_id=self.session_id,
            table_id=self.table.id if self.table else None,
            table_name=format_table_name(self.table, quick_order_prefix),
            canonical_order_id=self.order_id,
            open_order_ids=list(self.open_order_ids),
            items=[
                SessionItemView(
                    index=index,
                    id=item.id,
                    order_id=item.order_id,
                    menu_item_id=item.menu_item_id,
                    name=item.name,
                    price=item.price,
                    quantity=item.quantity,
                    status=item.status,
                    editable=item.editable,
                    locked=item.locked,
                    saved_draft=item.saved_draft,
                )
                for index, item in enumerate(self.items)
            ],
            seconds_left=seconds_left,
            draft_saved=self.draft_saved,
            notification=self.notification(seconds_left, window_open),
            failure_notice=self.failure_notice,
            subtotal=subtotal,
            tax=tax,
            total=total,
            closed=self.closed,
        )
