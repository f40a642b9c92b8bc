"""
Release Coordinator

Owns one OrderSession and exposes the actions of the order entry screen:

    open()        load the selected table (merging its open orders)
    add_item()    add a menu item (sent at once while the edit window is open)
    remove_item() remove a draft or limbo item
    save_draft()  ensure table + order, persist new drafts
    send_order()  ensure table + order, persist drafts, send, open the window
    send_now()    release limbo items early and resync from the store
    close()       teardown on navigation away or payment completion
    view()        read-only projection for rendering

Send is a best-effort saga: table -> order (+ mark table occupied) -> persist
drafts -> send -> start window -> drafts become limbo. Each step runs only if
the previous one succeeded. Whatever was committed before a failure stays
cached in the session, so repeating the action never creates a second table,
order or item.

Collaborator failures are caught here, logged, and returned as a failed
ActionResult with one user-facing notice. Nothing is retried automatically.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from order_entry.aggregator import fetch_items, load_table_view
from order_entry.core.config import Settings, get_settings
from order_entry.core.exceptions import (
    InconsistentState,
    ItemLocked,
    NetworkFailure,
    OrderEntryError,
    ProvisioningFailure,
    SessionClosed,
)
from order_entry.formatters import format_money, format_table_name
from order_entry.provisioner import QuickOrderProvisioner
from order_entry.refresh import PeriodicRefresh
from order_entry.schemas import (
    ItemStatus,
    MenuItem,
    OrderCreate,
    OrderItemCreate,
    OrderStatus,
    SentItem,
    SessionView,
    Table,
    TableStatus,
)
from order_entry.services.store.base import BaseOrderStore
from order_entry.session import ActionResult, OrderSession
from order_entry.state_machine import SessionItem, apply_expiry, merge_status, transition
from order_entry.timer import Clock, EditWindowTimer, utc_now

logger = logging.getLogger(__name__)


class ReleaseCoordinator:
    """
    Session-scoped orchestrator between the entry screen and the order store.

    Example:
        >>> coordinator = ReleaseCoordinator(store, table=None)
        >>> await coordinator.open()
        >>> await coordinator.add_item(latte)
        >>> result = await coordinator.send_order()
        >>> coordinator.view().notification
        '15 seconds to edit'
    """

    def __init__(
        self,
        store: BaseOrderStore,
        settings: Optional[Settings] = None,
        *,
        table: Optional[Table] = None,
        clock: Clock = utc_now,
        auto_tick: bool = True,
        poll: Optional[bool] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.session = OrderSession(table=table)

        self.timer = EditWindowTimer(
            self._expire_window,
            clock=clock,
            tick_interval=self.settings.tick_interval_seconds,
            auto_tick=auto_tick,
        )
        self.provisioner = QuickOrderProvisioner(
            store,
            prefix=self.settings.quick_order_prefix,
            section=self.settings.quick_order_section,
        )

        interval = self.settings.refresh_interval_seconds
        if poll is None:
            poll = interval > 0
        self._refresh = (
            PeriodicRefresh(self.refresh_statuses, interval, name=f"refresh-{self.session.session_id[:8]}")
            if poll and interval > 0 else None
        )

        # Serializes every action that talks to the store.
        self._lock = asyncio.Lock()
        self._table_marked = table is not None and table.status == TableStatus.OCCUPIED
        self._notice_task: Optional[asyncio.Task] = None
        self._menu: Optional[list[MenuItem]] = None

    # =========================================================================
    # PROJECTIONS
    # =========================================================================

    @property
    def closed(self) -> bool:
        return self.session.closed

    @property
    def seconds_left(self) -> Optional[int]:
        if self.timer.active:
            return self.timer.seconds_left
        return 0 if self.session.window_closed else None

    def view(self) -> SessionView:
        return self.session.to_view(
            seconds_left=self.seconds_left,
            window_open=self.timer.active,
            tax_rate=self.settings.tax_rate,
            quick_order_prefix=self.settings.quick_order_prefix,
        )

    # =========================================================================
    # SESSION LIFECYCLE
    # =========================================================================

    async def open(self, table: Optional[Table] = None) -> ActionResult:
        """
        Initialise the session for the selected table (None for a quick order).

        An occupied table gets its open orders merged into one editable
        list; limbo items found there resume their edit window.
        """
        if self.closed:
            return self._closed_result()

        if table is not None:
            self.session.table = table
            self._table_marked = table.status == TableStatus.OCCUPIED
        table = self.session.table
        if table is not None and table.status == TableStatus.OCCUPIED:
            try:
                async with self._lock:
                    view = await load_table_view(self.store, table)
                    self._ensure_open()
                    self.session.order_id = view.canonical_order_id
                    self.session.open_order_ids = view.open_order_ids
                    self.session.items = view.items
                    self._resume_window()
            except OrderEntryError as e:
                return self._fail("Failed to load order", e)

        if self._refresh is not None:
            self._refresh.start()

        logger.info(
            f"Session {self.session.session_id[:8]} opened for "
            f"{format_table_name(table, self.settings.quick_order_prefix)} "
            f"({len(self.session.items)} item(s))"
        )
        return self._succeed()

    async def close(self, reason: str = "navigation") -> None:
        """Stop all background work and discard the in-memory order."""
        if self.closed:
            return
        self.timer.cancel()
        self._clear_notice_task()
        self.provisioner.cancel()
        self.session.discard()
        if self._refresh is not None:
            await self._refresh.stop()
        logger.info(f"Session {self.session.session_id[:8]} closed ({reason})")

    # =========================================================================
    # CONSUMER ACTIONS
    # =========================================================================

    async def add_item(self, menu_item: MenuItem, quantity: int = 1) -> ActionResult:
        """
        Add a menu item to the order.

        Outside an edit window the item is a local draft. While a window is
        open it is persisted and sent immediately, enters limbo, and
        restarts the shared window.
        """
        if self.closed:
            return self._closed_result()

        item = SessionItem.from_menu_item(menu_item, quantity=quantity)
        self.session.window_closed = False

        if self.timer.active and self.session.order_id is not None:
            return await self._add_during_window(item)

        self.session.items.append(item)
        logger.info(f"Added draft {item.name} ({format_money(item.price)})")
        return self._succeed(item=item)

    async def remove_item(self, index: int) -> ActionResult:
        """
        Remove the item at index.

        Persisted items are deleted in the store first; if that fails the
        item stays so the user can retry. While the edit window is open any
        removal restarts it, unless no limbo item is left, which cancels it.
        """
        if self.closed:
            return self._closed_result()

        async with self._lock:
            if not 0 <= index < len(self.session.items):
                return ActionResult.failed(f"No item at position {index}", "invalid_index")

            item = self.session.items[index]
            try:
                if not item.editable:
                    raise ItemLocked(f"{item.name or 'Item'} is locked and cannot be removed")
                if item.persisted:
                    await self.store.delete_order_item(item.id)
                    self._ensure_open()
            except OrderEntryError as e:
                return self._fail("Failed to remove item", e)

            self._discard_item(item)
            logger.info(f"Removed {item.name} ({item.status.value})")

            if self.timer.active:
                if self.session.limbo_items:
                    self.timer.reset(self.settings.edit_window_seconds)
                else:
                    self.timer.cancel()

            return self._succeed(item=item)

    async def save_draft(self) -> ActionResult:
        """Ensure table and order exist and persist new drafts, without sending."""
        if self.closed:
            return self._closed_result()
        if not self.session.items:
            return ActionResult.failed("Add items to order", "empty_order")

        async with self._lock:
            try:
                await self._ensure_order()
                saved = await self._persist_drafts()
            except OrderEntryError as e:
                return self._fail("Failed to save draft", e)

            logger.info(f"Draft saved on order #{self.session.order_id} ({saved} new item(s))")
            self._show_draft_notice()
            return self._succeed("Draft saved")

    async def send_order(self) -> ActionResult:
        """Run the release saga for every draft item."""
        if self.closed:
            return self._closed_result()

        async with self._lock:
            if not self.session.draft_items:
                return ActionResult.failed("No draft items to send", "nothing_to_send")

            self._clear_notice_task()

            try:
                await self._ensure_order()
                await self._persist_drafts()
                sent = await self._send_drafts()
            except InconsistentState as e:
                await self._reconcile()
                return self._fail("Failed to send order", e)
            except OrderEntryError as e:
                return self._fail("Failed to send order", e)

            expiry = max(entry.release_expiry for entry in sent)
            self.timer.start(self.settings.edit_window_seconds, expires_at=expiry)
            self.session.window_closed = False
            self._mark_sent(sent)

            logger.info(
                f"Sent {len(sent)} item(s) on order #{self.session.order_id}; "
                f"edit window until {expiry.isoformat()}"
            )
            return self._succeed(f"{len(sent)} item(s) sent")

    async def send_now(self) -> ActionResult:
        """
        Release the edit window early.

        The store is asked to release immediately, the window is closed, and
        the item list is replaced by the store's own view.
        """
        if self.closed:
            return self._closed_result()

        async with self._lock:
            if not self.timer.active or self.session.order_id is None:
                return ActionResult.failed("No items are waiting in the edit window", "window_closed")

            order_ids = self._order_ids_of(self.session.limbo_items) or [self.session.order_id]
            try:
                await asyncio.gather(*(self.store.send_now(order_id) for order_id in order_ids))
                self._ensure_open()
            except OrderEntryError as e:
                return self._fail("Failed to send now", e)

            self.timer.force_expire()
            logger.info(f"Sent now on order(s) {order_ids}")

            try:
                await self._resync()
            except OrderEntryError as e:
                return self._fail("Items sent, but the order could not be refreshed", e)
            return self._succeed("Items locked and sent to prep station")

    async def refresh_statuses(self) -> None:
        """
        Pull item statuses from the store and merge them forward.

        Skipped while another action is talking to the store.
        """
        if self.closed or not self.session.open_order_ids or self._lock.locked():
            return

        async with self._lock:
            reported = await fetch_items(self.store, self.session.open_order_ids, menu=await self._menu_items())
            self._ensure_open()

            by_id = {item.id: item for item in reported}
            for position, item in enumerate(self.session.items):
                remote = by_id.get(item.id) if item.persisted else None
                if remote is None:
                    continue
                status = merge_status(item.status, remote.status)
                if status != item.status:
                    logger.info(f"{item.name}: {item.status.value} -> {status.value} (reported)")
                    self.session.items[position] = replace(item, status=status)

            if self.timer.active and not self.session.limbo_items:
                self.timer.cancel()
                self.session.window_closed = True
                logger.info("Edit window closed; the store released every limbo item")

    # =========================================================================
    # SAGA STEPS
    # =========================================================================

    async def _ensure_table(self) -> Table:
        if self.session.table is not None:
            return self.session.table
        table = await self.provisioner.provision()
        self._ensure_open()
        self.session.table = table
        return table

    async def _ensure_order(self) -> int:
        """Return the canonical order id, opening the order if needed."""
        table = await self._ensure_table()

        if self.session.order_id is None:
            try:
                order = await self.store.create_order(
                    OrderCreate(
                        table_id=table.id,
                        type=self.settings.default_order_type,
                        status=OrderStatus.OPEN,
                        server_id=table.server_id or self.settings.default_server_id,
                    )
                )
            except OrderEntryError as e:
                raise ProvisioningFailure(f"Could not open an order on table {table.number}", cause=e)
            self._ensure_open()
            self.session.order_id = order.id
            self.session.track_order(order.id)
            logger.info(f"Opened order #{order.id} on table {table.number}")

        if not self._table_marked:
            try:
                updated = await self.store.update_table(table.id, TableStatus.OCCUPIED)
            except OrderEntryError as e:
                raise ProvisioningFailure(f"Could not mark table {table.number} occupied", cause=e)
            self._ensure_open()
            self.session.table = updated
            self._table_marked = True

        return self.session.order_id

    async def _persist_drafts(self) -> int:
        """
        Create every draft that has no id yet, in parallel.

        Items that were created keep their ids even if a sibling failed, so
        a retry only creates what is still missing.
        """
        order_id = self.session.order_id
        unsaved = self.session.unsaved_items
        if not unsaved:
            return 0

        results = await asyncio.gather(
            *(
                self.store.create_order_item(
                    OrderItemCreate(
                        order_id=order_id,
                        menu_item_id=item.menu_item_id,
                        quantity=item.quantity,
                        price=item.price,
                        status=ItemStatus.DRAFT,
                    )
                )
                for item in unsaved
            ),
            return_exceptions=True,
        )
        self._ensure_open()

        failures = []
        for item, result in zip(unsaved, results):
            if isinstance(result, BaseException):
                failures.append(result)
                continue
            item.id = result.id
            item.order_id = result.order_id

        for failure in failures:
            if not isinstance(failure, OrderEntryError):
                raise failure
        if failures:
            raise NetworkFailure(
                f"{len(failures)} of {len(unsaved)} item(s) could not be saved",
                operation="create_order_item",
                cause=failures[0],
            )
        return len(unsaved)

    async def _send_drafts(self) -> list[SentItem]:
        order_ids = self._order_ids_of(self.session.draft_items)
        batches = await asyncio.gather(*(self.store.send_draft_items(order_id) for order_id in order_ids))
        self._ensure_open()

        sent = [entry for batch in batches for entry in batch]
        if not sent:
            raise InconsistentState("Store released none of the draft items")
        if any(entry.release_expiry is None for entry in sent):
            raise InconsistentState("Send response is missing the release expiry")
        return sent

    async def _add_during_window(self, item: SessionItem) -> ActionResult:
        async with self._lock:
            order_id = self.session.order_id
            try:
                created = await self.store.create_order_item(
                    OrderItemCreate(
                        order_id=order_id,
                        menu_item_id=item.menu_item_id,
                        quantity=item.quantity,
                        price=item.price,
                        status=ItemStatus.DRAFT,
                    )
                )
                self._ensure_open()
                item.id, item.order_id = created.id, created.order_id
                # Persisted: from here on the item must stay visible.
                self.session.items.append(item)

                sent = await self.store.send_draft_items(order_id)
                self._ensure_open()
                if not any(entry.item_id == item.id for entry in sent):
                    raise InconsistentState(f"Store did not release {item.name}")
            except OrderEntryError as e:
                return self._fail("Failed to add item", e)

            self._mark_sent(sent)
            self.timer.reset(self.settings.edit_window_seconds)
            logger.info(f"Added {item.name} during edit window; window restarted")
            return self._succeed(item=self._find(item.id))

    async def _resync(self) -> None:
        """Replace the item list with the store's view (unsaved drafts kept)."""
        unsaved = self.session.unsaved_items
        items = await fetch_items(self.store, self.session.open_order_ids, menu=await self._menu_items())
        self._ensure_open()
        self.session.items = items + unsaved
        logger.info(f"Resynced {len(items)} item(s) from the store")

    async def _reconcile(self) -> None:
        """After an unreconcilable send, trust the store and reopen the window if needed."""
        try:
            await self._resync()
        except OrderEntryError as e:
            logger.error(f"Reconciliation after failed send did not complete: {e}")
            return
        if self.session.limbo_items and not self.timer.active:
            self.timer.start(self.settings.edit_window_seconds)

    async def _menu_items(self) -> list[MenuItem]:
        if self._menu is None:
            self._menu = await self.store.list_menu_items()
        return self._menu

    # =========================================================================
    # LOCAL STATE
    # =========================================================================

    def _expire_window(self, now: datetime) -> None:
        if self.closed:
            return
        locked = len(self.session.limbo_items)
        self.session.items = apply_expiry(self.session.items, now)
        self.session.window_closed = True
        logger.info(f"Edit window expired; {locked} item(s) locked")

    def _resume_window(self) -> None:
        limbo = self.session.limbo_items
        if not limbo:
            return
        expiries = [item.release_expiry for item in limbo if item.release_expiry is not None]
        if expiries:
            self.timer.start(self.settings.edit_window_seconds, expires_at=max(expiries))
        else:
            self.timer.start(self.settings.edit_window_seconds)

    def _mark_sent(self, sent: list[SentItem]) -> None:
        """Move released drafts to limbo; drafts the store did not release stay drafts."""
        released = {entry.item_id: entry.release_expiry for entry in sent}
        items = []
        for item in self.session.items:
            if item.persisted and item.id in released and item.status == ItemStatus.DRAFT:
                item = replace(transition(item, ItemStatus.LIMBO), release_expiry=released[item.id])
            items.append(item)
        self.session.items = items

        leftover = [item for item in self.session.draft_items if item.persisted]
        if leftover:
            logger.warning(f"{len(leftover)} saved draft(s) were not released by the store")

    def _discard_item(self, item: SessionItem) -> None:
        if item.persisted:
            self.session.items = [other for other in self.session.items if other.id != item.id]
        else:
            self.session.items = [other for other in self.session.items if other is not item]

    def _find(self, item_id: Optional[int]) -> Optional[SessionItem]:
        return next((item for item in self.session.items if item.id == item_id), None)

    @staticmethod
    def _order_ids_of(items: list[SessionItem]) -> list[int]:
        return list(dict.fromkeys(item.order_id for item in items if item.order_id is not None))

    def _show_draft_notice(self) -> None:
        self._clear_notice_task()
        self.session.draft_saved = True
        self._notice_task = asyncio.get_running_loop().create_task(self._expire_draft_notice())

    async def _expire_draft_notice(self) -> None:
        await asyncio.sleep(self.settings.draft_notice_seconds)
        self.session.draft_saved = False

    def _clear_notice_task(self) -> None:
        task, self._notice_task = self._notice_task, None
        if task is not None and not task.done():
            task.cancel()
        self.session.draft_saved = False

    def _ensure_open(self) -> None:
        if self.session.closed:
            raise SessionClosed("Session was closed")

    # =========================================================================
    # RESULTS
    # =========================================================================

    def _succeed(self, message: Optional[str] = None, item: Optional[SessionItem] = None) -> ActionResult:
        if not self.closed:
            self.session.failure_notice = None
        return ActionResult.ok(message, item=item)

    def _fail(self, message: str, error: OrderEntryError) -> ActionResult:
        if isinstance(error, SessionClosed):
            return self._closed_result()
        logger.error(f"{message}: {error}" + (f" (caused by {error.cause})" if error.cause else ""))
        self.session.failure_notice = message
        return ActionResult.failed(message, error.error_code)

    @staticmethod
    def _closed_result() -> ActionResult:
        return ActionResult.failed("Session is closed", SessionClosed.error_code)
