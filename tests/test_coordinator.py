import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from order_entry.core.exceptions import NetworkFailure
from order_entry.schemas import (
    ItemStatus,
    OrderCreate,
    OrderItemCreate,
    TableCreate,
    TableStatus,
)
from order_entry.session import (
    DRAFT_SAVED_NOTICE,
    EMPTY_NOTICE,
    LOCKED_NOTICE,
    READY_NOTICE,
)


async def sent_session(make_coordinator, *menu_items):
    """Quick-order session with the given items sent and the window open."""
    coordinator = make_coordinator()
    await coordinator.open()
    for menu_item in menu_items:
        await coordinator.add_item(menu_item)
    result = await coordinator.send_order()
    assert result.success, result.message
    return coordinator


def statuses(coordinator):
    return [item.status for item in coordinator.session.items]


# =============================================================================
# SEND
# =============================================================================

async def test_quick_order_send_opens_edit_window(make_coordinator, store, latte):
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)

    result = await coordinator.send_order()

    assert result.success
    assert store.call_count("create_table") == 1
    assert store.tables[0].number == "QO1"
    assert store.tables[0].status == TableStatus.OCCUPIED
    assert statuses(coordinator) == [ItemStatus.LIMBO]

    view = coordinator.view()
    assert view.table_name == "Quick Order QO1"
    assert view.seconds_left == 15
    assert view.notification == "15 seconds to edit"
    assert view.items[0].editable
    assert view.subtotal == 4.50
    assert view.total == pytest.approx(4.64, abs=0.01)


async def test_expiry_locks_every_limbo_item(make_coordinator, clock, latte, menu):
    coordinator = await sent_session(make_coordinator, latte, menu["Cinnamon Roll"])

    clock.advance(15)
    coordinator.timer.tick()

    assert statuses(coordinator) == [ItemStatus.PENDING, ItemStatus.PENDING]
    view = coordinator.view()
    assert view.seconds_left == 0
    assert view.notification == LOCKED_NOTICE
    assert not any(item.editable for item in view.items)


async def test_countdown_projection(make_coordinator, clock, latte):
    coordinator = await sent_session(make_coordinator, latte)

    clock.advance(6)
    coordinator.timer.tick()

    assert coordinator.view().notification == "9 seconds to edit"


async def test_send_without_drafts_is_rejected(make_coordinator, store):
    coordinator = make_coordinator()
    await coordinator.open()

    result = await coordinator.send_order()

    assert not result.success
    assert result.error_code == "nothing_to_send"
    assert store.calls == []


async def test_save_then_send_reuses_table_and_order(make_coordinator, store, latte):
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)

    saved = await coordinator.save_draft()

    assert saved.success
    assert coordinator.session.items[0].saved_draft
    assert coordinator.view().notification == DRAFT_SAVED_NOTICE

    sent = await coordinator.send_order()

    assert sent.success
    assert store.call_count("create_table") == 1
    assert store.call_count("create_order") == 1
    assert store.call_count("create_order_item") == 1
    assert store.call_count("update_table") == 1
    assert coordinator.view().notification == "15 seconds to edit"


async def test_draft_notice_clears_itself(make_coordinator, settings, latte):
    settings.draft_notice_seconds = 0.01
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)
    await coordinator.save_draft()

    await coordinator._notice_task

    assert coordinator.view().notification == READY_NOTICE


async def test_save_draft_requires_items(make_coordinator):
    coordinator = make_coordinator()
    await coordinator.open()

    result = await coordinator.save_draft()

    assert not result.success
    assert result.message == EMPTY_NOTICE


# =============================================================================
# FAILURES AND RETRY
# =============================================================================

async def test_failed_send_keeps_committed_steps_for_retry(make_coordinator, store, latte):
    store.failing_operations.add("send_draft_items")
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)

    failed = await coordinator.send_order()

    assert not failed.success
    assert failed.error_code == "network_failure"
    assert coordinator.view().failure_notice == "Failed to send order"
    assert coordinator.session.items[0].saved_draft
    assert not coordinator.timer.active

    store.failing_operations.clear()
    retried = await coordinator.send_order()

    assert retried.success
    assert coordinator.view().failure_notice is None
    assert store.call_count("create_table") == 1
    assert store.call_count("create_order") == 1
    assert store.call_count("create_order_item") == 1
    assert statuses(coordinator) == [ItemStatus.LIMBO]


async def test_partial_persist_only_retries_missing_items(make_coordinator, store, latte, menu):
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)
    await coordinator.add_item(menu["Mimosa"])

    create = store.create_order_item
    attempts = []

    async def flaky_create(item):
        attempts.append(item)
        if len(attempts) == 2:
            raise NetworkFailure("connection reset", operation="create_order_item")
        return await create(item)

    store.create_order_item = flaky_create

    failed = await coordinator.save_draft()

    assert not failed.success
    assert [item.persisted for item in coordinator.session.items] == [True, False]

    store.create_order_item = create
    assert (await coordinator.send_order()).success
    assert len(store.orders) == 1
    assert statuses(coordinator) == [ItemStatus.LIMBO, ItemStatus.LIMBO]


async def test_table_provisioning_failure_is_reported(make_coordinator, store, latte):
    store.failing_operations.add("create_table")
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)

    result = await coordinator.send_order()

    assert not result.success
    assert result.error_code == "provisioning_failure"
    assert store.orders == []
    assert statuses(coordinator) == [ItemStatus.DRAFT]


async def test_occupy_table_failure_is_retried_on_next_send(make_coordinator, store, latte):
    store.failing_operations.add("update_table")
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)

    assert not (await coordinator.send_order()).success
    assert len(store.orders) == 1

    store.failing_operations.clear()
    assert (await coordinator.send_order()).success
    assert store.call_count("create_order") == 1
    assert store.tables[0].status == TableStatus.OCCUPIED


# =============================================================================
# EDITING
# =============================================================================

async def test_remove_draft_is_local(make_coordinator, store, latte):
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)

    result = await coordinator.remove_item(0)

    assert result.success
    assert coordinator.session.items == []
    assert store.calls == []
    assert coordinator.view().notification == EMPTY_NOTICE


async def test_removing_last_limbo_item_cancels_window(make_coordinator, store, latte):
    coordinator = await sent_session(make_coordinator, latte)

    result = await coordinator.remove_item(0)

    assert result.success
    assert store.item(result.item.id) is None
    assert not coordinator.timer.active
    assert coordinator.view().seconds_left is None
    assert coordinator.timer.expirations == 0


async def test_removing_one_limbo_item_restarts_window(make_coordinator, clock, latte, menu):
    coordinator = await sent_session(make_coordinator, latte, menu["Mimosa"])
    clock.advance(10)
    coordinator.timer.tick()

    await coordinator.remove_item(0)

    assert coordinator.view().seconds_left == 15
    assert statuses(coordinator) == [ItemStatus.LIMBO]


async def test_removing_draft_during_window_restarts_it(make_coordinator, clock, store, latte, menu):
    coordinator = await sent_session(make_coordinator, latte)
    clock.advance(10)
    coordinator.timer.tick()
    store.failing_operations.add("send_draft_items")
    failed = await coordinator.add_item(menu["Mimosa"])
    assert not failed.success
    assert statuses(coordinator) == [ItemStatus.LIMBO, ItemStatus.DRAFT]
    store.failing_operations.clear()

    result = await coordinator.remove_item(1)

    assert result.success
    assert store.item(result.item.id) is None
    assert statuses(coordinator) == [ItemStatus.LIMBO]
    assert coordinator.view().seconds_left == 15


async def test_failed_delete_keeps_item(make_coordinator, store, latte):
    coordinator = await sent_session(make_coordinator, latte)
    store.delete_order_item = AsyncMock(side_effect=NetworkFailure("timeout", operation="delete_order_item"))

    result = await coordinator.remove_item(0)

    assert not result.success
    assert len(coordinator.session.items) == 1
    assert coordinator.timer.active
    assert coordinator.view().failure_notice == "Failed to remove item"


async def test_locked_item_cannot_be_removed(make_coordinator, clock, store, latte):
    coordinator = await sent_session(make_coordinator, latte)
    clock.advance(15)
    coordinator.timer.tick()

    result = await coordinator.remove_item(0)

    assert not result.success
    assert result.error_code == "item_locked"
    assert store.call_count("delete_order_item") == 0


async def test_remove_out_of_range(make_coordinator):
    coordinator = make_coordinator()
    await coordinator.open()

    result = await coordinator.remove_item(3)

    assert not result.success
    assert result.error_code == "invalid_index"


async def test_add_during_window_sends_and_restarts(make_coordinator, clock, store, latte, menu):
    coordinator = await sent_session(make_coordinator, latte)
    clock.advance(10)
    coordinator.timer.tick()
    assert coordinator.view().seconds_left == 5

    result = await coordinator.add_item(menu["Cold Brew"])

    assert result.success
    assert result.item.status == ItemStatus.LIMBO
    assert store.item(result.item.id).status == ItemStatus.LIMBO
    assert statuses(coordinator) == [ItemStatus.LIMBO, ItemStatus.LIMBO]
    assert coordinator.view().seconds_left == 15

    clock.advance(15)
    coordinator.timer.tick()
    assert statuses(coordinator) == [ItemStatus.PENDING, ItemStatus.PENDING]


async def test_add_after_lock_clears_lock_notice(make_coordinator, clock, latte):
    coordinator = await sent_session(make_coordinator, latte)
    clock.advance(15)
    coordinator.timer.tick()

    await coordinator.add_item(latte)

    assert coordinator.view().notification == READY_NOTICE
    assert statuses(coordinator) == [ItemStatus.PENDING, ItemStatus.DRAFT]


# =============================================================================
# SEND NOW
# =============================================================================

async def test_send_now_locks_and_resyncs(make_coordinator, store, latte, menu):
    coordinator = await sent_session(make_coordinator, latte, menu["Mimosa"])

    result = await coordinator.send_now()

    assert result.success
    assert statuses(coordinator) == [ItemStatus.PENDING, ItemStatus.PENDING]
    assert [item.name for item in coordinator.session.items] == ["Latte", "Mimosa"]
    assert all(store.item(item.id).status == ItemStatus.PENDING for item in coordinator.session.items)
    assert coordinator.view().notification == LOCKED_NOTICE
    assert coordinator.timer.expirations == 1


async def test_send_now_keeps_unsaved_drafts(make_coordinator, latte, menu):
    coordinator = await sent_session(make_coordinator, latte)
    coordinator.timer.cancel()
    await coordinator.add_item(menu["Mimosa"])
    coordinator.timer.start(15)

    await coordinator.send_now()

    assert statuses(coordinator) == [ItemStatus.PENDING, ItemStatus.DRAFT]
    assert not coordinator.session.items[1].persisted


async def test_send_now_requires_open_window(make_coordinator, latte):
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)

    result = await coordinator.send_now()

    assert not result.success
    assert result.error_code == "window_closed"


async def test_failed_send_now_leaves_window_running(make_coordinator, store, latte):
    coordinator = await sent_session(make_coordinator, latte)
    store.failing_operations.add("send_now")

    result = await coordinator.send_now()

    assert not result.success
    assert coordinator.timer.active
    assert statuses(coordinator) == [ItemStatus.LIMBO]


# =============================================================================
# OCCUPIED TABLES
# =============================================================================

def seed_occupied_table(store, clock):
    table = store.add_table(TableCreate(number="W3", status=TableStatus.OCCUPIED), server_id="Sam")
    first = store.add_order(OrderCreate(table_id=table.id), created_at=clock() - timedelta(minutes=20))
    second = store.add_order(OrderCreate(table_id=table.id), created_at=clock() - timedelta(minutes=5))
    store.add_item(OrderItemCreate(order_id=first.id, menu_item_id=9, price=4.50, status=ItemStatus.FIRED))
    store.add_item(OrderItemCreate(order_id=second.id, menu_item_id=8, price=9.00))
    return table, first, second


async def test_open_merges_table_orders(make_coordinator, store, clock):
    table, first, second = seed_occupied_table(store, clock)
    coordinator = make_coordinator()

    result = await coordinator.open(table)

    assert result.success
    view = coordinator.view()
    assert view.table_name == "Table W3"
    assert view.canonical_order_id == first.id
    assert view.open_order_ids == [first.id, second.id]
    assert [item.status for item in view.items] == [ItemStatus.FIRED, ItemStatus.DRAFT]
    assert view.items[0].locked
    assert view.items[1].saved_draft


async def test_send_releases_drafts_of_every_open_order(make_coordinator, store, clock, menu):
    table, first, second = seed_occupied_table(store, clock)
    coordinator = make_coordinator(table=table)
    await coordinator.open()
    await coordinator.add_item(menu["Avocado Toast"])

    result = await coordinator.send_order()

    assert result.success
    assert store.call_count("send_draft_items") == 2
    assert store.call_count("create_order") == 0
    assert store.call_count("update_table") == 0
    new_item = coordinator.session.items[-1]
    assert new_item.order_id == first.id
    assert statuses(coordinator) == [ItemStatus.FIRED, ItemStatus.LIMBO, ItemStatus.LIMBO]

    assert len(store.orders) == 2


async def test_open_resumes_live_window(make_coordinator, store, clock):
    table, first, _ = seed_occupied_table(store, clock)
    store.add_item(OrderItemCreate(order_id=first.id, menu_item_id=10, price=4.75))
    await store.send_draft_items(first.id)
    clock.advance(7)

    coordinator = make_coordinator(table=table)
    await coordinator.open()

    assert coordinator.timer.active
    assert coordinator.view().seconds_left == 8


async def test_open_empty_occupied_table(make_coordinator, store):
    table = store.add_table(TableCreate(number="W5", status=TableStatus.OCCUPIED))
    coordinator = make_coordinator(table=table)

    result = await coordinator.open()

    assert result.success
    assert coordinator.view().notification == EMPTY_NOTICE


async def test_new_order_on_occupied_table_without_open_orders(make_coordinator, store, latte):
    table = store.add_table(TableCreate(number="W5", status=TableStatus.OCCUPIED), server_id="Sam")
    coordinator = make_coordinator(table=table)
    await coordinator.open()
    await coordinator.add_item(latte)

    assert (await coordinator.send_order()).success
    assert store.call_count("create_table") == 0
    assert store.orders[0].server_id == "Sam"


# =============================================================================
# REFRESH AND TEARDOWN
# =============================================================================

async def test_refresh_merges_reported_statuses(make_coordinator, store, clock, latte, menu):
    coordinator = await sent_session(make_coordinator, latte, menu["Mimosa"])
    clock.advance(15)
    coordinator.timer.tick()
    first, second = coordinator.session.items
    store.set_item_status(first.id, ItemStatus.FIRED)

    await coordinator.refresh_statuses()

    # second is still limbo in the store; the local pending status stands
    assert statuses(coordinator) == [ItemStatus.FIRED, ItemStatus.PENDING]


async def test_refresh_closes_window_when_store_released_everything(make_coordinator, store, latte):
    coordinator = await sent_session(make_coordinator, latte)
    store.set_item_status(coordinator.session.items[0].id, ItemStatus.FIRED)

    await coordinator.refresh_statuses()

    assert statuses(coordinator) == [ItemStatus.FIRED]
    assert not coordinator.timer.active
    view = coordinator.view()
    assert view.seconds_left == 0
    assert view.notification == LOCKED_NOTICE


async def test_refresh_keeps_window_while_limbo_items_remain(make_coordinator, store, latte, menu):
    coordinator = await sent_session(make_coordinator, latte, menu["Mimosa"])
    store.set_item_status(coordinator.session.items[0].id, ItemStatus.FIRED)

    await coordinator.refresh_statuses()

    assert statuses(coordinator) == [ItemStatus.FIRED, ItemStatus.LIMBO]
    assert coordinator.timer.active
    assert coordinator.view().notification == "15 seconds to edit"


async def test_close_discards_state(make_coordinator, store, latte):
    coordinator = await sent_session(make_coordinator, latte)

    await coordinator.close()

    assert not coordinator.timer.active
    assert coordinator.session.items == []
    result = await coordinator.add_item(latte)
    assert not result.success
    assert result.error_code == "session_closed"


async def test_close_during_send_abandons_saga(make_coordinator, store, latte):
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)
    create_order = store.create_order

    async def close_then_create(order):
        await coordinator.close()
        return await create_order(order)

    store.create_order = close_then_create

    result = await coordinator.send_order()

    assert not result.success
    assert result.error_code == "session_closed"
    assert not coordinator.timer.active
    assert store.call_count("create_order_item") == 0
    assert store.call_count("send_draft_items") == 0


async def test_close_during_table_provisioning_abandons_send(make_coordinator, store, latte):
    coordinator = make_coordinator()
    await coordinator.open()
    await coordinator.add_item(latte)
    get_tables = store.get_tables

    async def slow_get_tables():
        await asyncio.sleep(0.2)
        return await get_tables()

    store.get_tables = slow_get_tables
    sending = asyncio.create_task(coordinator.send_order())
    await asyncio.sleep(0.05)

    await coordinator.close()
    result = await sending

    assert not result.success
    assert result.error_code == "session_closed"
    assert store.tables == []
    assert store.call_count("create_order") == 0


async def test_expiry_after_close_is_ignored(make_coordinator, clock, latte):
    coordinator = await sent_session(make_coordinator, latte)
    timer = coordinator.timer
    await coordinator.close()

    clock.advance(15)

    assert timer.tick() is False
    assert coordinator.session.items == []
