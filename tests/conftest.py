from datetime import datetime, timedelta, timezone

import pytest

from order_entry.core.config import Settings
from order_entry.coordinator import ReleaseCoordinator
from order_entry.schemas import MenuItem
from order_entry.services.store.mock import MockOrderStore


class FakeClock:
    """Manually advanced clock shared by the store, the timer and the tests."""

    def __init__(self, start: datetime = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        edit_window_seconds=15,
        draft_notice_seconds=3.0,
        refresh_interval_seconds=0,
        tax_rate=0.03,
    )


@pytest.fixture
def store(clock):
    return MockOrderStore(edit_window_seconds=15, clock=clock)


@pytest.fixture
def menu(store):
    """Menu items by name."""
    return {item.name: item for item in store.menu}


@pytest.fixture
def latte(menu) -> MenuItem:
    return menu["Latte"]


@pytest.fixture
def make_coordinator(store, settings, clock):
    def factory(table=None, **kwargs):
        return ReleaseCoordinator(
            kwargs.pop("store", store),
            settings,
            table=table,
            clock=clock,
            auto_tick=False,
            **kwargs,
        )

    return factory
