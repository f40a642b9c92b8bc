"""
Order Store Factory

Provides a single entry point for obtaining an order store instance.
The factory pattern allows the rest of the application to remain agnostic
about which implementation is being used.

Usage:
    from order_entry.services.store import get_order_store

    # Returns MockOrderStore or HttpOrderStore based on ENV_MODE
    store = get_order_store()
    tables = await store.get_tables()

Environment Switching:
    - ENV_MODE=development → MockOrderStore (in memory)
    - ENV_MODE=staging     → HttpOrderStore (STORE_BASE_URL)
    - ENV_MODE=production  → HttpOrderStore (STORE_BASE_URL)

Version: 1.0.0
"""

import logging
from functools import lru_cache

from order_entry.core.config import get_settings
from order_entry.services.store.base import BaseOrderStore
from order_entry.services.store.http import HttpOrderStore
from order_entry.services.store.mock import MockOrderStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_store() -> BaseOrderStore:
    """
    Get the configured order store instance.

    The instance is cached so every session shares one client (and, in
    development, one in-memory floor).

    Returns:
        BaseOrderStore: Configured order store
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Order Store: Using MockOrderStore (development mode)")
        return MockOrderStore(
            edit_window_seconds=settings.edit_window_seconds,
            failure_rate=settings.mock_failure_rate,
            min_latency=settings.mock_min_latency,
            max_latency=settings.mock_max_latency,
        )
    else:
        logger.info(
            f"Order Store: Using HttpOrderStore "
            f"({settings.env_mode.value} mode)"
        )
        return HttpOrderStore()


def reset_order_store() -> None:
    """
    Clear the cached order store instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_order_store.cache_clear()
    logger.debug("Order store cache cleared")


__all__ = [
    "get_order_store",
    "reset_order_store",
    "BaseOrderStore",
    "MockOrderStore",
    "HttpOrderStore",
]
