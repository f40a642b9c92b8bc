"""
Core module initialization.
Exports configuration, logging and error utilities.
"""

from order_entry.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from order_entry.core.exceptions import (
    OrderEntryError,
    NetworkFailure,
    ProvisioningFailure,
    InconsistentState,
    ItemLocked,
    SessionClosed,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "OrderEntryError",
    "NetworkFailure",
    "ProvisioningFailure",
    "InconsistentState",
    "ItemLocked",
    "SessionClosed",
]
