"""
                        Services Module

Collaborators consumed by the order entry core. Each has a Mock
(development) and a Real (production) implementation.

Services:
    - store: order / table / menu store (in-memory or HTTP)
"""

from order_entry.services.store import get_order_store, BaseOrderStore

__all__ = ["get_order_store", "BaseOrderStore"]
