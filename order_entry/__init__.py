"""
                Order Entry Core

Order composition and timed release for a restaurant point of sale:
draft items, a shared edit window after sending, and on-demand
quick-order tables, backed by an in-memory or HTTP order store.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
