"""
Order Entry Error Taxonomy

Every failure raised inside the composition core derives from
OrderEntryError. The Release Coordinator catches these at the edge of each
consumer action, logs them and turns them into a single user-facing notice,
so none of them is fatal to the process.
"""

from typing import Optional


class OrderEntryError(Exception):
    """Base class for recoverable order-entry failures."""

    error_code = "order_entry_error"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class NetworkFailure(OrderEntryError):
    """A collaborator call failed or timed out."""

    error_code = "network_failure"

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause=cause)
        self.operation = operation
        self.status_code = status_code


class ProvisioningFailure(OrderEntryError):
    """Table or order creation failed partway through the release saga."""

    error_code = "provisioning_failure"


class InconsistentState(OrderEntryError):
    """Collaborator data cannot be reconciled with the local view."""

    error_code = "inconsistent_state"


class ItemLocked(OrderEntryError):
    """The item has left the edit window and can no longer be changed here."""

    error_code = "item_locked"


class SessionClosed(OrderEntryError):
    """The session was torn down while (or before) the action ran."""

    error_code = "session_closed"
