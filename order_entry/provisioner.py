"""
Quick-Order Table Provisioner

Walk-up and to-go business has no seat on the floor plan, so a table is
created on demand the first time such an order is saved or sent. Quick
order tables are numbered <prefix><n> (QO1, QO2, ...) by scanning the
existing tables and taking max + 1.

Known gap: scan-and-increment is not atomic. Two terminals provisioning at
the same moment can derive the same number. The store should hand out the
number from a server-side sequence; until it does, this module only
guarantees one table per session.
"""

import asyncio
import logging
import re
from typing import Iterable, Optional

from order_entry.core.exceptions import OrderEntryError, ProvisioningFailure, SessionClosed
from order_entry.schemas import Table, TableCreate, TableStatus
from order_entry.services.store.base import BaseOrderStore

logger = logging.getLogger(__name__)


def next_quick_order_number(numbers: Iterable[Optional[str]], prefix: str = "QO") -> str:
    """
    Derive the next quick-order table number.

    Numbers with the prefix but no numeric suffix count as 0.

    Example:
        >>> next_quick_order_number(["QO1", "QO3", "W2"])
        'QO4'
        >>> next_quick_order_number([])
        'QO1'
    """
    suffix = re.compile(rf"^{re.escape(prefix)}(\d+)")
    highest = 0
    for number in numbers:
        if not number or not number.startswith(prefix):
            continue
        match = suffix.match(number)
        highest = max(highest, int(match.group(1)) if match else 0)
    return f"{prefix}{highest + 1}"


class QuickOrderProvisioner:
    """
    Allocates at most one quick-order table per session.

    The first call starts the provisioning task; every later or concurrent
    call awaits that same task. A failed attempt is forgotten so the user
    can retry.
    """

    def __init__(
        self,
        store: BaseOrderStore,
        prefix: str = "QO",
        section: str = "Quick Orders",
    ):
        self._store = store
        self._prefix = prefix
        self._section = section
        self._pending: Optional[asyncio.Task] = None
        self.table: Optional[Table] = None

    async def provision(self) -> Table:
        if self.table is not None:
            return self.table

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._create())
        pending = self._pending
        try:
            table = await asyncio.shield(pending)
        except asyncio.CancelledError:
            # Only the shared task was cancelled, by cancel().
            if pending.cancelled():
                raise SessionClosed("Quick order provisioning was abandoned")
            raise
        except BaseException:
            if self._pending is pending and pending.done():
                self._pending = None
            raise
        self.table = table
        return table

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def _create(self) -> Table:
        try:
            tables = await self._store.get_tables()
            number = next_quick_order_number((t.number for t in tables), self._prefix)
            logger.info(f"Creating quick order table {number}")
            table = await self._store.create_table(
                TableCreate(
                    number=number,
                    section=self._section,
                    seat_count=0,
                    status=TableStatus.AVAILABLE,
                    ephemeral=True,
                )
            )
        except OrderEntryError as e:
            logger.error(f"Quick order provisioning failed: {e}")
            raise ProvisioningFailure("Could not create quick order table", cause=e)

        logger.info(f"Quick order table {table.number} created (#{table.id})")
        return table
