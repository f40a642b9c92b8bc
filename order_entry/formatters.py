"""Display formatting shared by the session projection and the API."""

from typing import Optional

from order_entry.schemas import Table


def format_table_name(table: Optional[Table], quick_order_prefix: str = "QO") -> str:
    """
    "Quick Order QO1" for quick-order tables, "Table W3" otherwise.

    A session without a table yet is a quick order that has not been
    provisioned.
    """
    if table is None:
        return "New Quick Order"
    if not table.number:
        return "Unknown"
    if table.ephemeral or table.number.startswith(quick_order_prefix):
        return f"Quick Order {table.number}"
    return f"Table {table.number}"


def round_money(amount: float) -> float:
    return round(amount, 2)


def format_money(amount: float) -> str:
    return f"${amount:,.2f}"
