"""
Pydantic Schemas for the Order Store Wire Format and the Session API

Two groups of models live here:
    - Wire models mirroring the order store's JSON (camelCase aliases such as
      tableId, orderItemId, delayExpiresAt). They accept either the alias or
      the Python field name so the in-memory store can build them directly.
    - Request/response models for the session API exposed in main.py.

Version: 1.0.0
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================

class TableStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"


class OrderStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ItemStatus(str, Enum):
    """Line item lifecycle, in forward order (see state_machine)."""
    DRAFT = "draft"
    LIMBO = "limbo"
    PENDING = "pending"
    FIRED = "fired"
    COMPLETED = "completed"


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps from the store are the store's local time."""
    if value is None or value.tzinfo is not None:
        return value
    return value.astimezone()


# =============================================================================
# WIRE MODELS
# =============================================================================

class WireModel(BaseModel):
    """Base for order store payloads."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MenuItem(WireModel):
    """Catalog entry as served by the menu collaborator."""
    id: int = Field(..., alias="menuItemId")
    name: str
    price: float = Field(..., ge=0)
    category: Optional[str] = None


class TableCreate(WireModel):
    number: str = Field(..., alias="tableNumber", min_length=1)
    section: Optional[str] = None
    seat_count: int = Field(default=0, alias="seatCount", ge=0)
    status: TableStatus = TableStatus.AVAILABLE
    ephemeral: bool = Field(default=False, alias="isQuickOrder")


class Table(TableCreate):
    """A physical or quick-order service point."""
    id: int = Field(..., alias="tableId")
    server_id: Optional[str] = Field(default=None, alias="serverName")


class OrderCreate(WireModel):
    table_id: int = Field(..., alias="tableId")
    type: str = Field(default="dine_in", alias="orderType")
    status: OrderStatus = OrderStatus.OPEN
    server_id: Optional[str] = Field(default=None, alias="serverName")


class Order(OrderCreate):
    """One tab against a table."""
    id: int = Field(..., alias="orderId")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    closed_at: Optional[datetime] = Field(default=None, alias="closedAt")

    @field_validator("created_at", "closed_at")
    @classmethod
    def localize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_aware(v)


class OrderItemCreate(WireModel):
    order_id: int = Field(..., alias="orderId")
    menu_item_id: int = Field(..., alias="menuItemId")
    quantity: int = Field(default=1, ge=1)
    price: float = Field(..., ge=0)
    status: ItemStatus = ItemStatus.DRAFT


class OrderItem(OrderItemCreate):
    """A persisted line item."""
    id: int = Field(..., alias="orderItemId")
    release_expiry: Optional[datetime] = Field(default=None, alias="delayExpiresAt")

    @field_validator("release_expiry")
    @classmethod
    def localize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_aware(v)


class SentItem(WireModel):
    """One entry of the send response: the item and its grace-period expiry."""
    item_id: int = Field(..., alias="orderItemId")
    release_expiry: Optional[datetime] = Field(default=None, alias="delayExpiresAt")

    @field_validator("release_expiry")
    @classmethod
    def localize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_aware(v)


# =============================================================================
# SESSION API SCHEMAS
# =============================================================================

class SessionCreate(BaseModel):
    """Open a composition session; no table means a quick order."""
    table_id: Optional[int] = Field(None, examples=[3])


class AddItemRequest(BaseModel):
    menu_item_id: int = Field(..., examples=[12])


class SessionItemView(BaseModel):
    index: int
    id: Optional[int] = None
    order_id: Optional[int] = None
    menu_item_id: int
    name: Optional[str] = None
    price: float
    quantity: int
    status: ItemStatus
    editable: bool
    locked: bool
    saved_draft: bool


class SessionView(BaseModel):
    """Read-only projection rendered by the order entry screen."""
    session_id: Optional[str] = None
    table_id: Optional[int] = None
    table_name: str
    canonical_order_id: Optional[int] = None
    open_order_ids: List[int] = Field(default_factory=list)
    items: List[SessionItemView] = Field(default_factory=list)
    seconds_left: Optional[int] = None
    draft_saved: bool = False
    notification: str
    failure_notice: Optional[str] = None
    subtotal: float
    tax: float
    total: float
    closed: bool = False


class ActionResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error_code: Optional[str] = None
    session: SessionView


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    store: str
    environment: str
    active_sessions: int
    timestamp: datetime
