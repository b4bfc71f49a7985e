import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from pos_engine.models.order import OrderStatus, OrderType


class OrderLineRequest(BaseModel):
    """Schema for a single line in an order request."""
    menu_item_id: uuid.UUID
    quantity: int = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Overrides the catalog price (creation only).")
    notes: Optional[str] = None
    worker_id: Optional[int] = None


class OrderRequest(BaseModel):
    """Schema for the full order placement request body."""
    order_type: OrderType
    items: List[OrderLineRequest]
    table_number: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    notes: Optional[str] = None


class OrderItemsUpdate(BaseModel):
    """Replacement line set for an order that is still preparing."""
    items: List[OrderLineRequest]


class OrderStatusUpdate(BaseModel):
    """Schema for updating an order status."""
    status: OrderStatus


class OrderLineResponse(BaseModel):
    """Schema for a line inside the detailed order response."""
    id: uuid.UUID
    menu_item_id: uuid.UUID
    name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    notes: Optional[str] = None
    worker_id: Optional[int] = None


class OrderDetailResponse(BaseModel):
    """Schema for fetching detailed order information."""
    id: uuid.UUID
    daily_number: int
    order_date: date
    order_type: OrderType
    status: OrderStatus
    table_number: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    subtotal: Decimal
    total: Decimal
    notes: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    items: List[OrderLineResponse] = []


class SkippedIngredientResponse(BaseModel):
    menu_item_id: uuid.UUID
    stock_item_id: uuid.UUID
    reason: str


class OrderResultResponse(BaseModel):
    """Created or edited order plus any ingredients that could not be deducted."""
    order: OrderDetailResponse
    warnings: List[SkippedIngredientResponse] = []
