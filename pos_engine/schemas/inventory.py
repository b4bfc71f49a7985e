import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from pos_engine.models.inventory import LedgerKind


class StockItemCreate(BaseModel):
    name: str = Field(..., description="Name of the ingredient (e.g., Flour).")
    name_ar: Optional[str] = None
    name_fr: Optional[str] = None
    unit_type: str = Field(..., description="Unit of measure tag (kg, l, pcs...).")
    quantity: Decimal = Field(Decimal("0"), description="Opening balance.")
    price_per_unit: Decimal = Field(Decimal("0"), ge=0)
    alert_threshold: Decimal = Field(Decimal("0"), ge=0, description="Low stock level.")


class StockItemUpdate(BaseModel):
    name: Optional[str] = None
    name_ar: Optional[str] = None
    name_fr: Optional[str] = None
    unit_type: Optional[str] = None
    price_per_unit: Optional[Decimal] = Field(None, ge=0)
    alert_threshold: Optional[Decimal] = Field(None, ge=0)


class StockItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    name_ar: Optional[str] = None
    name_fr: Optional[str] = None
    unit_type: str
    quantity: Decimal
    price_per_unit: Decimal
    alert_threshold: Decimal
    is_active: bool


class PurchaseRequest(BaseModel):
    quantity: Decimal = Field(..., gt=0)
    price_per_unit: Decimal = Field(..., ge=0)


class QuantityCorrectionRequest(BaseModel):
    """Body for adjust (waste/consumption) and fix (wrong entry)."""
    new_quantity: Decimal
    reason: str = Field(..., min_length=1)


class StockMovementRequest(BaseModel):
    """Body for direct deduct/restore calls."""
    amount: Decimal = Field(..., gt=0)
    reason: Optional[str] = None


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: LedgerKind
    quantity_change: Decimal
    previous_quantity: Decimal
    new_quantity: Decimal
    affects_cost: bool
    reason: Optional[str] = None
    created_at: datetime
