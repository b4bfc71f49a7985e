import logging
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, status

from pos_engine.schemas.inventory import (
    LedgerEntryResponse,
    PurchaseRequest,
    QuantityCorrectionRequest,
    StockItemCreate,
    StockItemResponse,
    StockItemUpdate,
    StockMovementRequest,
)
from pos_engine.schemas.response import SuccessResponse
from pos_engine.services import inventory_ledger

log = logging.getLogger("inventory_api")

router = APIRouter()


def _item(item) -> Dict[str, Any]:
    return StockItemResponse.model_validate(item).model_dump(mode="json")


@router.get("/", response_model=SuccessResponse)
async def list_stock_items(include_inactive: bool = False):
    items = await inventory_ledger.list_stock_items(include_inactive=include_inactive)
    return SuccessResponse(data=[_item(i) for i in items])


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_stock_item(item_data: StockItemCreate):
    """Adds a stock item; a non-zero opening quantity is booked in the ledger."""
    item = await inventory_ledger.create_stock_item(**item_data.model_dump())
    log.info(f"Stock item '{item.name}' created with opening balance {item.quantity}.")
    return SuccessResponse(data=_item(item))


@router.get("/low-stock", response_model=SuccessResponse)
async def get_low_stock():
    items = await inventory_ledger.get_low_stock()
    return SuccessResponse(data=[_item(i) for i in items])


@router.get("/low-stock/count", response_model=SuccessResponse)
async def get_low_stock_count():
    return SuccessResponse(data={"count": await inventory_ledger.get_low_stock_count()})


@router.get("/{stock_item_id}", response_model=SuccessResponse)
async def get_stock_item(stock_item_id: UUID):
    """Fetches the current balance and cost of a stock item."""
    return SuccessResponse(data=_item(await inventory_ledger.get_by_id(stock_item_id)))


@router.patch("/{stock_item_id}", response_model=SuccessResponse)
async def update_stock_item(stock_item_id: UUID, changes: StockItemUpdate):
    item = await inventory_ledger.update_stock_item(stock_item_id, **changes.model_dump(exclude_unset=True))
    return SuccessResponse(data=_item(item))


@router.delete("/{stock_item_id}", response_model=SuccessResponse)
async def deactivate_stock_item(stock_item_id: UUID):
    return SuccessResponse(data=_item(await inventory_ledger.deactivate_stock_item(stock_item_id)))


@router.post("/{stock_item_id}/purchase", response_model=SuccessResponse)
async def purchase(stock_item_id: UUID, body: PurchaseRequest):
    item = await inventory_ledger.purchase(stock_item_id, body.quantity, body.price_per_unit)
    return SuccessResponse(data=_item(item))


@router.post("/{stock_item_id}/adjust", response_model=SuccessResponse)
async def adjust(stock_item_id: UUID, body: QuantityCorrectionRequest):
    """Waste/consumption count: sets quantity, leaves cost alone."""
    item = await inventory_ledger.adjust(stock_item_id, body.new_quantity, body.reason)
    return SuccessResponse(data=_item(item))


@router.post("/{stock_item_id}/fix", response_model=SuccessResponse)
async def fix(stock_item_id: UUID, body: QuantityCorrectionRequest):
    """Wrong-entry correction: sets quantity and corrects valuation history."""
    item = await inventory_ledger.fix(stock_item_id, body.new_quantity, body.reason)
    return SuccessResponse(data=_item(item))


@router.post("/{stock_item_id}/deduct", response_model=SuccessResponse)
async def deduct(stock_item_id: UUID, body: StockMovementRequest):
    item = await inventory_ledger.deduct(stock_item_id, body.amount, body.reason)
    return SuccessResponse(data=_item(item))


@router.post("/{stock_item_id}/restore", response_model=SuccessResponse)
async def restore(stock_item_id: UUID, body: StockMovementRequest):
    item = await inventory_ledger.restore(stock_item_id, body.amount, body.reason)
    return SuccessResponse(data=_item(item))


@router.get("/{stock_item_id}/ledger", response_model=SuccessResponse)
async def get_ledger(stock_item_id: UUID):
    entries = await inventory_ledger.get_ledger(stock_item_id)
    return SuccessResponse(data=[LedgerEntryResponse.model_validate(e).model_dump(mode="json") for e in entries])


@router.get("/{stock_item_id}/reconcile", response_model=SuccessResponse)
async def reconcile(stock_item_id: UUID):
    """Compares the stored balance with the balance replayed from the ledger."""
    item = await inventory_ledger.get_by_id(stock_item_id)
    replayed = await inventory_ledger.replay_quantity(stock_item_id)
    return SuccessResponse(data={
        "stock_item_id": str(item.id),
        "quantity": str(item.quantity),
        "replayed_quantity": str(replayed),
        "balanced": replayed == item.quantity,
    })
