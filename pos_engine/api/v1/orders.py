import logging
from datetime import date
from typing import List
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from pos_engine.core.errors import NotFoundError
from pos_engine.schemas.order import (
    OrderDetailResponse,
    OrderItemsUpdate,
    OrderLineResponse,
    OrderRequest,
    OrderResultResponse,
    OrderStatusUpdate,
    SkippedIngredientResponse,
)
from pos_engine.schemas.response import SuccessResponse
from pos_engine.services.order_service import (
    OrderResult,
    cancel_order,
    create_order,
    get_order_by_id,
    get_orders_by_date,
    get_orders_by_date_range,
    get_today_orders,
    update_order_items,
    update_order_status,
)

router = APIRouter()
log = logging.getLogger("orders_api")


def _serialize_order(order, with_lines: bool = True) -> OrderDetailResponse:
    items: List[OrderLineResponse] = []
    if with_lines:
        for line in order.lines:
            menu = getattr(line, "menu_item", None)
            items.append(OrderLineResponse(
                id=line.id,
                menu_item_id=line.menu_item_id,
                name=getattr(menu, "name", None),
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.total_price,
                notes=line.notes,
                worker_id=line.worker_id,
            ))
    return OrderDetailResponse(
        id=order.id,
        daily_number=order.daily_number,
        order_date=order.order_date,
        order_type=order.order_type,
        status=order.status,
        table_number=order.table_number,
        customer_phone=order.customer_phone,
        customer_name=order.customer_name,
        subtotal=order.subtotal,
        total=order.total,
        notes=order.notes,
        created_at=order.created_at,
        completed_at=order.completed_at,
        items=items,
    )


def _serialize_result(result: OrderResult) -> dict:
    return OrderResultResponse(
        order=_serialize_order(result.order),
        warnings=[
            SkippedIngredientResponse(
                menu_item_id=w.menu_item_id, stock_item_id=w.stock_item_id, reason=w.reason
            )
            for w in result.warnings
        ],
    ).model_dump(mode="json")


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_order_endpoint(request_data: OrderRequest):
    """
    Places a new order. Stock is consumed in the same transaction, so the
    response is final: 201 with the hydrated order, or an error and no order.
    """
    result = await create_order(
        order_type=request_data.order_type,
        items=[item.model_dump() for item in request_data.items],
        table_number=request_data.table_number,
        customer_phone=request_data.customer_phone,
        customer_name=request_data.customer_name,
        notes=request_data.notes,
    )
    log.info(f"Order #{result.order.daily_number} placed via API.")
    return SuccessResponse(data=_serialize_result(result))


@router.get("/today", response_model=SuccessResponse)
async def get_today_orders_endpoint():
    orders = await get_today_orders()
    return SuccessResponse(data=[_serialize_order(o).model_dump(mode="json") for o in orders])


@router.get("/by-date/{order_date}", response_model=SuccessResponse)
async def get_orders_by_date_endpoint(order_date: date):
    orders = await get_orders_by_date(order_date)
    return SuccessResponse(data=[_serialize_order(o, with_lines=False).model_dump(mode="json") for o in orders])


@router.get("/range", response_model=SuccessResponse)
async def get_orders_by_range_endpoint(start: date = Query(...), end: date = Query(...)):
    if end < start:
        raise HTTPException(status_code=400, detail="end must not be before start")
    orders = await get_orders_by_date_range(start, end)
    return SuccessResponse(data=[_serialize_order(o, with_lines=False).model_dump(mode="json") for o in orders])


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order_endpoint(order_id: UUID):
    """Fetches details for a specific order."""
    order = await get_order_by_id(order_id)
    if not order:
        raise NotFoundError("Order", order_id)
    return SuccessResponse(data=_serialize_order(order).model_dump(mode="json"))


@router.put("/{order_id}/items", response_model=SuccessResponse)
async def update_items_endpoint(order_id: UUID, payload: OrderItemsUpdate):
    """
    Replaces the order's items. Completed or cancelled orders come back unchanged.
    """
    result = await update_order_items(order_id, [item.model_dump() for item in payload.items])
    return SuccessResponse(data=_serialize_result(result))


@router.patch("/{order_id}/status", response_model=SuccessResponse)
async def update_status_endpoint(order_id: UUID, payload: OrderStatusUpdate):
    """
    Updates status ('completed' or 'cancelled'). Disallowed moves return 409.
    """
    order = await update_order_status(order_id, payload.status)
    return SuccessResponse(data=_serialize_order(order).model_dump(mode="json"))


@router.post("/{order_id}/cancel", response_model=SuccessResponse)
async def cancel_order_endpoint(order_id: UUID):
    """
    Cancels the order and restores its stock. Repeating the call is harmless.
    """
    order = await cancel_order(order_id)
    return SuccessResponse(data=_serialize_order(order).model_dump(mode="json"))
