import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from tortoise import timezone

from pos_engine.core.config import LOW_STOCK_ALERTS
from pos_engine.core.db import unit_of_work
from pos_engine.core.errors import InvalidOrderError, InvalidStateError, NotFoundError
from pos_engine.core.numbers import to_money, to_quantity
from pos_engine.events.outbox_utility import (
    LOW_STOCK_ALERT,
    ORDER_CANCELLED,
    ORDER_CREATED,
    ORDER_ITEMS_UPDATED,
    create_outbox_event,
)
from pos_engine.models.order import (
    LOCKED_STATUSES,
    STATUS_TRANSITIONS,
    Order,
    OrderLine,
    OrderLineDeduction,
    OrderStatus,
    OrderType,
)
from pos_engine.services import daily_sequence, inventory_ledger
from pos_engine.services.catalog_service import recipe_resolver

log = logging.getLogger("order_service")


@dataclass(frozen=True)
class SkippedIngredient:
    """A recipe ingredient that was not deducted because its stock item is missing."""
    menu_item_id: UUID
    stock_item_id: UUID
    reason: str


@dataclass
class OrderResult:
    order: Order
    warnings: List[SkippedIngredient] = field(default_factory=list)


@dataclass
class _PricedLine:
    menu_item_id: UUID
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    notes: Optional[str]
    worker_id: Optional[int]


def _today() -> date:
    return date.today()


def _parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidStateError(f"Unknown order status: {value!r}")


async def _price_lines(items: List[Dict], resolver, conn: Any, allow_price_override: bool) -> List[_PricedLine]:
    """Resolves every requested line against the catalog. A missing menu item aborts the whole operation."""
    if not items:
        raise InvalidOrderError("Order must contain items.")

    priced = []
    for it in items:
        qty = it.get("quantity")
        if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
            raise InvalidOrderError(f"Quantity must be a positive integer, got {qty!r}")

        menu = await resolver.get_menu_item(it["menu_item_id"], conn)
        override = it.get("unit_price") if allow_price_override else None
        unit_price = to_money(override if override is not None else menu.price)

        priced.append(_PricedLine(
            menu_item_id=menu.id,
            quantity=qty,
            unit_price=unit_price,
            total_price=to_money(unit_price * qty),
            notes=it.get("notes"),
            worker_id=it.get("worker_id"),
        ))
    return priced


async def _insert_lines(order: Order, priced: List[_PricedLine], resolver, conn: Any) -> List[SkippedIngredient]:
    """Inserts the lines and consumes their recipes, recording exactly what each line took."""
    warnings = []
    alerted = set()
    reason = f"Order #{order.daily_number}"

    for line in priced:
        order_line = await OrderLine.create(
            order=order,
            menu_item_id=line.menu_item_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            total_price=line.total_price,
            notes=line.notes,
            worker_id=line.worker_id,
            using_db=conn,
        )

        for ing in await resolver.get_ingredients(line.menu_item_id, conn):
            amount = to_quantity(ing.quantity_per_unit * line.quantity)
            try:
                stock = await inventory_ledger.deduct(ing.stock_item_id, amount, reason=reason, conn=conn)
            except NotFoundError as e:
                log.warning(f"{reason}: skipped ingredient {ing.stock_item_id} of menu item {line.menu_item_id}: {e}")
                warnings.append(SkippedIngredient(line.menu_item_id, ing.stock_item_id, str(e)))
                continue

            await OrderLineDeduction.create(
                order_line=order_line,
                stock_item_id=ing.stock_item_id,
                quantity_deducted=amount,
                cost_per_unit=stock.price_per_unit,
                using_db=conn,
            )

            if LOW_STOCK_ALERTS and stock.quantity <= stock.alert_threshold and stock.id not in alerted:
                alerted.add(stock.id)
                log.info(f"ALERT: Low stock for {stock.name}: {stock.quantity} (threshold {stock.alert_threshold})")
                await create_outbox_event(
                    aggregate_type="stock_item",
                    aggregate_id=stock.id,
                    event_type=LOW_STOCK_ALERT,
                    payload={
                        "stock_item_id": str(stock.id),
                        "name": stock.name,
                        "quantity": str(stock.quantity),
                        "threshold": str(stock.alert_threshold),
                        "triggered_by_order_id": str(order.id),
                    },
                    conn=conn,
                )
    return warnings


async def _restore_deductions(order: Order, reason: str, conn: Any) -> int:
    """Gives back every recorded deduction of the order, by its recorded amount."""
    line_ids = await OrderLine.filter(order_id=order.id).using_db(conn).values_list("id", flat=True)
    deductions = await OrderLineDeduction.filter(order_line_id__in=line_ids).using_db(conn)
    for ded in deductions:
        await inventory_ledger.restore(ded.stock_item_id, ded.quantity_deducted, reason=reason, conn=conn)
    return len(deductions)


async def _locked_order(order_id: UUID, conn: Any) -> Order:
    order = await Order.filter(id=order_id).using_db(conn).select_for_update().first()
    if not order:
        raise NotFoundError("Order", order_id)
    return order


def _lines_payload(priced: List[_PricedLine]) -> List[Dict]:
    return [
        {
            "menu_item_id": str(line.menu_item_id),
            "quantity": line.quantity,
            "unit_price": str(line.unit_price),
            "notes": line.notes,
            "worker_id": line.worker_id,
        }
        for line in priced
    ]


async def create_order(
    order_type,
    items: List[Dict],
    table_number: Optional[str] = None,
    customer_phone: Optional[str] = None,
    customer_name: Optional[str] = None,
    notes: Optional[str] = None,
    resolver=None,
) -> OrderResult:
    """
    Creates an order and consumes stock for its recipes in one unit of work.

    ``items`` are dicts with ``menu_item_id``, ``quantity`` and optionally
    ``unit_price`` (overrides the catalog price), ``notes`` and ``worker_id``.
    Nothing is written if any menu item is missing. Ingredients whose stock
    item is missing are skipped and reported in ``OrderResult.warnings``.
    """
    resolver = resolver or recipe_resolver
    try:
        order_type = OrderType(order_type)
    except ValueError:
        raise InvalidOrderError(f"Unknown order type: {order_type!r}")

    async with unit_of_work() as conn:
        order_date = _today()
        daily_number = await daily_sequence.next_number(order_date, conn=conn)

        priced = await _price_lines(items, resolver, conn, allow_price_override=True)
        subtotal = to_money(sum((line.total_price for line in priced), Decimal("0")))

        # 1. Create the Order header
        order = await Order.create(
            daily_number=daily_number,
            order_date=order_date,
            order_type=order_type,
            table_number=table_number,
            customer_phone=customer_phone,
            customer_name=customer_name,
            status=OrderStatus.PREPARING,
            subtotal=subtotal,
            total=subtotal,
            notes=notes,
            using_db=conn,
        )

        # 2. Lines, stock deduction and deduction records
        warnings = await _insert_lines(order, priced, resolver, conn)

        # 3. ATOMIC EVENT: kitchen ticket / notifications pick this up after commit
        await create_outbox_event(
            aggregate_type="order",
            aggregate_id=order.id,
            event_type=ORDER_CREATED,
            payload={
                "order_id": str(order.id),
                "daily_number": daily_number,
                "order_date": order_date.isoformat(),
                "order_type": order_type.value,
                "table_number": table_number,
                "total": str(subtotal),
                "items": _lines_payload(priced),
            },
            conn=conn,
        )

    log.info(f"Order #{daily_number} ({order.id}) created, total {subtotal}, {len(warnings)} warning(s).")
    return OrderResult(order=await get_order_by_id(order.id), warnings=warnings)


async def cancel_order(order_id: UUID) -> Order:
    """
    Cancels the order and restores every recorded deduction. Cancelling an
    already cancelled order returns it unchanged. Completed orders may be
    cancelled too, which undoes their stock consumption.
    """
    async with unit_of_work() as conn:
        order = await _locked_order(order_id, conn)
        if order.status == OrderStatus.CANCELLED:
            log.info(f"Order #{order.daily_number} already cancelled, nothing to do.")
        else:
            old_status = order.status
            restored = await _restore_deductions(order, f"Order #{order.daily_number} cancelled", conn)

            order.status = OrderStatus.CANCELLED
            order.completed_at = timezone.now()
            await order.save(update_fields=["status", "completed_at"], using_db=conn)

            await create_outbox_event(
                aggregate_type="order",
                aggregate_id=order.id,
                event_type=ORDER_CANCELLED,
                payload={
                    "order_id": str(order.id),
                    "daily_number": order.daily_number,
                    "old_status": old_status.value,
                },
                conn=conn,
            )
            log.info(f"Order #{order.daily_number} cancelled, {restored} deduction(s) restored.")

    return await get_order_by_id(order_id)


async def update_order_items(order_id: UUID, items: List[Dict], resolver=None) -> OrderResult:
    """
    Replaces the order's line set: every recorded deduction is restored and the
    old lines removed, then the new lines are priced from the current catalog
    and deducted as on creation. Completed or cancelled orders are returned
    unchanged.
    """
    resolver = resolver or recipe_resolver

    async with unit_of_work() as conn:
        order = await _locked_order(order_id, conn)
        if order.status in LOCKED_STATUSES:
            log.info(f"Order #{order.daily_number} is {order.status.value}; items not updated.")
            warnings = []
        else:
            priced = await _price_lines(items, resolver, conn, allow_price_override=False)

            # a. Retract: restore exactly what was recorded
            await _restore_deductions(order, f"Order #{order.daily_number} edited", conn)

            # b. Drop old lines together with their deduction records
            line_ids = await OrderLine.filter(order_id=order.id).using_db(conn).values_list("id", flat=True)
            await OrderLineDeduction.filter(order_line_id__in=line_ids).using_db(conn).delete()
            await OrderLine.filter(order_id=order.id).using_db(conn).delete()

            # c. Reapply
            warnings = await _insert_lines(order, priced, resolver, conn)

            # d. Totals
            order.subtotal = to_money(sum((line.total_price for line in priced), Decimal("0")))
            order.total = order.subtotal
            await order.save(update_fields=["subtotal", "total"], using_db=conn)

            await create_outbox_event(
                aggregate_type="order",
                aggregate_id=order.id,
                event_type=ORDER_ITEMS_UPDATED,
                payload={
                    "order_id": str(order.id),
                    "daily_number": order.daily_number,
                    "total": str(order.total),
                    "items": _lines_payload(priced),
                },
                conn=conn,
            )
            log.info(f"Order #{order.daily_number} items replaced, total now {order.total}.")

    return OrderResult(order=await get_order_by_id(order_id), warnings=warnings)


async def update_order_status(order_id: UUID, new_status) -> Order:
    """
    Moves the order along STATUS_TRANSITIONS. Writing the current status is a
    no-op; completing stamps completed_at; cancelling goes through cancel_order
    so stock is restored.
    """
    new_status = _parse_status(new_status)
    if new_status == OrderStatus.CANCELLED:
        return await cancel_order(order_id)

    async with unit_of_work() as conn:
        order = await _locked_order(order_id, conn)
        old_status = order.status

        if new_status != old_status:
            if new_status not in STATUS_TRANSITIONS[old_status]:
                raise InvalidStateError(
                    f"Cannot move order from {old_status.value} to {new_status.value}",
                    current_status=old_status,
                )

            order.status = new_status
            update_fields = ["status"]
            if new_status == OrderStatus.COMPLETED:
                order.completed_at = timezone.now()
                update_fields.append("completed_at")
            await order.save(update_fields=update_fields, using_db=conn)

            await create_outbox_event(
                aggregate_type="order",
                aggregate_id=order.id,
                event_type=f"order.status.{new_status.value}.v1",
                payload={
                    "order_id": str(order.id),
                    "daily_number": order.daily_number,
                    "old_status": old_status.value,
                    "new_status": new_status.value,
                },
                conn=conn,
            )

    return await get_order_by_id(order_id)


async def get_order_by_id(order_id: UUID) -> Optional[Order]:
    """Fetches an order with its lines, their menu items and deduction records."""
    # Pre-fetch related entities to minimize DB queries (N+1 avoidance)
    return await Order.get_or_none(id=order_id).prefetch_related(
        "lines", "lines__menu_item", "lines__deductions"
    )


async def get_orders_by_date(order_date: date) -> List[Order]:
    return await Order.filter(order_date=order_date).order_by("-daily_number")


async def get_orders_by_date_range(start_date: date, end_date: date) -> List[Order]:
    return await Order.filter(order_date__gte=start_date, order_date__lte=end_date).order_by(
        "-order_date", "-daily_number"
    )


async def get_today_orders() -> List[Order]:
    return await Order.filter(order_date=_today()).order_by("-daily_number").prefetch_related(
        "lines", "lines__menu_item"
    )
