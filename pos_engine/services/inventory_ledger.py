"""
Inventory ledger: the only writer of StockItem.quantity and price_per_unit.

Every mutating operation appends exactly one StockLedgerEntry (purchase and a
reducing fix also append a StockPurchaseRecord). Operations take an optional
``conn``: pass the caller's unit-of-work connection to join its transaction,
or omit it to run as a unit of work of its own.
"""
import logging
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pos_engine.core.db import joined
from pos_engine.core.errors import InvalidStockUpdateError, NotFoundError
from pos_engine.core.numbers import to_quantity, to_unit_cost
from pos_engine.models.inventory import LedgerKind, StockItem, StockLedgerEntry, StockPurchaseRecord

log = logging.getLogger("inventory_ledger")

UPDATABLE_FIELDS = ("name", "name_ar", "name_fr", "unit_type", "price_per_unit", "alert_threshold")


async def _locked_item(stock_item_id: UUID, conn: Any) -> StockItem:
    # Row lock where the backend supports it; the unit-of-work lock covers SQLite
    item = await StockItem.filter(id=stock_item_id).using_db(conn).select_for_update().first()
    if not item:
        raise NotFoundError("Stock item", stock_item_id)
    return item


async def _apply(
    item: StockItem,
    kind: LedgerKind,
    new_quantity: Decimal,
    affects_cost: bool,
    reason: Optional[str],
    conn: Any,
    new_price: Optional[Decimal] = None,
) -> StockLedgerEntry:
    previous = item.quantity
    entry = await StockLedgerEntry.create(
        stock_item=item,
        kind=kind,
        quantity_change=new_quantity - previous,
        previous_quantity=previous,
        new_quantity=new_quantity,
        affects_cost=affects_cost,
        reason=reason,
        using_db=conn,
    )
    item.quantity = new_quantity
    update_fields = ["quantity", "updated_at"]
    if new_price is not None:
        item.price_per_unit = new_price
        update_fields.append("price_per_unit")
    await item.save(update_fields=update_fields, using_db=conn)
    return entry


# ---------------- Mutations ----------------

async def deduct(stock_item_id: UUID, amount, reason: Optional[str] = None, conn: Any = None) -> StockItem:
    """
    Subtracts ``amount`` unconditionally. Quantity may go negative: overselling
    is allowed and shows up in get_low_stock instead of failing the sale.
    Cost basis is untouched; the sale captures price_per_unit separately.
    """
    amount = to_quantity(amount)
    async with joined(conn) as conn:
        item = await _locked_item(stock_item_id, conn)
        await _apply(item, LedgerKind.ORDER_DEDUCTION, item.quantity - amount, False, reason, conn)
    if item.quantity < 0:
        log.warning(f"Stock item {item.name} ({item.id}) oversold: quantity now {item.quantity}")
    return item


async def restore(stock_item_id: UUID, amount, reason: Optional[str] = None, conn: Any = None) -> StockItem:
    """
    Puts back an amount previously taken by deduct. Callers pass the recorded
    OrderLineDeduction.quantity_deducted, never a recomputed recipe amount.
    """
    amount = to_quantity(amount)
    async with joined(conn) as conn:
        item = await _locked_item(stock_item_id, conn)
        await _apply(item, LedgerKind.ORDER_DEDUCTION, item.quantity + amount, False, reason, conn)
    return item


async def purchase(stock_item_id: UUID, quantity, price_per_unit, conn: Any = None) -> StockItem:
    """
    Receives a lot and re-averages the cost:
    new_price = (old_qty * old_price + qty * price) / (old_qty + qty).
    When the resulting quantity is not positive the lot price is used as is.
    """
    quantity = to_quantity(quantity)
    price_per_unit = to_unit_cost(price_per_unit)
    total_cost = to_unit_cost(quantity * price_per_unit)

    async with joined(conn) as conn:
        item = await _locked_item(stock_item_id, conn)
        new_quantity = item.quantity + quantity
        if new_quantity > 0:
            new_price = to_unit_cost((item.quantity * item.price_per_unit + total_cost) / new_quantity)
        else:
            new_price = price_per_unit

        await StockPurchaseRecord.create(
            stock_item=item,
            quantity=quantity,
            price_per_unit=price_per_unit,
            total_cost=total_cost,
            using_db=conn,
        )
        await _apply(
            item, LedgerKind.PURCHASE, new_quantity, True,
            f"Purchase: {quantity} @ {price_per_unit}", conn, new_price=new_price,
        )
    log.info(f"Purchase for {item.name}: +{quantity} @ {price_per_unit}, avg cost now {item.price_per_unit}")
    return item


async def adjust(stock_item_id: UUID, new_quantity, reason: Optional[str] = None, conn: Any = None) -> StockItem:
    """Sets the counted quantity after waste or consumption. Cost basis is untouched."""
    new_quantity = to_quantity(new_quantity)
    async with joined(conn) as conn:
        item = await _locked_item(stock_item_id, conn)
        await _apply(item, LedgerKind.MANUAL_ADJUST, new_quantity, False, reason, conn)
    return item


async def fix(stock_item_id: UUID, new_quantity, reason: Optional[str] = None, conn: Any = None) -> StockItem:
    """
    Corrects a wrongly entered quantity. A downward correction also appends a
    negative purchase record (diff, price, diff * price) so valuation history
    drops by the removed amount; price_per_unit itself is not re-averaged.
    """
    new_quantity = to_quantity(new_quantity)
    async with joined(conn) as conn:
        item = await _locked_item(stock_item_id, conn)
        diff = new_quantity - item.quantity
        price = item.price_per_unit
        await _apply(item, LedgerKind.QUANTITY_FIX, new_quantity, True, reason, conn)
        if diff < 0:
            await StockPurchaseRecord.create(
                stock_item=item,
                quantity=diff,
                price_per_unit=price,
                total_cost=to_unit_cost(diff * price),
                using_db=conn,
            )
    return item


# ---------------- Stock item lifecycle ----------------

async def create_stock_item(
    name: str,
    unit_type: str,
    price_per_unit=0,
    quantity=0,
    alert_threshold=0,
    name_ar: Optional[str] = None,
    name_fr: Optional[str] = None,
    conn: Any = None,
) -> StockItem:
    """Creates an item at zero and books any opening balance as a ManualAdjust entry."""
    async with joined(conn) as conn:
        item = await StockItem.create(
            name=name,
            name_ar=name_ar,
            name_fr=name_fr,
            unit_type=unit_type,
            quantity=Decimal("0"),
            price_per_unit=to_unit_cost(price_per_unit),
            alert_threshold=to_quantity(alert_threshold),
            using_db=conn,
        )
        opening = to_quantity(quantity)
        if opening != 0:
            await _apply(item, LedgerKind.MANUAL_ADJUST, opening, False, "Opening balance", conn)
    return item


async def update_stock_item(stock_item_id: UUID, conn: Any = None, **changes) -> StockItem:
    """Updates descriptive fields, threshold and cost. Quantity only moves through the ledger."""
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise InvalidStockUpdateError(f"Cannot update stock item fields: {', '.join(sorted(unknown))}")

    async with joined(conn) as conn:
        item = await _locked_item(stock_item_id, conn)
        for key, value in changes.items():
            if value is None:
                continue
            if key == "price_per_unit":
                value = to_unit_cost(value)
            elif key == "alert_threshold":
                value = to_quantity(value)
            setattr(item, key, value)
        await item.save(using_db=conn)
    return item


async def deactivate_stock_item(stock_item_id: UUID, conn: Any = None) -> StockItem:
    """Soft delete; ledger and deduction rows keep referencing the item."""
    async with joined(conn) as conn:
        item = await _locked_item(stock_item_id, conn)
        item.is_active = False
        await item.save(update_fields=["is_active", "updated_at"], using_db=conn)
    return item


# ---------------- Queries ----------------

async def get_by_id(stock_item_id: UUID, conn: Any = None) -> StockItem:
    item = await StockItem.get_or_none(id=stock_item_id).using_db(conn)
    if not item:
        raise NotFoundError("Stock item", stock_item_id)
    return item


async def list_stock_items(include_inactive: bool = False) -> List[StockItem]:
    queryset = StockItem.all() if include_inactive else StockItem.filter(is_active=True)
    return await queryset.order_by("name")


async def get_low_stock() -> List[StockItem]:
    """Active items at or below their alert threshold, lowest quantity first."""
    # Compared in Python: SQLite stores decimals as text
    items = await StockItem.filter(is_active=True)
    return sorted((i for i in items if i.quantity <= i.alert_threshold), key=lambda i: i.quantity)


async def get_low_stock_count() -> int:
    return len(await get_low_stock())


async def get_ledger(stock_item_id: UUID) -> List[StockLedgerEntry]:
    await get_by_id(stock_item_id)
    return await StockLedgerEntry.filter(stock_item_id=stock_item_id).order_by("created_at", "id")


async def get_purchases(stock_item_id: UUID) -> List[StockPurchaseRecord]:
    return await StockPurchaseRecord.filter(stock_item_id=stock_item_id).order_by("purchased_at", "id")


async def replay_quantity(stock_item_id: UUID) -> Decimal:
    """Quantity obtained by replaying the item's ledger from zero."""
    quantity = Decimal("0")
    for entry in await get_ledger(stock_item_id):
        quantity += entry.quantity_change
    return quantity
