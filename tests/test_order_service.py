import asyncio
import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from pos_engine.core.errors import InvalidOrderError, InvalidStateError, NotFoundError, TransactionAbortedError
from pos_engine.models.catalog import MenuRecipeLine
from pos_engine.models.inventory import StockLedgerEntry
from pos_engine.models.order import DailyCounter, Order, OrderLine, OrderStatus
from pos_engine.models.outbox import OutboxEvent
from pos_engine.services import inventory_ledger, order_service
from pos_engine.services.catalog_service import CatalogRecipeResolver, Ingredient

TODAY = date(2026, 5, 2)


@pytest.fixture(autouse=True)
def fixed_today():
    with patch("pos_engine.services.order_service._today", return_value=TODAY) as mock_today:
        yield mock_today


def line(menu_item, quantity, **extra):
    return {"menu_item_id": menu_item.id, "quantity": quantity, **extra}


def deducted_by_stock_item(order):
    totals = {}
    for order_line in order.lines:
        for ded in order_line.deductions:
            totals[ded.stock_item_id] = totals.get(ded.stock_item_id, Decimal("0")) + ded.quantity_deducted
    return totals


def assert_totals_reconcile(order):
    lines = list(order.lines)
    for order_line in lines:
        assert order_line.total_price == order_line.unit_price * order_line.quantity
    assert order.subtotal == sum((l.total_price for l in lines), Decimal("0"))
    assert order.total == order.subtotal


class PhantomIngredientResolver(CatalogRecipeResolver):
    """Catalog whose Fries recipe also points at a stock item that no longer exists."""

    def __init__(self, menu_item_id, phantom_id):
        self.menu_item_id = menu_item_id
        self.phantom_id = phantom_id

    async def get_ingredients(self, menu_item_id, conn=None):
        ingredients = await super().get_ingredients(menu_item_id, conn)
        if menu_item_id == self.menu_item_id:
            ingredients.append(Ingredient(self.phantom_id, Decimal("1"), "pcs"))
        return ingredients


# --- CREATE ---

@pytest.mark.asyncio
async def test_create_order_prices_lines_and_deducts_recipes(kitchen, quantity_of):
    result = await order_service.create_order(
        "dine_in",
        [line(kitchen.burger, 2), line(kitchen.fries, 3), line(kitchen.cola, 1)],
        table_number="4",
    )
    order = result.order

    assert result.warnings == []
    assert order.daily_number == 1
    assert order.order_date == TODAY
    assert order.status == OrderStatus.PREPARING
    assert order.completed_at is None
    assert order.table_number == "4"
    assert order.subtotal == Decimal("26.00")  # 2*7.50 + 3*3.00 + 2.00
    assert_totals_reconcile(order)

    assert await quantity_of(kitchen.patty) == Decimal("46")
    assert await quantity_of(kitchen.bun) == Decimal("38")
    assert await quantity_of(kitchen.potatoes) == Decimal("9.25")

    assert deducted_by_stock_item(order) == {
        kitchen.patty.id: Decimal("4"),
        kitchen.bun.id: Decimal("2"),
        kitchen.potatoes.id: Decimal("0.75"),
    }
    costs = {d.stock_item_id: d.cost_per_unit for l in order.lines for d in l.deductions}
    assert costs[kitchen.patty.id] == Decimal("1.10")
    assert costs[kitchen.potatoes.id] == Decimal("0.90")

    events = await OutboxEvent.filter(event_type="order.created.v1")
    assert len(events) == 1
    assert events[0].payload["daily_number"] == 1
    assert len(events[0].payload["items"]) == 3


@pytest.mark.asyncio
async def test_unit_price_override_is_captured(kitchen):
    result = await order_service.create_order("takeout", [line(kitchen.burger, 2, unit_price="5.00")])

    (order_line,) = list(result.order.lines)
    assert order_line.unit_price == Decimal("5.00")
    assert order_line.total_price == Decimal("10.00")
    assert result.order.total == Decimal("10.00")


@pytest.mark.asyncio
async def test_catalog_price_change_does_not_touch_existing_lines(kitchen):
    result = await order_service.create_order("takeout", [line(kitchen.fries, 1)])
    kitchen.fries.price = Decimal("4.50")
    await kitchen.fries.save()

    order = await order_service.get_order_by_id(result.order.id)
    assert list(order.lines)[0].unit_price == Decimal("3.00")


@pytest.mark.asyncio
async def test_daily_numbers_follow_the_calendar(kitchen, fixed_today):
    first = await order_service.create_order("takeout", [line(kitchen.cola, 1)])
    second = await order_service.create_order("takeout", [line(kitchen.cola, 1)])
    fixed_today.return_value = date(2026, 5, 3)
    next_day = await order_service.create_order("takeout", [line(kitchen.cola, 1)])

    assert (first.order.daily_number, second.order.daily_number) == (1, 2)
    assert next_day.order.daily_number == 1
    assert next_day.order.order_date == date(2026, 5, 3)


@pytest.mark.asyncio
async def test_missing_menu_item_aborts_everything(kitchen, quantity_of):
    with pytest.raises(NotFoundError):
        await order_service.create_order(
            "dine_in", [line(kitchen.burger, 1), {"menu_item_id": uuid.uuid4(), "quantity": 1}]
        )

    assert await Order.all().count() == 0
    assert await DailyCounter.all().count() == 0
    assert await OutboxEvent.all().count() == 0
    assert await quantity_of(kitchen.patty) == Decimal("50")


@pytest.mark.asyncio
async def test_inactive_menu_item_cannot_be_ordered(kitchen):
    kitchen.fries.is_active = False
    await kitchen.fries.save()

    with pytest.raises(NotFoundError):
        await order_service.create_order("dine_in", [line(kitchen.fries, 1)])


@pytest.mark.asyncio
async def test_missing_stock_item_is_skipped_and_reported(kitchen, quantity_of):
    phantom = uuid.uuid4()
    resolver = PhantomIngredientResolver(kitchen.fries.id, phantom)

    result = await order_service.create_order("delivery", [line(kitchen.fries, 2)], resolver=resolver)

    assert len(result.warnings) == 1
    assert result.warnings[0].stock_item_id == phantom
    assert result.warnings[0].menu_item_id == kitchen.fries.id
    assert await quantity_of(kitchen.potatoes) == Decimal("9.5")
    assert deducted_by_stock_item(result.order) == {kitchen.potatoes.id: Decimal("0.5")}


@pytest.mark.asyncio
@pytest.mark.parametrize("items", [[], [{"quantity": 0}], [{"quantity": -1}], [{"quantity": 1.5}]])
async def test_malformed_line_sets_are_rejected(kitchen, items):
    items = [{"menu_item_id": kitchen.cola.id, **it} for it in items]

    with pytest.raises(InvalidOrderError):
        await order_service.create_order("dine_in", items)

    assert await Order.all().count() == 0


@pytest.mark.asyncio
async def test_unknown_order_type_is_rejected(kitchen):
    with pytest.raises(InvalidOrderError):
        await order_service.create_order("drive_through", [line(kitchen.cola, 1)])


@pytest.mark.asyncio
async def test_overselling_is_allowed(kitchen, quantity_of):
    await order_service.create_order("dine_in", [line(kitchen.burger, 30)])

    assert await quantity_of(kitchen.patty) == Decimal("-10")
    assert kitchen.patty.id in [i.id for i in await inventory_ledger.get_low_stock()]
    assert await OutboxEvent.filter(event_type="inventory.low_stock_alert.v1").count() == 1


# --- CANCEL ---

@pytest.mark.asyncio
async def test_cancel_restores_stock_and_is_idempotent(kitchen, quantity_of):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 3), line(kitchen.fries, 2)])

    cancelled = await order_service.cancel_order(result.order.id)

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.completed_at is not None
    assert await quantity_of(kitchen.patty) == Decimal("50")
    assert await quantity_of(kitchen.bun) == Decimal("40")
    assert await quantity_of(kitchen.potatoes) == Decimal("10")

    again = await order_service.cancel_order(result.order.id)

    assert again.status == OrderStatus.CANCELLED
    assert await quantity_of(kitchen.patty) == Decimal("50")
    assert await OutboxEvent.filter(event_type="order.cancelled.v1").count() == 1
    assert await inventory_ledger.replay_quantity(kitchen.patty.id) == Decimal("50")


@pytest.mark.asyncio
async def test_cancel_restores_recorded_amount_after_recipe_change(kitchen, quantity_of):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 2)])
    await MenuRecipeLine.filter(menu_item_id=kitchen.burger.id, stock_item_id=kitchen.patty.id).update(
        quantity_per_unit=Decimal("5")
    )

    await order_service.cancel_order(result.order.id)

    assert await quantity_of(kitchen.patty) == Decimal("50")


@pytest.mark.asyncio
async def test_cancel_unknown_order_is_not_found(db):
    with pytest.raises(NotFoundError):
        await order_service.cancel_order(uuid.uuid4())


@pytest.mark.asyncio
async def test_completed_order_can_still_be_cancelled(kitchen, quantity_of):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 1)])
    await order_service.update_order_status(result.order.id, "completed")

    order = await order_service.cancel_order(result.order.id)

    assert order.status == OrderStatus.CANCELLED
    assert await quantity_of(kitchen.patty) == Decimal("50")


# --- EDIT ---

@pytest.mark.asyncio
async def test_edit_retracts_old_lines_then_applies_new_ones(kitchen, quantity_of):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 2)])
    assert await quantity_of(kitchen.patty) == Decimal("46")

    edited = await order_service.update_order_items(result.order.id, [line(kitchen.fries, 1)])
    order = edited.order

    assert await quantity_of(kitchen.patty) == Decimal("50")
    assert await quantity_of(kitchen.bun) == Decimal("40")
    assert await quantity_of(kitchen.potatoes) == Decimal("9.75")

    lines = list(order.lines)
    assert [l.menu_item_id for l in lines] == [kitchen.fries.id]
    assert deducted_by_stock_item(order) == {kitchen.potatoes.id: Decimal("0.25")}
    assert order.subtotal == Decimal("3.00")
    assert order.daily_number == result.order.daily_number
    assert_totals_reconcile(order)
    assert await OutboxEvent.filter(event_type="order.items_updated.v1").count() == 1


@pytest.mark.asyncio
async def test_edit_prices_from_current_catalog_and_ignores_override(kitchen):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 1, unit_price="1.00")])
    kitchen.burger.price = Decimal("8.00")
    await kitchen.burger.save()

    edited = await order_service.update_order_items(
        result.order.id, [line(kitchen.burger, 2, unit_price="1.00")]
    )

    assert list(edited.order.lines)[0].unit_price == Decimal("8.00")
    assert edited.order.total == Decimal("16.00")


@pytest.mark.asyncio
async def test_edit_of_closed_order_is_a_no_op(kitchen, quantity_of):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 1)])
    await order_service.update_order_status(result.order.id, OrderStatus.COMPLETED)

    edited = await order_service.update_order_items(result.order.id, [line(kitchen.fries, 4)])

    assert [l.menu_item_id for l in edited.order.lines] == [kitchen.burger.id]
    assert await quantity_of(kitchen.potatoes) == Decimal("10")
    assert await quantity_of(kitchen.patty) == Decimal("48")


@pytest.mark.asyncio
async def test_failed_edit_leaves_order_untouched(kitchen, quantity_of):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 2)])

    with pytest.raises(NotFoundError):
        await order_service.update_order_items(
            result.order.id, [line(kitchen.fries, 1), {"menu_item_id": uuid.uuid4(), "quantity": 1}]
        )

    order = await order_service.get_order_by_id(result.order.id)
    assert [l.menu_item_id for l in order.lines] == [kitchen.burger.id]
    assert deducted_by_stock_item(order)[kitchen.patty.id] == Decimal("4")
    assert await quantity_of(kitchen.patty) == Decimal("46")
    assert await quantity_of(kitchen.potatoes) == Decimal("10")


@pytest.mark.asyncio
async def test_cancel_after_edit_restores_everything(kitchen, quantity_of):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 2)])
    await order_service.update_order_items(result.order.id, [line(kitchen.burger, 1), line(kitchen.fries, 4)])

    await order_service.cancel_order(result.order.id)

    assert await quantity_of(kitchen.patty) == Decimal("50")
    assert await quantity_of(kitchen.bun) == Decimal("40")
    assert await quantity_of(kitchen.potatoes) == Decimal("10")
    for stock in (kitchen.patty, kitchen.bun, kitchen.potatoes):
        assert await inventory_ledger.replay_quantity(stock.id) == await quantity_of(stock)


# --- ROLLBACK AFTER PARTIAL WRITES ---

def failing_on_call(real, call_number):
    """Wraps a ledger operation so that its n-th call blows up after earlier calls have written."""
    calls = {"count": 0}

    async def wrapper(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] == call_number:
            raise RuntimeError("disk I/O error")
        return await real(*args, **kwargs)
    return wrapper


@pytest.mark.asyncio
async def test_create_failing_mid_deduction_rolls_back_everything(kitchen, quantity_of):
    ledger_before = await StockLedgerEntry.all().count()

    with patch.object(inventory_ledger, "deduct", failing_on_call(inventory_ledger.deduct, 2)):
        with pytest.raises(TransactionAbortedError):
            await order_service.create_order("dine_in", [line(kitchen.burger, 1)])

    assert await quantity_of(kitchen.patty) == Decimal("50")
    assert await quantity_of(kitchen.bun) == Decimal("40")
    assert await StockLedgerEntry.all().count() == ledger_before
    assert await Order.all().count() == 0
    assert await OrderLine.all().count() == 0
    assert await OutboxEvent.all().count() == 0


@pytest.mark.asyncio
async def test_edit_failing_mid_restore_rolls_back_everything(kitchen, quantity_of):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 1)])
    ledger_before = await StockLedgerEntry.all().count()

    with patch.object(inventory_ledger, "restore", failing_on_call(inventory_ledger.restore, 2)):
        with pytest.raises(TransactionAbortedError):
            await order_service.update_order_items(result.order.id, [line(kitchen.fries, 2)])

    assert await quantity_of(kitchen.patty) == Decimal("48")
    assert await quantity_of(kitchen.bun) == Decimal("39")
    assert await quantity_of(kitchen.potatoes) == Decimal("10")
    assert await StockLedgerEntry.all().count() == ledger_before

    order = await order_service.get_order_by_id(result.order.id)
    assert [l.menu_item_id for l in order.lines] == [kitchen.burger.id]
    assert order.total == Decimal("7.50")
    assert await OutboxEvent.filter(event_type="order.items_updated.v1").count() == 0


@pytest.mark.asyncio
async def test_cancel_failing_mid_restore_keeps_order_preparing(kitchen, quantity_of):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 2)])
    ledger_before = await StockLedgerEntry.all().count()

    with patch.object(inventory_ledger, "restore", failing_on_call(inventory_ledger.restore, 2)):
        with pytest.raises(TransactionAbortedError):
            await order_service.cancel_order(result.order.id)

    order = await order_service.get_order_by_id(result.order.id)
    assert order.status == OrderStatus.PREPARING
    assert order.completed_at is None
    assert await quantity_of(kitchen.patty) == Decimal("46")
    assert await quantity_of(kitchen.bun) == Decimal("38")
    assert await StockLedgerEntry.all().count() == ledger_before
    assert await OutboxEvent.filter(event_type="order.cancelled.v1").count() == 0


# --- STATUS ---

@pytest.mark.asyncio
async def test_complete_stamps_completed_at(kitchen):
    result = await order_service.create_order("dine_in", [line(kitchen.cola, 1)])

    order = await order_service.update_order_status(result.order.id, "completed")

    assert order.status == OrderStatus.COMPLETED
    assert order.completed_at is not None
    assert await OutboxEvent.filter(event_type="order.status.completed.v1").count() == 1


@pytest.mark.asyncio
async def test_same_status_write_is_a_no_op(kitchen):
    result = await order_service.create_order("dine_in", [line(kitchen.cola, 1)])

    order = await order_service.update_order_status(result.order.id, "preparing")

    assert order.status == OrderStatus.PREPARING
    assert order.completed_at is None


@pytest.mark.asyncio
@pytest.mark.parametrize("first, then", [("completed", "preparing"), ("cancelled", "completed"), ("cancelled", "preparing")])
async def test_closed_orders_cannot_move_back(kitchen, first, then):
    result = await order_service.create_order("dine_in", [line(kitchen.cola, 1)])
    await order_service.update_order_status(result.order.id, first)

    with pytest.raises(InvalidStateError):
        await order_service.update_order_status(result.order.id, then)


@pytest.mark.asyncio
async def test_status_cancel_goes_through_stock_restoration(kitchen, quantity_of):
    result = await order_service.create_order("dine_in", [line(kitchen.burger, 2)])

    order = await order_service.update_order_status(result.order.id, OrderStatus.CANCELLED)

    assert order.status == OrderStatus.CANCELLED
    assert await quantity_of(kitchen.patty) == Decimal("50")


@pytest.mark.asyncio
async def test_unknown_status_is_rejected(kitchen):
    result = await order_service.create_order("dine_in", [line(kitchen.cola, 1)])

    with pytest.raises(InvalidStateError):
        await order_service.update_order_status(result.order.id, "pending")


# --- QUERIES ---

@pytest.mark.asyncio
async def test_orders_by_date_and_range(kitchen, fixed_today):
    await order_service.create_order("dine_in", [line(kitchen.cola, 1)])
    await order_service.create_order("dine_in", [line(kitchen.cola, 1)])
    fixed_today.return_value = date(2026, 5, 4)
    await order_service.create_order("dine_in", [line(kitchen.cola, 1)])

    by_date = await order_service.get_orders_by_date(TODAY)
    assert [o.daily_number for o in by_date] == [2, 1]

    in_range = await order_service.get_orders_by_date_range(date(2026, 5, 1), date(2026, 5, 4))
    assert [(o.order_date, o.daily_number) for o in in_range] == [
        (date(2026, 5, 4), 1), (TODAY, 2), (TODAY, 1)
    ]

    today = await order_service.get_today_orders()
    assert len(today) == 1
    assert [l.menu_item.name for l in today[0].lines] == ["Cola"]


# --- CONCURRENCY ---

@pytest.mark.asyncio
async def test_concurrent_orders_get_distinct_numbers_and_no_lost_updates(kitchen, quantity_of):
    n = 12

    results = await asyncio.gather(*(
        order_service.create_order("takeout", [line(kitchen.burger, 1), line(kitchen.fries, 2)])
        for _ in range(n)
    ))

    assert sorted(r.order.daily_number for r in results) == list(range(1, n + 1))
    assert await quantity_of(kitchen.patty) == Decimal("50") - 2 * n
    assert await quantity_of(kitchen.bun) == Decimal("40") - n
    assert await quantity_of(kitchen.potatoes) == Decimal("10") - Decimal("0.5") * n
    for r in results:
        assert_totals_reconcile(r.order)
        assert deducted_by_stock_item(r.order) == {
            kitchen.patty.id: Decimal("2"),
            kitchen.bun.id: Decimal("1"),
            kitchen.potatoes.id: Decimal("0.5"),
        }
