# pos_engine/scripts/seed_data.py
import asyncio
import logging
from decimal import Decimal

from pos_engine.core.config import LOG_FORMAT
from pos_engine.core.db import close_db, init_db
from pos_engine.models.catalog import MenuItem, MenuRecipeLine
from pos_engine.models.inventory import StockItem
from pos_engine.services import inventory_ledger

log = logging.getLogger("seed_data")

STOCK = [
    # name, unit, opening qty, price per unit, alert threshold
    ("Bread roll", "pcs", "80", "0.25", "20"),
    ("Beef patty", "pcs", "60", "1.10", "15"),
    ("Cheese slice", "pcs", "100", "0.15", "25"),
    ("Potatoes", "kg", "25", "0.90", "5"),
    ("Cola syrup", "l", "10", "3.20", "2"),
]

MENU = {
    # name: (price, [(stock name, qty per unit, unit)])
    "Cheeseburger": ("7.50", [("Bread roll", "1", "pcs"), ("Beef patty", "1", "pcs"), ("Cheese slice", "2", "pcs")]),
    "Fries": ("3.00", [("Potatoes", "0.250", "kg")]),
    "Cola": ("2.00", [("Cola syrup", "0.050", "l")]),
}


async def seed():
    stock = {}
    for name, unit, qty, price, threshold in STOCK:
        item = await StockItem.get_or_none(name=name)
        if item is None:
            item = await inventory_ledger.create_stock_item(
                name=name, unit_type=unit, quantity=qty, price_per_unit=price, alert_threshold=threshold
            )
        stock[name] = item
    log.info(f"Stock items: {', '.join(stock)}")

    for name, (price, recipe) in MENU.items():
        menu, _ = await MenuItem.get_or_create(name=name, defaults={"price": Decimal(price), "is_active": True})
        for stock_name, qty, unit in recipe:
            await MenuRecipeLine.get_or_create(
                menu_item=menu,
                stock_item=stock[stock_name],
                defaults={"quantity_per_unit": Decimal(qty), "unit": unit},
            )
        log.info(f"Menu item {name}: {menu.id}")


async def main():
    await init_db()
    try:
        await seed()
    finally:
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    asyncio.run(main())
