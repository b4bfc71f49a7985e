from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio

from pos_engine.core.db import close_db, init_db
from pos_engine.models.catalog import MenuItem, MenuRecipeLine
from pos_engine.services import inventory_ledger


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory store per test."""
    await init_db("sqlite://:memory:")
    yield
    await close_db()


@pytest_asyncio.fixture
async def kitchen(db):
    """
    Small catalog:
      Burger 7.50 -> 2 patty + 1 bun
      Fries  3.00 -> 0.250 kg potatoes
      Cola   2.00 -> no recipe
    """
    patty = await inventory_ledger.create_stock_item(
        name="Beef patty", unit_type="pcs", quantity=50, price_per_unit="1.10", alert_threshold=5
    )
    bun = await inventory_ledger.create_stock_item(
        name="Bun", unit_type="pcs", quantity=40, price_per_unit="0.25", alert_threshold=5
    )
    potatoes = await inventory_ledger.create_stock_item(
        name="Potatoes", unit_type="kg", quantity=10, price_per_unit="0.90", alert_threshold=2
    )

    burger = await MenuItem.create(name="Burger", price=Decimal("7.50"))
    fries = await MenuItem.create(name="Fries", price=Decimal("3.00"))
    cola = await MenuItem.create(name="Cola", price=Decimal("2.00"))

    await MenuRecipeLine.create(menu_item=burger, stock_item=patty, quantity_per_unit=Decimal("2"), unit="pcs")
    await MenuRecipeLine.create(menu_item=burger, stock_item=bun, quantity_per_unit=Decimal("1"), unit="pcs")
    await MenuRecipeLine.create(menu_item=fries, stock_item=potatoes, quantity_per_unit=Decimal("0.250"), unit="kg")

    return SimpleNamespace(
        patty=patty, bun=bun, potatoes=potatoes,
        burger=burger, fries=fries, cola=cola,
    )


@pytest.fixture
def quantity_of():
    """Current stored quantity of a stock item."""
    async def _quantity_of(stock_item) -> Decimal:
        return (await inventory_ledger.get_by_id(stock_item.id)).quantity
    return _quantity_of
