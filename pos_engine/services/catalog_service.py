"""
Read-only adapter over the catalog tables.

The catalog itself (menu items, categories, recipes) is maintained elsewhere;
the order engine only needs a menu item's price and the recipe it consumes.
Both lookups take the caller's ``conn`` so they see the same snapshot as the
stock and order writes of that unit of work.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List
from uuid import UUID

from pos_engine.core.errors import NotFoundError
from pos_engine.models.catalog import MenuItem, MenuRecipeLine


@dataclass(frozen=True)
class Ingredient:
    stock_item_id: UUID
    quantity_per_unit: Decimal
    unit: str


class CatalogRecipeResolver:

    async def get_menu_item(self, menu_item_id: UUID, conn: Any = None) -> MenuItem:
        menu = await MenuItem.get_or_none(id=menu_item_id).using_db(conn)
        if not menu or not menu.is_active:
            raise NotFoundError("Menu item", menu_item_id)
        return menu

    async def get_ingredients(self, menu_item_id: UUID, conn: Any = None) -> List[Ingredient]:
        lines = await MenuRecipeLine.filter(menu_item_id=menu_item_id).using_db(conn)
        return [
            Ingredient(
                stock_item_id=line.stock_item_id,
                quantity_per_unit=line.quantity_per_unit,
                unit=line.unit,
            )
            for line in lines
        ]


recipe_resolver = CatalogRecipeResolver()
