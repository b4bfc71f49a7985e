from tortoise import fields, models
import uuid


class MenuItem(models.Model):
    """Sellable catalog item. Managed by the catalog collaborator; read here."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    name = fields.CharField(max_length=255)
    price = fields.DecimalField(max_digits=12, decimal_places=2)
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "menu_items"
        indexes = [
            ("is_active",),  # Filter active items
        ]


class MenuRecipeLine(models.Model):
    """How much of one stock item a single unit of a menu item consumes."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    menu_item = fields.ForeignKeyField("models.MenuItem", related_name="recipe_lines", on_delete=fields.CASCADE)
    stock_item = fields.ForeignKeyField("models.StockItem", related_name="recipe_lines", on_delete=fields.RESTRICT)
    quantity_per_unit = fields.DecimalField(max_digits=14, decimal_places=3)
    unit = fields.CharField(max_length=32)

    class Meta:
        table = "menu_recipe_lines"
        unique_together = (("menu_item", "stock_item"),)
