from enum import Enum
from tortoise import fields, models
import uuid


class LedgerKind(str, Enum):
    ORDER_DEDUCTION = "order_deduction"  # Sale consumption, and its reversal (positive change)
    MANUAL_ADJUST = "manual_adjust"      # Waste/consumption count, opening balance
    QUANTITY_FIX = "quantity_fix"        # Correction of a wrong earlier entry
    PURCHASE = "purchase"


class StockItem(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    name = fields.CharField(max_length=255)
    name_ar = fields.CharField(max_length=255, null=True)
    name_fr = fields.CharField(max_length=255, null=True)
    unit_type = fields.CharField(max_length=32)
    # May go negative: overselling is allowed and surfaced by the low stock query
    quantity = fields.DecimalField(max_digits=14, decimal_places=3, default=0)
    # Moving weighted-average cost
    price_per_unit = fields.DecimalField(max_digits=14, decimal_places=4, default=0)
    alert_threshold = fields.DecimalField(max_digits=14, decimal_places=3, default=0)
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "stock_items"
        indexes = [
            ("is_active",),
        ]


class StockLedgerEntry(models.Model):
    """
    Append-only audit row. Replaying all entries of an item in (created_at, id)
    order starting from zero reproduces StockItem.quantity.
    """
    id = fields.IntField(primary_key=True)
    stock_item = fields.ForeignKeyField("models.StockItem", related_name="ledger_entries", on_delete=fields.RESTRICT)
    kind = fields.CharEnumField(LedgerKind, max_length=32)
    quantity_change = fields.DecimalField(max_digits=14, decimal_places=3)
    previous_quantity = fields.DecimalField(max_digits=14, decimal_places=3)
    new_quantity = fields.DecimalField(max_digits=14, decimal_places=3)
    affects_cost = fields.BooleanField(default=False)
    reason = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "stock_ledger_entries"
        indexes = [
            ("stock_item_id",),
            ("stock_item_id", "created_at"),  # Replay order
        ]


class StockPurchaseRecord(models.Model):
    """Valuation history. QuantityFix corrections append negative rows here."""
    id = fields.IntField(primary_key=True)
    stock_item = fields.ForeignKeyField("models.StockItem", related_name="purchases", on_delete=fields.RESTRICT)
    quantity = fields.DecimalField(max_digits=14, decimal_places=3)
    price_per_unit = fields.DecimalField(max_digits=14, decimal_places=4)
    total_cost = fields.DecimalField(max_digits=16, decimal_places=4)
    purchased_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "stock_purchases"
