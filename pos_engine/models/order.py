from enum import Enum
from tortoise import fields, models
import uuid


class OrderStatus(str, Enum):
    PREPARING = "preparing"  # Initial state, set at creation
    COMPLETED = "completed"  # Terminal, stamps completed_at
    CANCELLED = "cancelled"  # Terminal, stock restored


class OrderType(str, Enum):
    DINE_IN = "dine_in"
    TAKEOUT = "takeout"
    DELIVERY = "delivery"


# Allowed status moves. Same-status writes are no-ops and not listed here.
STATUS_TRANSITIONS = {
    OrderStatus.PREPARING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: {OrderStatus.CANCELLED},
    OrderStatus.CANCELLED: set(),
}

# Statuses in which the line set may no longer be edited
LOCKED_STATUSES = (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


class Order(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    daily_number = fields.IntField()
    order_date = fields.DateField()
    order_type = fields.CharEnumField(OrderType, max_length=16)
    table_number = fields.CharField(max_length=32, null=True)
    customer_phone = fields.CharField(max_length=64, null=True)
    customer_name = fields.CharField(max_length=255, null=True)
    status = fields.CharEnumField(OrderStatus, max_length=16, default=OrderStatus.PREPARING)
    subtotal = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    total = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    notes = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    completed_at = fields.DatetimeField(null=True)

    class Meta:
        table = "orders"
        unique_together = (("order_date", "daily_number"),)
        indexes = [
            ("order_date",),  # Daily/range listings
            ("status",),      # Status-based filtering
        ]


class OrderLine(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="lines", on_delete=fields.CASCADE)
    menu_item = fields.ForeignKeyField("models.MenuItem", related_name="order_lines", on_delete=fields.RESTRICT)
    quantity = fields.IntField()
    unit_price = fields.DecimalField(max_digits=12, decimal_places=2)
    total_price = fields.DecimalField(max_digits=14, decimal_places=2)
    notes = fields.TextField(null=True)
    worker_id = fields.IntField(null=True)

    class Meta:
        table = "order_lines"
        indexes = [
            ("order_id",),
            ("worker_id",),
        ]


class OrderLineDeduction(models.Model):
    """Exact stock consumed by one order line; the basis for reversing it."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order_line = fields.ForeignKeyField("models.OrderLine", related_name="deductions", on_delete=fields.CASCADE)
    stock_item = fields.ForeignKeyField("models.StockItem", related_name="order_deductions", on_delete=fields.RESTRICT)
    quantity_deducted = fields.DecimalField(max_digits=14, decimal_places=3)
    cost_per_unit = fields.DecimalField(max_digits=14, decimal_places=4, default=0)

    class Meta:
        table = "order_line_deductions"


class DailyCounter(models.Model):
    id = fields.IntField(primary_key=True)
    date = fields.DateField(unique=True)
    last_order_number = fields.IntField(default=0)

    class Meta:
        table = "daily_counters"
