import uuid

from tortoise import fields, models


class OutboxEvent(models.Model):
    """
    Order and stock events waiting to be delivered to side-effect handlers.

    Rows are inserted by the unit of work that produced them, so an event
    exists only if its order or stock change committed.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    aggregate_type = fields.CharField(max_length=32) # 'order' or 'stock_item'
    aggregate_id = fields.UUIDField(null=True)
    event_type = fields.CharField(max_length=64, index=True)
    payload = fields.JSONField()
    published = fields.BooleanField(default=False)
    published_at = fields.DatetimeField(null=True)
    attempts = fields.IntField(default=0)
    last_error = fields.TextField(null=True) # Most recent handler failure, cleared on delivery
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "outbox_events"
