from tortoise import fields, models


class ProcessedEvent(models.Model):
    """One row per (outbox event, handler) pair that has already run."""
    id = fields.IntField(primary_key=True)
    event_id = fields.UUIDField()
    handler = fields.CharField(max_length=64)
    processed_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "processed_events"
        unique_together = (("event_id", "handler"),)
