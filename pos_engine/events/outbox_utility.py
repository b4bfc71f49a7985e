from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pos_engine.models.outbox import OutboxEvent

ORDER_CREATED = "order.created.v1"
ORDER_ITEMS_UPDATED = "order.items_updated.v1"
ORDER_CANCELLED = "order.cancelled.v1"
ORDER_COMPLETED = "order.status.completed.v1"
LOW_STOCK_ALERT = "inventory.low_stock_alert.v1"


def _json_safe(value):
    if isinstance(value, dict):
        return {key: _json_safe(v) for key, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


async def create_outbox_event(
    aggregate_type: str,
    aggregate_id: Optional[UUID],
    event_type: str,
    payload: Dict[str, Any],
    conn: Any = None
) -> OutboxEvent:
    """
    Queues an event for the outbox poller.

    Pass the unit-of-work ``conn`` so the event commits or rolls back together
    with the order or stock change it describes. Decimals, UUIDs and dates in
    ``payload`` are stored as strings.
    """
    return await OutboxEvent.create(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=_json_safe(payload),
        using_db=conn
    )
