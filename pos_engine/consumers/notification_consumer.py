"""
Default subscribers for order and stock events.

They run after the originating unit of work has committed, from the outbox
poller. Printing and messaging integrations register their own handlers next
to these with ``outbox_poller.register_handler``; a failing handler only
delays its event, it never affects the order or the stock it describes.
The poller records which handlers already ran, so none of them is repeated
when an event is retried.
"""
import logging
from typing import Any, Dict
from uuid import UUID

log = logging.getLogger("notification_consumer")


async def handle_order_created(event_payload: Dict[str, Any], event_id: UUID):
    """Consumer logic for 'order.created.v1'. Announces the new ticket to the kitchen feed."""
    items = event_payload.get("items", [])
    log.info(
        f"NEW ORDER #{event_payload.get('daily_number')} ({event_payload.get('order_type')}) "
        f"table={event_payload.get('table_number') or '-'} items={len(items)} total={event_payload.get('total')}"
    )


async def handle_order_items_updated(event_payload: Dict[str, Any], event_id: UUID):
    log.info(f"ORDER #{event_payload.get('daily_number')} EDITED: total now {event_payload.get('total')}")


async def handle_order_cancelled(event_payload: Dict[str, Any], event_id: UUID):
    """Consumer logic for 'order.cancelled.v1'. Stock was already restored in the cancel transaction."""
    log.info(
        f"ORDER #{event_payload.get('daily_number')} CANCELLED (was {event_payload.get('old_status')})"
    )


async def handle_order_completed(event_payload: Dict[str, Any], event_id: UUID):
    log.info(f"ORDER #{event_payload.get('daily_number')} COMPLETED")


async def handle_low_stock_alert(event_payload: Dict[str, Any], event_id: UUID):
    """Consumer logic for 'inventory.low_stock_alert.v1'."""
    log.warning(
        f"!!! LOW STOCK !!! {event_payload.get('name')} at {event_payload.get('quantity')} "
        f"(threshold {event_payload.get('threshold')})"
    )
