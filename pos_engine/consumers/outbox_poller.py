import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from tortoise import timezone

from pos_engine.consumers import notification_consumer
from pos_engine.core.config import BATCH_SIZE, LOG_FORMAT, LOG_LEVEL, MAX_ATTEMPTS, POLLING_INTERVAL
from pos_engine.core.db import close_db, init_db
from pos_engine.events.outbox_utility import (
    LOW_STOCK_ALERT,
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_CREATED,
    ORDER_ITEMS_UPDATED,
)
from pos_engine.models.outbox import OutboxEvent
from pos_engine.models.processed_event import ProcessedEvent

log = logging.getLogger("outbox_poller")

EventHandler = Callable[[Dict[str, Any], UUID], Awaitable[None]]

_handlers: Dict[str, List[Tuple[str, EventHandler]]] = defaultdict(list)


class EventDeliveryError(Exception):
    """One or more subscribers failed; the others already ran and are recorded."""

    def __init__(self, failures: List[str]):
        self.failures = failures
        super().__init__("; ".join(failures))


def register_handler(event_type: str, handler: EventHandler, name: Optional[str] = None):
    """
    Subscribes ``handler(payload, event_id)`` to ``event_type``.

    ``name`` identifies the subscriber in the processed_events table and must be
    stable across restarts; it defaults to the function name.
    """
    name = name or getattr(handler, "__name__", None) or repr(handler)
    if all(existing != name for existing, _ in _handlers[event_type]):
        _handlers[event_type].append((name, handler))


def clear_handlers():
    _handlers.clear()


def register_default_handlers():
    register_handler(ORDER_CREATED, notification_consumer.handle_order_created)
    register_handler(ORDER_ITEMS_UPDATED, notification_consumer.handle_order_items_updated)
    register_handler(ORDER_CANCELLED, notification_consumer.handle_order_cancelled)
    register_handler(ORDER_COMPLETED, notification_consumer.handle_order_completed)
    register_handler(LOW_STOCK_ALERT, notification_consumer.handle_low_stock_alert)


async def dispatch_event(event: OutboxEvent):
    """
    Routes an OutboxEvent to every handler subscribed to its type.

    Each handler runs regardless of the others failing. Successful handlers are
    recorded in processed_events and skipped on retry; if any handler failed,
    EventDeliveryError is raised so the poller retries the event.
    """
    handlers = _handlers.get(event.event_type)
    log.info(f"Poller DISPATCHING: {event.event_type} (ID: {event.id.hex[:8]}...)")

    if not handlers:
        log.warning(f"No handler found for event type: {event.event_type}")
        return

    failures = []
    for name, handler in handlers:
        # Idempotency: skip subscribers that already handled this event
        if await ProcessedEvent.filter(event_id=event.id, handler=name).exists():
            log.info(f"Idempotency: event {event.id} already processed by {name}.")
            continue
        try:
            await handler(event.payload, event.id)
        except Exception as e:
            log.exception(f"Handler {name} failed for event {event.id} ({event.event_type})")
            failures.append(f"{name}: {e!r}")
            continue
        await ProcessedEvent.create(event_id=event.id, handler=name)

    if failures:
        raise EventDeliveryError(failures)


async def poll_outbox_for_new_events() -> int:
    """
    Queries the Outbox table for unpublished events and attempts to dispatch them.
    Returns the number of events published in this pass.
    """
    # Select events that haven't been published and haven't exceeded max attempts
    events = await OutboxEvent.filter(published=False, attempts__lt=MAX_ATTEMPTS).order_by('created_at').limit(BATCH_SIZE)

    published = 0
    for event in events:
        try:
            # 1. Dispatch the event (calls the subscribed side effects)
            await dispatch_event(event)

            # 2. Mark the event as published on success
            event.published = True
            event.published_at = timezone.now()
            event.last_error = None
            await event.save(update_fields=['published', 'published_at', 'last_error'])
            published += 1

        except Exception as e:
            # 3. Increment attempts on failure and keep the reason for the operator
            event.attempts += 1
            event.last_error = repr(e)
            await event.save(update_fields=['attempts', 'last_error'])
            log.error(f"Delivery failed for event {event.id} ({event.event_type}), attempt {event.attempts}/{MAX_ATTEMPTS}: {e}")
    return published


async def start_outbox_poller():
    """Main loop for the poller service."""
    await init_db()
    register_default_handlers()
    log.info("--- Outbox Poller Service Started ---")

    try:
        while True:
            try:
                await poll_outbox_for_new_events()
            except Exception as e:
                log.error(f"Poller encountered a critical DB error: {e}.")

            await asyncio.sleep(POLLING_INTERVAL)
    finally:
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    try:
        asyncio.run(start_outbox_poller())
    except KeyboardInterrupt:
        log.info("Poller service stopped.")
