from datetime import date
from typing import Any

from pos_engine.core.db import joined
from pos_engine.models.order import DailyCounter


async def next_number(order_date: date, conn: Any = None) -> int:
    """
    Next human-facing order number for ``order_date``, starting at 1.

    Runs inside the order-creation unit of work, so a rolled back order also
    rolls back its increment. Counters never go down and never carry over days.
    """
    async with joined(conn) as conn:
        counter = await DailyCounter.filter(date=order_date).using_db(conn).select_for_update().first()
        if counter is None:
            await DailyCounter.create(date=order_date, last_order_number=1, using_db=conn)
            return 1

        counter.last_order_number += 1
        await counter.save(update_fields=["last_order_number"], using_db=conn)
        return counter.last_order_number


async def current_number(order_date: date) -> int:
    """Last number handed out on ``order_date`` (0 if none yet)."""
    counter = await DailyCounter.get_or_none(date=order_date)
    return counter.last_order_number if counter else 0
