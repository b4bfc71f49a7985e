# pos_engine/models/__init__.py
from .catalog import MenuItem, MenuRecipeLine
from .inventory import LedgerKind, StockItem, StockLedgerEntry, StockPurchaseRecord
from .order import DailyCounter, Order, OrderLine, OrderLineDeduction, OrderStatus, OrderType
from .outbox import OutboxEvent
from .processed_event import ProcessedEvent

# Export all models
__all__ = [
    "DailyCounter",
    "LedgerKind",
    "MenuItem",
    "MenuRecipeLine",
    "Order",
    "OrderLine",
    "OrderLineDeduction",
    "OrderStatus",
    "OrderType",
    "OutboxEvent",
    "ProcessedEvent",
    "StockItem",
    "StockLedgerEntry",
    "StockPurchaseRecord",
]
