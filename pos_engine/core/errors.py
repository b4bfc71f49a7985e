"""
Domain error taxonomy for the order engine and inventory ledger.

Every error carries a stable ``code`` that the API layer returns to callers
so they can tell a missing record from a disallowed edit or a rolled back
unit of work.
"""


class OrderEngineError(Exception):
    code = "order_engine_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(OrderEngineError):
    """A referenced menu item, stock item or order does not exist."""
    code = "not_found"

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidStateError(OrderEngineError):
    """The order's current status does not allow the requested change."""
    code = "invalid_state"

    def __init__(self, message: str, current_status=None):
        self.current_status = current_status
        super().__init__(message)


class InvalidOrderError(OrderEngineError):
    """The requested line set is malformed (empty, non-positive quantity)."""
    code = "invalid_order"


class TransactionAbortedError(OrderEngineError):
    """An unexpected failure inside a unit of work; every partial write was rolled back."""
    code = "transaction_aborted"


class InvalidStockUpdateError(OrderEngineError):
    """A stock item change that must go through the ledger (e.g. quantity)."""
    code = "invalid_stock_update"
