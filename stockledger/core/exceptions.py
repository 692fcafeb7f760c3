"""Typed exceptions for the stock ledger.

Every error carries a machine-readable ``code``, the HTTP status it maps to,
and structured context so callers can build a precise message without
parsing strings.

    StockLedgerError (base)
    |
    +-- NotFoundError                 product, warehouse, record or movement missing
    +-- InsufficientStockError        outbound change would make available negative
    +-- ConcurrentModificationError   optimistic version mismatch (retryable)
    +-- AlreadyAppliedError           approving a movement that is already APPLIED
    +-- ValidationError               malformed request
    +-- ImmutableMovementError        attempt to edit or delete an APPLIED movement

Only ConcurrentModificationError is ever retried (see stockledger.core.retry).
"""

from typing import Any, Dict, Optional


class StockLedgerError(Exception):
    """Base class for all ledger errors."""

    code: str = "STOCK_LEDGER_ERROR"
    status_code: int = 400

    def __init__(self, message: str, **context: Any):
        self.message = message
        self._context = context
        super().__init__(message)

    def context(self) -> Dict[str, Any]:
        """Structured details for API responses and logs."""
        return dict(self._context)


class NotFoundError(StockLedgerError):
    """Referenced product, warehouse, inventory record or movement does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)


class InsufficientStockError(StockLedgerError):
    """Raised when an outbound movement, transfer or reservation exceeds available stock."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(
        self,
        product_id: int,
        warehouse_id: int,
        batch_number: Optional[str],
        requested: int,
        available: int,
    ):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.batch_number = batch_number
        self.requested = requested
        self.available = available
        batch = f" batch '{batch_number}'" if batch_number else ""
        super().__init__(
            f"Insufficient stock for product {product_id}{batch} in warehouse {warehouse_id}: "
            f"requested {requested}, available {available}",
            product_id=product_id,
            warehouse_id=warehouse_id,
            batch_number=batch_number,
            requested=requested,
            available=available,
        )


class ConcurrentModificationError(StockLedgerError):
    """Another writer changed the inventory record first."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409

    def __init__(self, message: str = "Inventory record was modified concurrently, retry the operation"):
        super().__init__(message)


class AlreadyAppliedError(StockLedgerError):
    """Approval of a movement that is already APPLIED."""

    code = "ALREADY_APPLIED"
    status_code = 409

    def __init__(self, movement_id: int):
        self.movement_id = movement_id
        super().__init__(f"Movement {movement_id} is already applied", movement_id=movement_id)


class ValidationError(StockLedgerError):
    """Malformed request: bad quantity, missing batch, invalid transfer, etc."""

    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, field=field)


class ImmutableMovementError(StockLedgerError):
    """An APPLIED movement was about to be modified or deleted."""

    code = "IMMUTABLE_MOVEMENT"
    status_code = 409

    def __init__(self, movement_id: Any, operation: str):
        self.movement_id = movement_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} applied movement {movement_id}; append a correcting adjustment instead",
            movement_id=movement_id,
            operation=operation,
        )
