"""SQLAlchemy models."""

from stockledger.models.product import Product
from stockledger.models.warehouse import Warehouse
from stockledger.models.stock import (
    ApprovalState,
    InventoryRecord,
    MovementKind,
    MovementReason,
    StockMovement,
)
from stockledger.db.immutability import register_immutability_listeners

register_immutability_listeners()

__all__ = [
    "Product",
    "Warehouse",
    "InventoryRecord",
    "StockMovement",
    "MovementKind",
    "MovementReason",
    "ApprovalState",
]
