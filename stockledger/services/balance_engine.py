"""Balance Engine - applies a movement's signed delta to an inventory record.

The engine never commits. It runs inside the caller's
``LedgerStore.transaction()`` so the guard, the balance write and the
movement row succeed or fail together.

Guard:
    available (quantity - reserved) may never go below zero. Kinds listed
    in NEGATIVE_QUANTITY_KINDS would skip the guard; the set is empty, so
    shrinkage beyond the available stock requires releasing reservations
    first.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from stockledger.core.exceptions import InsufficientStockError
from stockledger.models.stock import INBOUND_KINDS, InventoryRecord, MovementKind, StockMovement
from stockledger.models.stock import signed_delta as _signed_delta
from stockledger.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class BalanceEngine:
    """Single writer of InventoryRecord.quantity."""

    NEGATIVE_QUANTITY_KINDS: frozenset = frozenset()

    def __init__(self, db: Session, store: Optional[LedgerStore] = None):
        self.db = db
        self.store = store or LedgerStore(db)

    @staticmethod
    def signed_delta(kind, quantity: int) -> int:
        return _signed_delta(kind, quantity)

    def check_available(self, record: InventoryRecord, kind, quantity: int) -> None:
        """Raise InsufficientStockError if ``quantity`` of ``kind`` would overdraw the record."""
        delta = self.signed_delta(kind, quantity)
        if delta >= 0 or MovementKind(kind) in self.NEGATIVE_QUANTITY_KINDS:
            return
        if record.available + delta < 0:
            raise InsufficientStockError(
                product_id=record.product_id,
                warehouse_id=record.warehouse_id,
                batch_number=record.batch,
                requested=quantity,
                available=record.available,
            )

    def apply(
        self,
        record: InventoryRecord,
        movement: StockMovement,
        applied_at: Optional[datetime] = None,
    ) -> InventoryRecord:
        """Apply ``movement`` to ``record`` and store it as APPLIED."""
        self.check_available(record, movement.kind, movement.quantity)
        delta = self.signed_delta(movement.kind, movement.quantity)
        self.store.append_and_apply(record, movement, delta, applied_at)
        logger.debug(
            f"Applied {movement.kind} {movement.quantity} to product {record.product_id} "
            f"warehouse {record.warehouse_id} batch {record.batch_number!r}: "
            f"quantity={record.quantity} v{record.version}"
        )
        return record

    def record_for(self, movement: StockMovement) -> InventoryRecord:
        """Record the movement will hit.

        Inbound movements create the record on first touch. Outbound
        movements against a triple that was never stocked fail with
        available 0 instead of creating an empty record.
        """
        if MovementKind(movement.kind) in INBOUND_KINDS:
            return self.store.get_or_create(
                movement.product_id,
                movement.warehouse_id,
                movement.batch_number,
                movement.expiry_date,
            )

        record = self.store.read(movement.product_id, movement.warehouse_id, movement.batch_number)
        if record is None:
            raise InsufficientStockError(
                product_id=movement.product_id,
                warehouse_id=movement.warehouse_id,
                batch_number=movement.batch_number or None,
                requested=movement.quantity,
                available=0,
            )
        return record
