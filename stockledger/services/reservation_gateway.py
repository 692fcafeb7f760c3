"""Reservation Gateway - holds stock for in-progress orders.

Reserving moves units from available to reserved without touching
quantity, so no movement is written. Fulfilment converts a reservation
into an applied OUT/SALE movement in the same transaction that drops the
reserved count.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from stockledger.core.exceptions import InsufficientStockError, NotFoundError, ValidationError
from stockledger.core.retry import retry_on_conflict
from stockledger.core.security import SYSTEM_ACTOR, Actor
from stockledger.models.stock import InventoryRecord, MovementKind, MovementReason, StockMovement, utcnow
from stockledger.services.approval_gate import MovementResult
from stockledger.services.balance_engine import BalanceEngine
from stockledger.services.collaborators import (
    ReferenceValidator,
    SqlCatalog,
    SqlWarehouseRegistry,
    require_positive_quantity,
)
from stockledger.services.ledger_store import BalanceSnapshot, LedgerStore, batch_key

logger = logging.getLogger(__name__)


class ReservationGateway:
    """Reserve, release and fulfil stock on behalf of the order pipeline."""

    def __init__(self, db: Session, references: Optional[ReferenceValidator] = None):
        self.db = db
        self.store = LedgerStore(db)
        self.engine = BalanceEngine(db, self.store)
        self.references = references or ReferenceValidator(SqlCatalog(db), SqlWarehouseRegistry(db))

    def _require_record(
        self, product_id: int, warehouse_id: int, batch_number: Optional[str]
    ) -> InventoryRecord:
        record = self.store.read(product_id, warehouse_id, batch_number)
        if record is None:
            raise NotFoundError(
                "Inventory record",
                f"product={product_id} warehouse={warehouse_id} batch={batch_key(batch_number)!r}",
            )
        return record

    @retry_on_conflict()
    def reserve(
        self,
        product_id: int,
        warehouse_id: int,
        batch_number: Optional[str],
        quantity: int,
    ) -> BalanceSnapshot:
        """Hold ``quantity`` units. Fails if fewer are available."""
        require_positive_quantity(quantity)
        self.references.check(product_id, warehouse_id, batch_number)
        with self.store.transaction():
            record = self.store.read(product_id, warehouse_id, batch_number)
            available = record.available if record else 0
            if record is None or available < quantity:
                raise InsufficientStockError(
                    product_id=product_id,
                    warehouse_id=warehouse_id,
                    batch_number=batch_key(batch_number) or None,
                    requested=quantity,
                    available=available,
                )
            record.reserved += quantity
            record.bump_version()
            self.store.flush()
            snapshot = BalanceSnapshot.from_record(record)

        logger.info(
            f"Reserved {quantity} of product {product_id} in warehouse {warehouse_id} "
            f"(reserved={snapshot.reserved}, available={snapshot.available})"
        )
        return snapshot

    @retry_on_conflict()
    def release(
        self,
        product_id: int,
        warehouse_id: int,
        batch_number: Optional[str],
        quantity: int,
    ) -> BalanceSnapshot:
        """Give back up to ``quantity`` reserved units (reserved never drops below 0)."""
        require_positive_quantity(quantity)
        self.references.check(product_id, warehouse_id, batch_number)
        with self.store.transaction():
            record = self._require_record(product_id, warehouse_id, batch_number)
            released = min(quantity, record.reserved)
            if released < quantity:
                logger.warning(
                    f"Release of {quantity} on product {product_id} warehouse {warehouse_id} "
                    f"exceeds reserved {record.reserved}, releasing {released}"
                )
            record.reserved -= released
            record.bump_version()
            self.store.flush()
            snapshot = BalanceSnapshot.from_record(record)

        logger.info(f"Released {released} of product {product_id} in warehouse {warehouse_id}")
        return snapshot

    @retry_on_conflict()
    def fulfil(
        self,
        product_id: int,
        warehouse_id: int,
        batch_number: Optional[str],
        quantity: int,
        actor: Actor = SYSTEM_ACTOR,
        reference: Optional[str] = None,
    ) -> MovementResult:
        """Ship reserved units: reserved and quantity both drop by ``quantity``."""
        require_positive_quantity(quantity)
        self.references.check(product_id, warehouse_id, batch_number)
        with self.store.transaction():
            record = self._require_record(product_id, warehouse_id, batch_number)
            if quantity > record.reserved:
                raise ValidationError(
                    f"Cannot fulfil {quantity}: only {record.reserved} reserved", field="quantity"
                )

            # Un-reserve first so the OUT movement sees the units as available
            record.reserved -= quantity
            now = utcnow()
            movement = StockMovement(
                product_id=product_id,
                warehouse_id=warehouse_id,
                batch_number=batch_key(batch_number),
                expiry_date=record.expiry_date,
                kind=MovementKind.OUT.value,
                reason=MovementReason.SALE.value,
                quantity=quantity,
                reference=reference,
                performed_by_id=actor.id,
                performed_by_name=actor.name,
                approved_by_id=actor.id,
                approved_by_name=actor.name,
                approved_at=now,
                created_at=now,
            )
            self.engine.apply(record, movement, applied_at=now)
            result = MovementResult(
                movement.id, movement.approval_state, BalanceSnapshot.from_record(record)
            )

        logger.info(
            f"Fulfilled {quantity} of product {product_id} in warehouse {warehouse_id} "
            f"as movement {result.movement_id}"
        )
        return result


def get_reservation_gateway(db: Session) -> ReservationGateway:
    """Factory function to get a ReservationGateway instance."""
    return ReservationGateway(db)
