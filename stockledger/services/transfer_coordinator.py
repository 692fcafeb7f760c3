"""Transfer Coordinator - moves stock between warehouses atomically.

A transfer is two movements sharing one ``transfer_id``:

    TRANSFER_OUT at the source       (quantity leaves, available re-checked)
    TRANSFER_IN  at the destination  (record created on first touch)

Both legs, both balance updates and both version bumps commit in one
transaction. If either leg fails nothing is written.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from stockledger.core.exceptions import InsufficientStockError, NotFoundError, ValidationError
from stockledger.core.retry import retry_on_conflict
from stockledger.core.security import Actor
from stockledger.models.stock import (
    MovementKind,
    MovementReason,
    StockMovement,
    new_transfer_id,
    utcnow,
)
from stockledger.services.balance_engine import BalanceEngine
from stockledger.services.collaborators import (
    ReferenceValidator,
    SqlCatalog,
    SqlWarehouseRegistry,
    require_positive_quantity,
)
from stockledger.services.ledger_store import BalanceSnapshot, LedgerStore, MovementFilter, batch_key

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("audit")


@dataclass(frozen=True)
class TransferResult:
    transfer_id: str
    out_movement_id: int
    in_movement_id: int
    source: BalanceSnapshot
    destination: BalanceSnapshot


class TransferCoordinator:
    """Cross-warehouse transfers. Transfers bypass the approval gate."""

    def __init__(self, db: Session, references: Optional[ReferenceValidator] = None):
        self.db = db
        self.store = LedgerStore(db)
        self.engine = BalanceEngine(db, self.store)
        self.references = references or ReferenceValidator(SqlCatalog(db), SqlWarehouseRegistry(db))

    def _validate(
        self,
        product_id: int,
        batch_number: Optional[str],
        from_warehouse_id: int,
        to_warehouse_id: int,
        quantity: int,
    ) -> None:
        require_positive_quantity(quantity)
        if from_warehouse_id == to_warehouse_id:
            raise ValidationError(
                "Source and destination warehouse must differ", field="to_warehouse_id"
            )
        self.references.require_product(product_id)
        self.references.require_warehouse(from_warehouse_id)
        self.references.require_warehouse(to_warehouse_id)
        self.references.require_batch(product_id, batch_number)

    @retry_on_conflict()
    def transfer(
        self,
        product_id: int,
        batch_number: Optional[str],
        from_warehouse_id: int,
        to_warehouse_id: int,
        quantity: int,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> TransferResult:
        """Move ``quantity`` units of a product/batch from one warehouse to another."""
        self._validate(product_id, batch_number, from_warehouse_id, to_warehouse_id, quantity)
        batch = batch_key(batch_number)

        with self.store.transaction():
            source = self.store.read(product_id, from_warehouse_id, batch)
            if source is None or source.available < quantity:
                raise InsufficientStockError(
                    product_id=product_id,
                    warehouse_id=from_warehouse_id,
                    batch_number=batch or None,
                    requested=quantity,
                    available=source.available if source else 0,
                )

            transfer_id = new_transfer_id()
            now = utcnow()
            common = dict(
                product_id=product_id,
                batch_number=batch,
                expiry_date=source.expiry_date,
                reason=MovementReason.TRANSFER.value,
                quantity=quantity,
                reference=transfer_id,
                notes=notes,
                performed_by_id=actor.id,
                performed_by_name=actor.name,
                approved_by_id=actor.id,
                approved_by_name=actor.name,
                approved_at=now,
                created_at=now,
                transfer_id=transfer_id,
            )

            out_movement = StockMovement(
                warehouse_id=from_warehouse_id, kind=MovementKind.TRANSFER_OUT.value, **common
            )
            self.engine.apply(source, out_movement, applied_at=now)

            in_movement = StockMovement(
                warehouse_id=to_warehouse_id, kind=MovementKind.TRANSFER_IN.value, **common
            )
            destination = self.store.get_or_create(
                product_id, to_warehouse_id, batch, source.expiry_date
            )
            self.engine.apply(destination, in_movement, applied_at=now)

            result = TransferResult(
                transfer_id=transfer_id,
                out_movement_id=out_movement.id,
                in_movement_id=in_movement.id,
                source=BalanceSnapshot.from_record(source),
                destination=BalanceSnapshot.from_record(destination),
            )

        audit_logger.info(
            f"Transfer {transfer_id}: {quantity} of product {product_id} batch {batch!r} "
            f"from warehouse {from_warehouse_id} to {to_warehouse_id} by {actor.id}"
        )
        return result

    def get_transfer(self, transfer_id: str) -> List[StockMovement]:
        """Both legs of a transfer, TRANSFER_OUT first."""
        legs = self.store.list_movements(MovementFilter(transfer_id=transfer_id, limit=2))
        if not legs:
            raise NotFoundError("Transfer", transfer_id)
        return sorted(legs, key=lambda m: (m.kind != MovementKind.TRANSFER_OUT.value, m.id))


def get_transfer_coordinator(db: Session) -> TransferCoordinator:
    """Factory function to get a TransferCoordinator instance."""
    return TransferCoordinator(db)
