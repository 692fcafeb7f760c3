"""Inventory queries and per-record settings.

Read side of the ledger (listings, per-product totals, replay checks) plus
the one non-movement write: reorder point / minimum stock configuration.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from stockledger.core.exceptions import NotFoundError, ValidationError
from stockledger.core.retry import retry_on_conflict
from stockledger.models.product import Product
from stockledger.models.stock import InventoryRecord
from stockledger.services.ledger_store import BalanceSnapshot, LedgerStore, batch_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplayCheck:
    product_id: int
    warehouse_id: int
    batch_number: Optional[str]
    stored_quantity: int
    replayed_quantity: int
    movement_count: int

    @property
    def consistent(self) -> bool:
        return self.stored_quantity == self.replayed_quantity


class InventoryService:
    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

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

    def list_inventory(
        self,
        warehouse_id: Optional[int] = None,
        product_id: Optional[int] = None,
        search: Optional[str] = None,
        low_stock: bool = False,
        out_of_stock: bool = False,
    ) -> List[InventoryRecord]:
        """Inventory records, narrowed by each stock-level filter that is set.

        ``low_stock`` keeps records at or below their reorder point (sold-out
        ones included); ``out_of_stock`` keeps records with nothing available.
        Both together keep only records matching both.
        """
        records = self.store.list_records(warehouse_id=warehouse_id, product_id=product_id, search=search)
        if low_stock:
            records = [r for r in records if r.available <= r.reorder_point]
        if out_of_stock:
            records = [r for r in records if r.available == 0]
        return records

    def balance(self, product_id: int, warehouse_id: int, batch_number: Optional[str] = None) -> BalanceSnapshot:
        return BalanceSnapshot.from_record(self._require_record(product_id, warehouse_id, batch_number))

    def product_stock(self, product_id: int) -> Dict[str, Any]:
        """All records of a product across warehouses, with totals."""
        product = self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)

        records = self.store.list_records(product_id=product_id)
        return {
            "product_id": product.id,
            "product_name": product.name,
            "sku": product.sku,
            "total_quantity": sum(r.quantity for r in records),
            "total_reserved": sum(r.reserved for r in records),
            "total_available": sum(r.available for r in records),
            "records": [BalanceSnapshot.from_record(r) for r in records],
        }

    @retry_on_conflict()
    def set_thresholds(
        self,
        product_id: int,
        warehouse_id: int,
        batch_number: Optional[str],
        reorder_point: int,
        min_stock: Optional[int] = None,
    ) -> BalanceSnapshot:
        """Set the low-stock threshold (and optionally min stock) of an existing record."""
        if reorder_point < 0:
            raise ValidationError("reorder_point cannot be negative", field="reorder_point")
        if min_stock is not None and min_stock < 0:
            raise ValidationError("min_stock cannot be negative", field="min_stock")

        with self.store.transaction():
            record = self._require_record(product_id, warehouse_id, batch_number)
            record.reorder_point = reorder_point
            if min_stock is not None:
                record.min_stock = min_stock
            record.bump_version()
            self.store.flush()
            snapshot = BalanceSnapshot.from_record(record)

        logger.info(
            f"Reorder point for product {product_id} warehouse {warehouse_id} set to {reorder_point}"
        )
        return snapshot

    def replay_check(
        self, product_id: int, warehouse_id: int, batch_number: Optional[str] = None
    ) -> ReplayCheck:
        """Compare the stored quantity with a replay of the applied movements."""
        history = self.store.applied_history(product_id, warehouse_id, batch_number)
        record = self.store.read(product_id, warehouse_id, batch_number)
        if record is None and not history:
            raise NotFoundError(
                "Inventory record",
                f"product={product_id} warehouse={warehouse_id} batch={batch_key(batch_number)!r}",
            )

        check = ReplayCheck(
            product_id=product_id,
            warehouse_id=warehouse_id,
            batch_number=batch_key(batch_number) or None,
            stored_quantity=record.quantity if record else 0,
            replayed_quantity=sum(m.delta for m in history),
            movement_count=len(history),
        )
        if not check.consistent:
            logger.error(
                f"Replay mismatch for product {product_id} warehouse {warehouse_id} "
                f"batch {batch_key(batch_number)!r}: stored={check.stored_quantity} "
                f"replayed={check.replayed_quantity}"
            )
        return check
