"""Ledger Store - durable, transactional storage of movements and balances.

Every command runs inside ``LedgerStore.transaction()``: the movement rows
and the balance change they cause are committed together or not at all.
Version conflicts surface as ConcurrentModificationError so callers can
retry the whole unit of work (see stockledger.core.retry).
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterator, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockledger.core.config import settings
from stockledger.core.exceptions import ConcurrentModificationError
from stockledger.db.base import as_utc
from stockledger.models.product import Product
from stockledger.models.stock import (
    ApprovalState,
    InventoryRecord,
    StockMovement,
    utcnow,
)

logger = logging.getLogger(__name__)

_RECORD_KEY_MARKERS = (
    "uq_inventory_product_warehouse_batch",
    "UNIQUE constraint failed: inventory_records",
)


def batch_key(batch_number: Optional[str]) -> str:
    """Storage form of a batch number ('' when the stock is not lot-tracked)."""
    return (batch_number or "").strip()


@dataclass(frozen=True)
class BalanceSnapshot:
    """Point-in-time view of an inventory record."""

    id: int
    product_id: int
    warehouse_id: int
    batch_number: Optional[str]
    expiry_date: Optional[date]
    quantity: int
    reserved: int
    available: int
    reorder_point: int
    min_stock: int
    version: int
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: InventoryRecord) -> "BalanceSnapshot":
        return cls(
            id=record.id,
            product_id=record.product_id,
            warehouse_id=record.warehouse_id,
            batch_number=record.batch,
            expiry_date=record.expiry_date,
            quantity=record.quantity,
            reserved=record.reserved,
            available=record.available,
            reorder_point=record.reorder_point,
            min_stock=record.min_stock,
            version=record.version,
            updated_at=record.updated_at,
        )


@dataclass
class MovementFilter:
    """Filters for movement listings.

    ``start``/``end`` bound ``created_at`` inclusively and may carry any UTC
    offset; naive values are read as UTC.
    """

    product_id: Optional[int] = None
    warehouse_id: Optional[int] = None
    batch_number: Optional[str] = None
    kind: Optional[str] = None
    reason: Optional[str] = None
    approval_state: Optional[str] = None
    transfer_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: Optional[int] = None


class LedgerStore:
    """Reads and writes InventoryRecord / StockMovement rows on one session."""

    def __init__(self, db: Session):
        self.db = db

    # ===== UNIT OF WORK =====

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One atomic unit of work: commit on success, roll back on any error."""
        try:
            yield self.db
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.info(f"Version conflict, unit of work rolled back: {e}")
            raise ConcurrentModificationError() from e
        except IntegrityError as e:
            self.db.rollback()
            if any(marker in str(e.orig) for marker in _RECORD_KEY_MARKERS):
                logger.info("Concurrent first-touch creation of an inventory record, rolled back")
                raise ConcurrentModificationError(
                    "Inventory record was created concurrently, retry the operation"
                ) from e
            raise
        except Exception:
            self.db.rollback()
            raise

    def flush(self) -> None:
        """Flush pending writes so version conflicts surface inside the unit of work."""
        self.db.flush()

    # ===== BALANCES =====

    def read(
        self,
        product_id: int,
        warehouse_id: int,
        batch_number: Optional[str] = None,
    ) -> Optional[InventoryRecord]:
        """Current record for the triple, or None if it was never touched."""
        return self.db.execute(
            select(InventoryRecord).where(
                InventoryRecord.product_id == product_id,
                InventoryRecord.warehouse_id == warehouse_id,
                InventoryRecord.batch_number == batch_key(batch_number),
            )
        ).scalar_one_or_none()

    def get_or_create(
        self,
        product_id: int,
        warehouse_id: int,
        batch_number: Optional[str] = None,
        expiry_date: Optional[date] = None,
    ) -> InventoryRecord:
        """Existing record, or a fresh one at quantity 0 / reserved 0 / version 0."""
        record = self.read(product_id, warehouse_id, batch_number)
        if record is not None:
            if record.expiry_date is None and expiry_date is not None:
                record.expiry_date = expiry_date
            return record

        record = InventoryRecord(
            product_id=product_id,
            warehouse_id=warehouse_id,
            batch_number=batch_key(batch_number),
            expiry_date=expiry_date,
            quantity=0,
            reserved=0,
            version=0,
        )
        self.db.add(record)
        self.flush()
        logger.debug(
            f"Created inventory record product={product_id} warehouse={warehouse_id} "
            f"batch={batch_key(batch_number)!r}"
        )
        return record

    def list_records(
        self,
        warehouse_id: Optional[int] = None,
        product_id: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[InventoryRecord]:
        """Inventory records, most recently updated first."""
        query = select(InventoryRecord)
        if warehouse_id is not None:
            query = query.where(InventoryRecord.warehouse_id == warehouse_id)
        if product_id is not None:
            query = query.where(InventoryRecord.product_id == product_id)
        if search:
            pattern = f"%{search}%"
            query = query.join(Product, Product.id == InventoryRecord.product_id).where(
                or_(Product.name.ilike(pattern), Product.sku.ilike(pattern))
            )
        query = query.order_by(InventoryRecord.updated_at.desc(), InventoryRecord.id.desc())
        return list(self.db.execute(query).scalars())

    # ===== MOVEMENTS =====

    def append_draft(self, movement: StockMovement) -> StockMovement:
        """Store a DRAFT movement; it has no balance effect."""
        movement.approval_state = ApprovalState.DRAFT.value
        self.db.add(movement)
        self.flush()
        return movement

    def append_and_apply(
        self,
        record: InventoryRecord,
        movement: StockMovement,
        delta: int,
        applied_at: Optional[datetime] = None,
    ) -> StockMovement:
        """Apply ``delta`` to the record and store the movement as APPLIED.

        The UPDATE is guarded by the record's loaded version; the flush
        raises StaleDataError if another writer got there first.
        """
        now = applied_at or utcnow()
        record.quantity += delta
        record.bump_version()

        movement.approval_state = ApprovalState.APPLIED.value
        movement.applied_at = now
        if movement.approved_at is None:
            movement.approved_at = now
        self.db.add(movement)
        self.flush()
        return movement

    def get_movement(self, movement_id: int) -> Optional[StockMovement]:
        return self.db.get(StockMovement, movement_id)

    def list_movements(self, filters: Optional[MovementFilter] = None) -> List[StockMovement]:
        """Movements matching ``filters``, newest first (drafts included)."""
        filters = filters or MovementFilter()
        query = select(StockMovement)
        if filters.product_id is not None:
            query = query.where(StockMovement.product_id == filters.product_id)
        if filters.warehouse_id is not None:
            query = query.where(StockMovement.warehouse_id == filters.warehouse_id)
        if filters.batch_number is not None:
            query = query.where(StockMovement.batch_number == batch_key(filters.batch_number))
        if filters.kind:
            query = query.where(StockMovement.kind == filters.kind)
        if filters.reason:
            query = query.where(StockMovement.reason == filters.reason)
        if filters.approval_state:
            query = query.where(StockMovement.approval_state == filters.approval_state)
        if filters.transfer_id:
            query = query.where(StockMovement.transfer_id == filters.transfer_id)
        if filters.start is not None:
            query = query.where(StockMovement.created_at >= as_utc(filters.start))
        if filters.end is not None:
            query = query.where(StockMovement.created_at <= as_utc(filters.end))

        limit = filters.limit or settings.movement_list_limit
        query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit)
        return list(self.db.execute(query).scalars())

    def applied_history(
        self,
        product_id: int,
        warehouse_id: int,
        batch_number: Optional[str] = None,
    ) -> List[StockMovement]:
        """APPLIED movements of one triple in application order."""
        return list(
            self.db.execute(
                select(StockMovement)
                .where(
                    StockMovement.product_id == product_id,
                    StockMovement.warehouse_id == warehouse_id,
                    StockMovement.batch_number == batch_key(batch_number),
                    StockMovement.approval_state == ApprovalState.APPLIED.value,
                )
                .order_by(StockMovement.applied_at.asc(), StockMovement.id.asc())
            ).scalars()
        )

    def replay_quantity(
        self,
        product_id: int,
        warehouse_id: int,
        batch_number: Optional[str] = None,
    ) -> int:
        """Rebuild the quantity of a triple from its applied movements alone."""
        quantity = 0
        for movement in self.applied_history(product_id, warehouse_id, batch_number):
            quantity += movement.delta
        return quantity
