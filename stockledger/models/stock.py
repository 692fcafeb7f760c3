"""Stock models: InventoryRecord balances and the StockMovement ledger."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.db.base import Base, TimestampMixin, utcnow


def new_transfer_id() -> str:
    return str(uuid.uuid4())


class MovementKind(str, Enum):
    """Direction of a movement's effect on the balance."""

    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"


class MovementReason(str, Enum):
    """Business reason recorded with a movement."""

    PURCHASE = "PURCHASE"
    SALE = "SALE"
    ADJUSTMENT = "ADJUSTMENT"
    DAMAGE = "DAMAGE"
    RETURN = "RETURN"
    TRANSFER = "TRANSFER"


class ApprovalState(str, Enum):
    """DRAFT -> APPLIED, one way."""

    DRAFT = "DRAFT"
    APPLIED = "APPLIED"


INBOUND_KINDS = frozenset({MovementKind.IN, MovementKind.ADJUSTMENT_IN, MovementKind.TRANSFER_IN})
OUTBOUND_KINDS = frozenset({MovementKind.OUT, MovementKind.ADJUSTMENT_OUT, MovementKind.TRANSFER_OUT})
TRANSFER_KINDS = frozenset({MovementKind.TRANSFER_OUT, MovementKind.TRANSFER_IN})

ALLOWED_REASONS = {
    MovementKind.IN: frozenset({MovementReason.PURCHASE, MovementReason.RETURN, MovementReason.ADJUSTMENT}),
    MovementKind.OUT: frozenset({
        MovementReason.SALE, MovementReason.DAMAGE, MovementReason.RETURN, MovementReason.ADJUSTMENT,
    }),
    MovementKind.ADJUSTMENT_IN: frozenset({MovementReason.ADJUSTMENT, MovementReason.RETURN}),
    MovementKind.ADJUSTMENT_OUT: frozenset({MovementReason.ADJUSTMENT, MovementReason.DAMAGE}),
    MovementKind.TRANSFER_OUT: frozenset({MovementReason.TRANSFER}),
    MovementKind.TRANSFER_IN: frozenset({MovementReason.TRANSFER}),
}


def signed_delta(kind: MovementKind | str, quantity: int) -> int:
    """Balance effect of ``quantity`` units moved with ``kind``."""
    kind = MovementKind(kind)
    if kind in INBOUND_KINDS:
        return quantity
    return -quantity


class InventoryRecord(Base, TimestampMixin):
    """Current balance for one (product, warehouse, batch) triple.

    ``batch_number`` is stored as an empty string when the stock is not
    lot-tracked so the unique key also covers batchless stock. ``version``
    is the optimistic-concurrency counter: every UPDATE carries
    ``WHERE version = <loaded>`` and a mismatch raises StaleDataError.
    """

    __tablename__ = "inventory_records"
    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", "batch_number", name="uq_inventory_product_warehouse_batch"),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        CheckConstraint("reserved >= 0", name="ck_inventory_reserved_non_negative"),
        CheckConstraint("reserved <= quantity", name="ck_inventory_reserved_within_quantity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False, index=True
    )
    batch_number: Mapped[str] = mapped_column(String(100), default="", server_default="", nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    reserved: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    reorder_point: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    min_stock: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="inventory_records")
    warehouse: Mapped["Warehouse"] = relationship("Warehouse", back_populates="inventory_records")

    @property
    def available(self) -> int:
        return self.quantity - self.reserved

    @property
    def batch(self) -> Optional[str]:
        """Batch number as exposed to callers (None when not lot-tracked)."""
        return self.batch_number or None

    def bump_version(self) -> None:
        self.version += 1

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord product={self.product_id} warehouse={self.warehouse_id} "
            f"batch={self.batch_number!r} qty={self.quantity} reserved={self.reserved} v{self.version}>"
        )


class StockMovement(Base):
    """Ledger of all stock changes (single source of truth).

    Rows are created as DRAFT or APPLIED. An APPLIED row is immutable
    (see stockledger.db.immutability); corrections are new adjustment rows.
    """

    __tablename__ = "stock_movements"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        Index("ix_stock_movements_triple", "product_id", "warehouse_id", "batch_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False, index=True
    )
    batch_number: Mapped[str] = mapped_column(String(100), default="", server_default="", nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)  # always positive, sign comes from kind

    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    performed_by_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    performed_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    approval_state: Mapped[str] = mapped_column(
        String(10), default=ApprovalState.DRAFT.value, nullable=False, index=True
    )
    approved_by_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    approved_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    transfer_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="stock_movements")
    warehouse: Mapped["Warehouse"] = relationship("Warehouse", back_populates="stock_movements")

    @property
    def is_applied(self) -> bool:
        return self.approval_state == ApprovalState.APPLIED.value

    @property
    def delta(self) -> int:
        """Signed balance effect once applied."""
        return signed_delta(self.kind, self.quantity)

    @property
    def batch(self) -> Optional[str]:
        return self.batch_number or None

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} {self.kind}/{self.reason} qty={self.quantity} "
            f"state={self.approval_state}>"
        )


# Forward references
from stockledger.models.product import Product
from stockledger.models.warehouse import Warehouse
