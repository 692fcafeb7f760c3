"""Product model."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.db.base import Base, TimestampMixin


class Product(Base, TimestampMixin):
    """Local projection of a catalog product.

    The catalog owns products; the ledger only needs identity, display
    fields and whether stock is lot-tracked.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    sku: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    track_batches: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)  # batch required on movements
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    inventory_records: Mapped[list["InventoryRecord"]] = relationship(
        "InventoryRecord", back_populates="product"
    )
    stock_movements: Mapped[list["StockMovement"]] = relationship(
        "StockMovement", back_populates="product"
    )


# Forward references
from stockledger.models.stock import InventoryRecord, StockMovement
