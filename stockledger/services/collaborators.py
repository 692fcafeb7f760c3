"""Contracts consumed from systems outside the ledger.

The catalog, the warehouse registry and the identity system are owned
elsewhere. The ledger only asks them a few questions; the SQL-backed
implementations here answer from the local ``products`` / ``warehouses``
projections.
"""

from typing import Optional, Protocol

from sqlalchemy.orm import Session

from stockledger.core.exceptions import NotFoundError, ValidationError
from stockledger.models.product import Product
from stockledger.models.warehouse import Warehouse


class Catalog(Protocol):
    def product_exists(self, product_id: int) -> bool: ...

    def tracks_batches(self, product_id: int) -> bool: ...


class WarehouseRegistry(Protocol):
    def warehouse_exists(self, warehouse_id: int) -> bool: ...

    def name(self, warehouse_id: int) -> Optional[str]: ...


class SqlCatalog:
    """Catalog answered from the local products table."""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, product_id: int) -> Optional[Product]:
        return self.db.get(Product, product_id)

    def product_exists(self, product_id: int) -> bool:
        product = self._get(product_id)
        return product is not None and product.active

    def tracks_batches(self, product_id: int) -> bool:
        product = self._get(product_id)
        return bool(product and product.track_batches)


class SqlWarehouseRegistry:
    """Warehouse registry answered from the local warehouses table."""

    def __init__(self, db: Session):
        self.db = db

    def warehouse_exists(self, warehouse_id: int) -> bool:
        warehouse = self.db.get(Warehouse, warehouse_id)
        return warehouse is not None and warehouse.active

    def name(self, warehouse_id: int) -> Optional[str]:
        warehouse = self.db.get(Warehouse, warehouse_id)
        return warehouse.name if warehouse else None


class ReferenceValidator:
    """Checks shared by every command that names a product, warehouse and batch."""

    def __init__(self, catalog: Catalog, warehouses: WarehouseRegistry):
        self.catalog = catalog
        self.warehouses = warehouses

    def require_product(self, product_id: int) -> None:
        if not self.catalog.product_exists(product_id):
            raise NotFoundError("Product", product_id)

    def require_warehouse(self, warehouse_id: int) -> None:
        if not self.warehouses.warehouse_exists(warehouse_id):
            raise NotFoundError("Warehouse", warehouse_id)

    def require_batch(self, product_id: int, batch_number: Optional[str]) -> None:
        if not batch_number and self.catalog.tracks_batches(product_id):
            raise ValidationError(
                f"Product {product_id} is batch-tracked; batch_number is required",
                field="batch_number",
            )

    def check(self, product_id: int, warehouse_id: int, batch_number: Optional[str]) -> None:
        self.require_product(product_id)
        self.require_warehouse(warehouse_id)
        self.require_batch(product_id, batch_number)


def require_positive_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"Quantity must be a positive integer, got {quantity!r}", field="quantity")
