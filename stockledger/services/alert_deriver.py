"""Alert Deriver - low-stock and out-of-stock facts computed from current balances.

Alerts are not stored. They are recomputed on every request, so the same
balances always yield the same alerts in the same order:

    OUT_OF_STOCK  available == 0                    newest update first
    LOW_STOCK     0 < available <= reorder_point    lowest available first

Usage:
    from stockledger.services.alert_deriver import StockAlertService

    result = StockAlertService.get_alerts(db, warehouse_id=1)
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.models.product import Product
from stockledger.models.stock import InventoryRecord
from stockledger.services.collaborators import SqlWarehouseRegistry, WarehouseRegistry

logger = logging.getLogger(__name__)


class AlertType(str, Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"


# Lower value sorts first
ALERT_PRIORITY = {AlertType.OUT_OF_STOCK: 0, AlertType.LOW_STOCK: 1}
ALERT_SEVERITY = {AlertType.OUT_OF_STOCK: "critical", AlertType.LOW_STOCK: "warning"}


@dataclass(frozen=True)
class StockAlert:
    alert_type: AlertType
    product_id: int
    warehouse_id: int
    batch_number: Optional[str]
    available: int
    reorder_point: int
    updated_at: Optional[datetime] = None

    @property
    def severity(self) -> str:
        return ALERT_SEVERITY[self.alert_type]


def classify_stock(available: int, reorder_point: int) -> Optional[AlertType]:
    """Alert type for a balance, or None when stock is healthy."""
    if available <= 0:
        return AlertType.OUT_OF_STOCK
    if available <= reorder_point:
        return AlertType.LOW_STOCK
    return None


def _sort_key(alert: StockAlert):
    if alert.alert_type == AlertType.OUT_OF_STOCK:
        # Newest first; records that were never timestamped go last
        stamp = alert.updated_at.timestamp() if alert.updated_at else float("-inf")
        secondary = -stamp
    else:
        secondary = alert.available
    return (
        ALERT_PRIORITY[alert.alert_type],
        secondary,
        alert.product_id,
        alert.warehouse_id,
        alert.batch_number or "",
    )


def derive_alerts(records: Iterable[InventoryRecord]) -> List[StockAlert]:
    """Alerts for ``records``, most urgent first."""
    alerts = []
    for record in records:
        alert_type = classify_stock(record.available, record.reorder_point)
        if alert_type is None:
            continue
        alerts.append(
            StockAlert(
                alert_type=alert_type,
                product_id=record.product_id,
                warehouse_id=record.warehouse_id,
                batch_number=record.batch,
                available=record.available,
                reorder_point=record.reorder_point,
                updated_at=record.updated_at,
            )
        )
    alerts.sort(key=_sort_key)
    return alerts


class StockAlertService:
    """Alert listing for display, enriched with product and warehouse names."""

    @staticmethod
    def get_alerts(
        db: Session,
        warehouse_id: Optional[int] = None,
        alert_type: Optional[str] = None,
        limit: int = 100,
        warehouses: Optional[WarehouseRegistry] = None,
    ) -> Dict[str, Any]:
        """
        Derive alerts from current inventory records.

        Args:
            db: SQLAlchemy database session.
            warehouse_id: Filter by warehouse. If None, alerts for all warehouses.
            alert_type: OUT_OF_STOCK or LOW_STOCK. If None, return both.
            limit: Maximum number of alerts to return.
            warehouses: Registry answering warehouse display names.
                Defaults to the local warehouses table.

        Returns:
            Dict with keys: alerts, total, out_of_stock, low_stock.
        """
        query = select(InventoryRecord)
        if warehouse_id is not None:
            query = query.where(InventoryRecord.warehouse_id == warehouse_id)
        records = db.execute(query).scalars().all()

        alerts = derive_alerts(records)
        if alert_type:
            alerts = [a for a in alerts if a.alert_type.value == alert_type.upper()]

        out_of_stock = sum(1 for a in alerts if a.alert_type == AlertType.OUT_OF_STOCK)
        low_stock = len(alerts) - out_of_stock
        alerts = alerts[:limit]

        product_names = {
            p.id: p.name
            for p in db.execute(
                select(Product).where(Product.id.in_(sorted({a.product_id for a in alerts})))
            ).scalars()
        }
        registry = warehouses or SqlWarehouseRegistry(db)
        warehouse_names = {
            wid: registry.name(wid)
            for wid in sorted({a.warehouse_id for a in alerts})
        }

        items = []
        for alert in alerts:
            product_name = product_names.get(alert.product_id, f"Product {alert.product_id}")
            warehouse_name = warehouse_names.get(alert.warehouse_id) or f"Warehouse {alert.warehouse_id}"
            item = asdict(alert)
            item["alert_type"] = alert.alert_type.value
            item["severity"] = alert.severity
            item["product_name"] = product_name
            item["warehouse_name"] = warehouse_name
            if alert.alert_type == AlertType.OUT_OF_STOCK:
                item["message"] = f"{product_name} is out of stock in {warehouse_name}"
            else:
                item["message"] = (
                    f"{product_name} is low in {warehouse_name} "
                    f"({alert.available}/{alert.reorder_point})"
                )
            items.append(item)

        logger.debug(f"Derived {out_of_stock + low_stock} stock alerts (warehouse={warehouse_id})")
        return {
            "alerts": items,
            "total": out_of_stock + low_stock,
            "out_of_stock": out_of_stock,
            "low_stock": low_stock,
        }
