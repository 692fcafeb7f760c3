"""Tests for alert derivation."""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from stockledger.services.alert_deriver import AlertType, StockAlertService, classify_stock, derive_alerts
from stockledger.services.approval_gate import ApprovalGate, MovementRequest
from stockledger.services.inventory_service import InventoryService


def _record(product_id, available, reorder_point, updated_at=None, warehouse_id=1):
    return SimpleNamespace(
        product_id=product_id,
        warehouse_id=warehouse_id,
        batch=None,
        available=available,
        reorder_point=reorder_point,
        updated_at=updated_at,
    )


class TestClassifyStock:
    @pytest.mark.parametrize(
        "available,reorder_point,expected",
        [
            (0, 10, AlertType.OUT_OF_STOCK),
            (0, 0, AlertType.OUT_OF_STOCK),
            (1, 10, AlertType.LOW_STOCK),
            (10, 10, AlertType.LOW_STOCK),
            (11, 10, None),
            (5, 0, None),
        ],
    )
    def test_thresholds(self, available, reorder_point, expected):
        assert classify_stock(available, reorder_point) == expected

    def test_is_deterministic(self):
        assert [classify_stock(5, 10) for _ in range(3)] == [AlertType.LOW_STOCK] * 3


class TestDeriveAlerts:
    def test_out_of_stock_first_then_lowest_available(self):
        now = datetime(2026, 1, 1, 12, 0)
        records = [
            _record(1, 8, 10),
            _record(2, 0, 5, updated_at=now - timedelta(hours=1)),
            _record(3, 3, 10),
            _record(4, 50, 10),
            _record(5, 0, 5, updated_at=now),
        ]

        alerts = derive_alerts(records)

        assert [a.product_id for a in alerts] == [5, 2, 3, 1]
        assert [a.alert_type for a in alerts] == [
            AlertType.OUT_OF_STOCK,
            AlertType.OUT_OF_STOCK,
            AlertType.LOW_STOCK,
            AlertType.LOW_STOCK,
        ]

    def test_healthy_stock_has_no_alerts(self):
        assert derive_alerts([_record(1, 20, 10)]) == []


class TestStockAlertService:
    def test_low_stock_clears_after_receipt(self, stock_setup, actor):
        """Scenario 6."""
        db = stock_setup["db"]
        widget, wh1 = stock_setup["widget"], stock_setup["wh1"]
        gate = ApprovalGate(db)
        gate.submit(MovementRequest(widget.id, wh1.id, "IN", "PURCHASE", 5), actor)
        InventoryService(db).set_thresholds(widget.id, wh1.id, None, reorder_point=10)

        result = StockAlertService.get_alerts(db)
        assert result["total"] == 1
        assert result["low_stock"] == 1
        alert = result["alerts"][0]
        assert alert["alert_type"] == "LOW_STOCK"
        assert alert["product_name"] == "Widget"
        assert alert["warehouse_name"] == "Central Warehouse"
        assert alert["severity"] == "warning"

        gate.submit(MovementRequest(widget.id, wh1.id, "IN", "PURCHASE", 20), actor)
        assert StockAlertService.get_alerts(db)["total"] == 0

    def test_filters_by_type_and_warehouse(self, stock_setup, actor):
        db = stock_setup["db"]
        widget, serum, wh1, wh2 = (stock_setup[k] for k in ("widget", "serum", "wh1", "wh2"))
        gate = ApprovalGate(db)
        gate.submit(MovementRequest(widget.id, wh1.id, "IN", "PURCHASE", 4), actor)
        gate.submit(MovementRequest(widget.id, wh1.id, "OUT", "SALE", 4), actor)
        gate.submit(MovementRequest(serum.id, wh2.id, "IN", "PURCHASE", 2, batch_number="L1"), actor)
        InventoryService(db).set_thresholds(serum.id, wh2.id, "L1", reorder_point=5)

        everything = StockAlertService.get_alerts(db)
        assert everything["out_of_stock"] == 1
        assert everything["low_stock"] == 1
        assert everything["alerts"][0]["alert_type"] == "OUT_OF_STOCK"

        only_low = StockAlertService.get_alerts(db, alert_type="low_stock")
        assert [a["product_id"] for a in only_low["alerts"]] == [serum.id]

        wh1_only = StockAlertService.get_alerts(db, warehouse_id=wh1.id)
        assert [a["alert_type"] for a in wh1_only["alerts"]] == ["OUT_OF_STOCK"]

    def test_warehouse_names_come_from_registry(self, stock_setup, actor):
        db = stock_setup["db"]
        widget, wh1 = stock_setup["widget"], stock_setup["wh1"]
        ApprovalGate(db).submit(MovementRequest(widget.id, wh1.id, "IN", "PURCHASE", 1), actor)
        ApprovalGate(db).submit(MovementRequest(widget.id, wh1.id, "OUT", "SALE", 1), actor)

        class Registry:
            asked = []

            def warehouse_exists(self, warehouse_id):
                return True

            def name(self, warehouse_id):
                self.asked.append(warehouse_id)
                return "Dock 7" if warehouse_id == wh1.id else None

        registry = Registry()
        alert = StockAlertService.get_alerts(db, warehouses=registry)["alerts"][0]

        assert registry.asked == [wh1.id]
        assert alert["warehouse_name"] == "Dock 7"
        assert alert["message"] == "Widget is out of stock in Dock 7"
