# Services module

from stockledger.services.ledger_store import BalanceSnapshot, LedgerStore, MovementFilter
from stockledger.services.balance_engine import BalanceEngine
from stockledger.services.approval_gate import ApprovalGate, MovementRequest, MovementResult
from stockledger.services.transfer_coordinator import TransferCoordinator, TransferResult
from stockledger.services.alert_deriver import (
    AlertType,
    StockAlert,
    StockAlertService,
    classify_stock,
    derive_alerts,
)
from stockledger.services.reservation_gateway import ReservationGateway
from stockledger.services.inventory_service import InventoryService, ReplayCheck
