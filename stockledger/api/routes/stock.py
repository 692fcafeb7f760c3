"""Stock routes - inventory balances, movements, transfers, alerts and reservations.

Business Logic Flows:
- Movement: submitted through the approval gate; applied now or parked as DRAFT
- Approval: manager applies a DRAFT, re-checking available stock
- Transfer: TRANSFER_OUT from source + TRANSFER_IN to destination (one transaction)
- Reservation: reserve / release move units between available and reserved;
  fulfil turns reserved units into an OUT/SALE movement
- Alerts: derived on demand from current balances
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, Request

from stockledger.core.config import settings
from stockledger.core.rate_limit import limiter
from stockledger.core.rbac import CurrentUser, RequireManager
from stockledger.core.responses import list_response
from stockledger.db.session import DbSession
from stockledger.schemas.stock import (
    BalanceResponse,
    FulfilRequest,
    MovementCreate,
    MovementResponse,
    MovementResultResponse,
    ProductStockResponse,
    ReorderPointUpdate,
    ReplayResponse,
    ReservationRequest,
    TransferCreate,
    TransferLegsResponse,
    TransferResponse,
)
from stockledger.services.alert_deriver import StockAlertService
from stockledger.services.approval_gate import MovementRequest, get_approval_gate
from stockledger.services.inventory_service import InventoryService
from stockledger.services.ledger_store import LedgerStore, MovementFilter
from stockledger.services.reservation_gateway import get_reservation_gateway
from stockledger.services.transfer_coordinator import get_transfer_coordinator

logger = logging.getLogger(__name__)

router = APIRouter()


# ==================== INVENTORY ====================

@router.get("/inventory")
@limiter.limit("60/minute")
def list_inventory(
    request: Request,
    db: DbSession,
    warehouse_id: Optional[int] = None,
    product_id: Optional[int] = None,
    search: Optional[str] = None,
    low_stock: bool = False,
    out_of_stock: bool = False,
):
    """List inventory records with current quantities."""
    records = InventoryService(db).list_inventory(
        warehouse_id=warehouse_id,
        product_id=product_id,
        search=search,
        low_stock=low_stock,
        out_of_stock=out_of_stock,
    )
    return list_response([BalanceResponse.model_validate(r) for r in records])


@router.get("/balance")
@limiter.limit("120/minute")
def get_balance(
    request: Request,
    db: DbSession,
    product_id: int = Query(...),
    warehouse_id: int = Query(...),
    batch_number: Optional[str] = None,
):
    """Balance of one product/warehouse/batch."""
    snapshot = InventoryService(db).balance(product_id, warehouse_id, batch_number)
    return BalanceResponse.model_validate(snapshot)


@router.get("/products/{product_id}")
@limiter.limit("60/minute")
def get_product_stock(request: Request, db: DbSession, product_id: int):
    """Stock of a product across all warehouses, with totals."""
    data = InventoryService(db).product_stock(product_id)
    data["records"] = [BalanceResponse.model_validate(r) for r in data["records"]]
    return ProductStockResponse(**data)


@router.put("/reorder-point")
@limiter.limit("30/minute")
def set_reorder_point(
    request: Request,
    db: DbSession,
    body: ReorderPointUpdate,
    current_user: CurrentUser,
):
    """Set the low-stock threshold of an existing inventory record."""
    snapshot = InventoryService(db).set_thresholds(
        body.product_id,
        body.warehouse_id,
        body.batch_number,
        body.reorder_point,
        body.min_stock,
    )
    return BalanceResponse.model_validate(snapshot)


@router.get("/replay")
@limiter.limit("30/minute")
def replay_check(
    request: Request,
    db: DbSession,
    product_id: int = Query(...),
    warehouse_id: int = Query(...),
    batch_number: Optional[str] = None,
):
    """Compare the stored quantity with a replay of the applied movements."""
    check = InventoryService(db).replay_check(product_id, warehouse_id, batch_number)
    return ReplayResponse.model_validate(check)


# ==================== MOVEMENTS ====================

@router.get("/movements")
@limiter.limit("60/minute")
def list_movements(
    request: Request,
    db: DbSession,
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    batch_number: Optional[str] = None,
    kind: Optional[str] = None,
    reason: Optional[str] = None,
    approval_state: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(settings.movement_list_limit, ge=1, le=500),
):
    """Get stock movement history, newest first (drafts included)."""
    movements = LedgerStore(db).list_movements(
        MovementFilter(
            product_id=product_id,
            warehouse_id=warehouse_id,
            batch_number=batch_number,
            kind=kind.upper() if kind else None,
            reason=reason.upper() if reason else None,
            approval_state=approval_state.upper() if approval_state else None,
            start=start,
            end=end,
            limit=limit,
        )
    )
    return list_response([MovementResponse.model_validate(m) for m in movements])


@router.post("/movements", status_code=201)
@limiter.limit("30/minute")
def submit_movement(
    request: Request,
    db: DbSession,
    body: MovementCreate,
    current_user: CurrentUser,
):
    """Record a movement. Applied immediately unless it needs approval."""
    result = get_approval_gate(db).submit(
        MovementRequest(
            product_id=body.product_id,
            warehouse_id=body.warehouse_id,
            kind=body.kind.upper(),
            reason=body.reason.upper(),
            quantity=body.quantity,
            batch_number=body.batch_number,
            expiry_date=body.expiry_date,
            reference=body.reference,
            notes=body.notes,
            is_approved=body.is_approved,
        ),
        current_user.actor,
    )
    return MovementResultResponse.model_validate(result)


@router.post("/movements/{movement_id}/approve")
@limiter.limit("30/minute")
def approve_movement(
    request: Request,
    db: DbSession,
    movement_id: int,
    current_user: RequireManager,
):
    """Approve and apply a draft movement."""
    result = get_approval_gate(db).approve(movement_id, current_user.actor)
    return MovementResultResponse.model_validate(result)


# ==================== TRANSFERS ====================

@router.post("/transfers", status_code=201)
@limiter.limit("30/minute")
def create_transfer(
    request: Request,
    db: DbSession,
    body: TransferCreate,
    current_user: CurrentUser,
):
    """Move stock between warehouses."""
    result = get_transfer_coordinator(db).transfer(
        product_id=body.product_id,
        batch_number=body.batch_number,
        from_warehouse_id=body.from_warehouse_id,
        to_warehouse_id=body.to_warehouse_id,
        quantity=body.quantity,
        actor=current_user.actor,
        notes=body.notes,
    )
    return TransferResponse.model_validate(result)


@router.get("/transfers/{transfer_id}")
@limiter.limit("60/minute")
def get_transfer(request: Request, db: DbSession, transfer_id: str):
    """The two movements of a transfer."""
    legs = get_transfer_coordinator(db).get_transfer(transfer_id)
    return TransferLegsResponse(
        transfer_id=transfer_id,
        movements=[MovementResponse.model_validate(m) for m in legs],
    )


# ==================== ALERTS ====================

@router.get("/alerts")
@limiter.limit("60/minute")
def get_stock_alerts(
    request: Request,
    db: DbSession,
    warehouse_id: Optional[int] = None,
    alert_type: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
):
    """Get stock alerts (out of stock first, then low stock)."""
    return StockAlertService.get_alerts(db, warehouse_id=warehouse_id, alert_type=alert_type, limit=limit)


# ==================== RESERVATIONS ====================

@router.post("/reservations/reserve")
@limiter.limit("60/minute")
def reserve_stock(
    request: Request,
    db: DbSession,
    body: ReservationRequest,
    current_user: CurrentUser,
):
    """Reserve available stock for an order."""
    snapshot = get_reservation_gateway(db).reserve(
        body.product_id, body.warehouse_id, body.batch_number, body.quantity
    )
    return BalanceResponse.model_validate(snapshot)


@router.post("/reservations/release")
@limiter.limit("60/minute")
def release_stock(
    request: Request,
    db: DbSession,
    body: ReservationRequest,
    current_user: CurrentUser,
):
    """Release reserved stock."""
    snapshot = get_reservation_gateway(db).release(
        body.product_id, body.warehouse_id, body.batch_number, body.quantity
    )
    return BalanceResponse.model_validate(snapshot)


@router.post("/reservations/fulfil")
@limiter.limit("60/minute")
def fulfil_reservation(
    request: Request,
    db: DbSession,
    body: FulfilRequest,
    current_user: CurrentUser,
):
    """Ship reserved stock as a sale."""
    result = get_reservation_gateway(db).fulfil(
        body.product_id,
        body.warehouse_id,
        body.batch_number,
        body.quantity,
        actor=current_user.actor,
        reference=body.reference,
    )
    return MovementResultResponse.model_validate(result)
