"""Stock ledger schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class BalanceResponse(BaseModel):
    """Inventory record / balance snapshot response schema."""

    id: int
    product_id: int
    warehouse_id: int
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    quantity: int
    reserved: int
    available: int
    reorder_point: int
    min_stock: int
    version: int
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("batch_number", mode="before")
    @classmethod
    def blank_batch_to_none(cls, v):
        """Batchless stock is stored with an empty batch number."""
        return v or None


class MovementResponse(BaseModel):
    """Stock movement response schema."""

    id: int
    product_id: int
    warehouse_id: int
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    kind: str
    reason: str
    quantity: int
    reference: Optional[str] = None
    notes: Optional[str] = None
    performed_by_id: Optional[str] = None
    performed_by_name: Optional[str] = None
    created_at: datetime
    approval_state: str
    approved_by_id: Optional[str] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None
    transfer_id: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("batch_number", mode="before")
    @classmethod
    def blank_batch_to_none(cls, v):
        """Batchless stock is stored with an empty batch number."""
        return v or None


class MovementCreate(BaseModel):
    """Manual movement request. ``is_approved=False`` parks it as a draft."""

    product_id: int
    warehouse_id: int
    kind: str
    reason: str
    quantity: int = Field(..., gt=0)
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)
    is_approved: bool = True


class MovementResultResponse(BaseModel):
    movement_id: int
    approval_state: str
    balance: Optional[BalanceResponse] = None

    model_config = {"from_attributes": True}


class TransferCreate(BaseModel):
    product_id: int
    from_warehouse_id: int
    to_warehouse_id: int
    quantity: int = Field(..., gt=0)
    batch_number: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)


class TransferResponse(BaseModel):
    transfer_id: str
    out_movement_id: int
    in_movement_id: int
    source: BalanceResponse
    destination: BalanceResponse

    model_config = {"from_attributes": True}


class TransferLegsResponse(BaseModel):
    transfer_id: str
    movements: List[MovementResponse]


class ReservationRequest(BaseModel):
    product_id: int
    warehouse_id: int
    quantity: int = Field(..., gt=0)
    batch_number: Optional[str] = None


class FulfilRequest(ReservationRequest):
    reference: Optional[str] = Field(None, max_length=100)


class ReorderPointUpdate(BaseModel):
    product_id: int
    warehouse_id: int
    batch_number: Optional[str] = None
    reorder_point: int = Field(..., ge=0)
    min_stock: Optional[int] = Field(None, ge=0)


class ProductStockResponse(BaseModel):
    product_id: int
    product_name: str
    sku: Optional[str] = None
    total_quantity: int
    total_reserved: int
    total_available: int
    records: List[BalanceResponse]


class ReplayResponse(BaseModel):
    product_id: int
    warehouse_id: int
    batch_number: Optional[str] = None
    stored_quantity: int
    replayed_quantity: int
    movement_count: int
    consistent: bool

    model_config = {"from_attributes": True}
