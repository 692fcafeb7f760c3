"""Approval Gate - decides whether a movement is applied now or parked as a draft.

Policy:
    - ``is_approved=False`` on the request  -> DRAFT
    - kind listed in REVIEW_REQUIRED_KINDS  -> DRAFT
    - otherwise                             -> applied immediately (auto-approved)

A DRAFT has no balance effect until ``approve`` applies it. Approval
re-checks available stock against the balance at approval time.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.exceptions import AlreadyAppliedError, NotFoundError, ValidationError
from stockledger.core.retry import retry_on_conflict
from stockledger.core.security import Actor
from stockledger.models.stock import (
    ALLOWED_REASONS,
    TRANSFER_KINDS,
    ApprovalState,
    MovementKind,
    MovementReason,
    StockMovement,
    utcnow,
)
from stockledger.services.balance_engine import BalanceEngine
from stockledger.services.collaborators import (
    ReferenceValidator,
    SqlCatalog,
    SqlWarehouseRegistry,
    require_positive_quantity,
)
from stockledger.services.ledger_store import BalanceSnapshot, LedgerStore, batch_key

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("audit")


@dataclass
class MovementRequest:
    product_id: int
    warehouse_id: int
    kind: str
    reason: str
    quantity: int
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    is_approved: bool = True


@dataclass(frozen=True)
class MovementResult:
    """Outcome of a submit/approve. ``balance`` is None for drafts."""

    movement_id: int
    approval_state: str
    balance: Optional[BalanceSnapshot] = None


def parse_kind_and_reason(kind: str, reason: str) -> tuple:
    """Validate a kind/reason pair and return them as enums."""
    try:
        parsed_kind = MovementKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown movement kind '{kind}'", field="kind") from None
    try:
        parsed_reason = MovementReason(reason)
    except ValueError:
        raise ValidationError(f"Unknown movement reason '{reason}'", field="reason") from None

    if parsed_reason not in ALLOWED_REASONS[parsed_kind]:
        raise ValidationError(
            f"Reason {parsed_reason.value} is not allowed for {parsed_kind.value} movements",
            field="reason",
        )
    return parsed_kind, parsed_reason


class ApprovalGate:
    """Entry point for manual movements (receipts, issues, adjustments)."""

    def __init__(self, db: Session, references: Optional[ReferenceValidator] = None):
        self.db = db
        self.store = LedgerStore(db)
        self.engine = BalanceEngine(db, self.store)
        self.references = references or ReferenceValidator(SqlCatalog(db), SqlWarehouseRegistry(db))

    def requires_review(self, request: MovementRequest, kind: MovementKind) -> bool:
        return not request.is_approved or kind.value in settings.review_required_kinds_list

    def _validate(self, request: MovementRequest) -> tuple:
        require_positive_quantity(request.quantity)
        kind, reason = parse_kind_and_reason(request.kind, request.reason)
        if kind in TRANSFER_KINDS:
            raise ValidationError(
                "Transfer movements are created by the transfer endpoint only", field="kind"
            )
        self.references.check(request.product_id, request.warehouse_id, request.batch_number)
        return kind, reason

    @retry_on_conflict()
    def submit(self, request: MovementRequest, actor: Actor) -> MovementResult:
        """Record a movement, applying it unless it needs review."""
        kind, reason = self._validate(request)
        draft = self.requires_review(request, kind)

        with self.store.transaction():
            movement = StockMovement(
                product_id=request.product_id,
                warehouse_id=request.warehouse_id,
                batch_number=batch_key(request.batch_number),
                expiry_date=request.expiry_date,
                kind=kind.value,
                reason=reason.value,
                quantity=request.quantity,
                reference=request.reference,
                notes=request.notes,
                performed_by_id=actor.id,
                performed_by_name=actor.name,
                created_at=utcnow(),
            )

            if draft:
                self.store.append_draft(movement)
                result = MovementResult(movement.id, ApprovalState.DRAFT.value)
            else:
                record = self.engine.record_for(movement)
                movement.approved_by_id = actor.id
                movement.approved_by_name = actor.name
                self.engine.apply(record, movement)
                result = MovementResult(
                    movement.id, ApprovalState.APPLIED.value, BalanceSnapshot.from_record(record)
                )

        audit_logger.info(
            f"Movement {result.movement_id} {kind.value}/{reason.value} qty={request.quantity} "
            f"product={request.product_id} warehouse={request.warehouse_id} "
            f"state={result.approval_state} by={actor.id}"
        )
        return result

    @retry_on_conflict()
    def approve(self, movement_id: int, approver: Actor) -> MovementResult:
        """Apply a DRAFT movement. Approving an APPLIED one fails with AlreadyAppliedError."""
        with self.store.transaction():
            movement = self.store.get_movement(movement_id)
            if movement is None:
                raise NotFoundError("Movement", movement_id)
            if movement.is_applied:
                raise AlreadyAppliedError(movement_id)

            record = self.engine.record_for(movement)
            movement.approved_by_id = approver.id
            movement.approved_by_name = approver.name
            movement.approved_at = utcnow()
            self.engine.apply(record, movement)
            result = MovementResult(
                movement.id, ApprovalState.APPLIED.value, BalanceSnapshot.from_record(record)
            )

        audit_logger.info(f"Movement {movement_id} approved by {approver.id}")
        return result


def get_approval_gate(db: Session) -> ApprovalGate:
    """Factory function to get an ApprovalGate instance."""
    return ApprovalGate(db)
