"""ORM-level immutability of applied stock movements.

SQLAlchemy fires ``before_update`` / ``before_delete`` before SQL reaches the
database. The listeners below abort the flush when an APPLIED movement would
be edited or removed:

    DRAFT   -> APPLIED      allowed (this is the approval itself)
    APPLIED -> anything     blocked
    delete APPLIED          blocked

Drafts stay editable so they can be approved.
"""

import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stockledger.core.exceptions import ImmutableMovementError
from stockledger.models.stock import ApprovalState, StockMovement

logger = logging.getLogger(__name__)


def _was_applied_before(target: StockMovement) -> bool:
    """True when the row was already APPLIED before the pending change."""
    history = get_history(target, "approval_state")
    if history.deleted:
        return history.deleted[0] == ApprovalState.APPLIED.value
    if not history.added:
        return target.approval_state == ApprovalState.APPLIED.value
    return False


def _check_movement_immutability(mapper, connection, target):
    if not _was_applied_before(target):
        return

    for attr in inspect(target).attrs:
        if attr.history.has_changes():
            logger.error(
                f"Blocked update of applied movement {target.id}: field '{attr.key}'"
            )
            raise ImmutableMovementError(target.id, "modify")


def _check_movement_delete(mapper, connection, target):
    if target.approval_state == ApprovalState.APPLIED.value:
        logger.error(f"Blocked delete of applied movement {target.id}")
        raise ImmutableMovementError(target.id, "delete")


def register_immutability_listeners() -> None:
    """Install the listeners once; safe to call repeatedly."""
    if not event.contains(StockMovement, "before_update", _check_movement_immutability):
        event.listen(StockMovement, "before_update", _check_movement_immutability)
    if not event.contains(StockMovement, "before_delete", _check_movement_delete):
        event.listen(StockMovement, "before_delete", _check_movement_delete)
