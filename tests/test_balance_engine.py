"""Tests for the balance engine."""

import pytest

from stockledger.core.exceptions import InsufficientStockError
from stockledger.models.stock import MovementKind, StockMovement, utcnow
from stockledger.services.balance_engine import BalanceEngine
from stockledger.services.ledger_store import LedgerStore


def _movement(setup, kind, quantity, reason):
    return StockMovement(
        product_id=setup["widget"].id,
        warehouse_id=setup["wh1"].id,
        kind=kind,
        reason=reason,
        quantity=quantity,
        created_at=utcnow(),
    )


@pytest.fixture
def stocked(stock_setup):
    """Widget in WH1 with quantity 100, reserved 30."""
    db = stock_setup["db"]
    engine = BalanceEngine(db)
    with engine.store.transaction():
        record = engine.record_for(_movement(stock_setup, "IN", 100, "PURCHASE"))
        engine.apply(record, _movement(stock_setup, "IN", 100, "PURCHASE"))
        record.reserved = 30
        record.bump_version()
    stock_setup["engine"] = engine
    stock_setup["record"] = record
    return stock_setup


class TestSignedDelta:
    @pytest.mark.parametrize("kind", ["IN", "ADJUSTMENT_IN", "TRANSFER_IN"])
    def test_inbound_kinds_add(self, kind):
        assert BalanceEngine.signed_delta(kind, 7) == 7

    @pytest.mark.parametrize("kind", ["OUT", "ADJUSTMENT_OUT", "TRANSFER_OUT"])
    def test_outbound_kinds_subtract(self, kind):
        assert BalanceEngine.signed_delta(kind, 7) == -7

    def test_accepts_enum(self):
        assert BalanceEngine.signed_delta(MovementKind.OUT, 3) == -3


class TestApply:
    def test_inbound_increases_quantity(self, stocked):
        engine, record = stocked["engine"], stocked["record"]
        with engine.store.transaction():
            engine.apply(record, _movement(stocked, "ADJUSTMENT_IN", 5, "ADJUSTMENT"))

        assert record.quantity == 105
        assert record.available == 75

    def test_outbound_up_to_available(self, stocked):
        engine, record = stocked["engine"], stocked["record"]
        with engine.store.transaction():
            engine.apply(record, _movement(stocked, "OUT", 70, "SALE"))

        assert record.quantity == 30
        assert record.reserved == 30
        assert record.available == 0

    def test_outbound_beyond_available_is_rejected(self, stocked):
        engine, record = stocked["engine"], stocked["record"]
        version = record.version

        with pytest.raises(InsufficientStockError) as exc_info:
            with engine.store.transaction():
                engine.apply(record, _movement(stocked, "OUT", 71, "SALE"))

        assert exc_info.value.requested == 71
        assert exc_info.value.available == 70
        stored = LedgerStore(stocked["db"]).read(stocked["widget"].id, stocked["wh1"].id)
        assert stored.quantity == 100
        assert stored.version == version

    def test_adjustment_out_cannot_drive_available_negative(self, stocked):
        """Shrinkage beyond available stock needs reservations released first."""
        engine, record = stocked["engine"], stocked["record"]
        assert engine.NEGATIVE_QUANTITY_KINDS == frozenset()

        with pytest.raises(InsufficientStockError):
            with engine.store.transaction():
                engine.apply(record, _movement(stocked, "ADJUSTMENT_OUT", 80, "DAMAGE"))

    def test_each_application_bumps_version_once(self, stocked):
        engine, record = stocked["engine"], stocked["record"]
        version = record.version
        with engine.store.transaction():
            engine.apply(record, _movement(stocked, "IN", 1, "PURCHASE"))

        assert record.version == version + 1


class TestRecordFor:
    def test_outbound_on_untouched_triple_reports_zero_available(self, stock_setup):
        engine = BalanceEngine(stock_setup["db"])
        movement = _movement(stock_setup, "OUT", 1, "SALE")

        with pytest.raises(InsufficientStockError) as exc_info:
            engine.record_for(movement)

        assert exc_info.value.available == 0
        assert LedgerStore(stock_setup["db"]).read(stock_setup["widget"].id, stock_setup["wh1"].id) is None

    def test_inbound_creates_record(self, stock_setup):
        engine = BalanceEngine(stock_setup["db"])
        with engine.store.transaction():
            record = engine.record_for(_movement(stock_setup, "IN", 1, "PURCHASE"))

        assert record.id is not None
        assert record.quantity == 0
