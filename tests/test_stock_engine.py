import pytest
from sqlalchemy import select

from backoffice.core.errors import ConsistencyError, InsufficientStockError, ValidationError
from backoffice.models.inventory import InventoryItem, MovementType, StockLedger
from backoffice.services.inventory_service import create_item
from backoffice.services.stock_engine import MOVEMENT_RULES, MovementBatch, rule_for, verify_ledger_chain


def _ledger(store, inventory_id: str) -> list[StockLedger]:
    return store.scalars(
        store.select(StockLedger).where(StockLedger.inventory_id == inventory_id).order_by(StockLedger.sequence)
    )


def test_every_movement_kind_has_a_rule():
    assert set(MOVEMENT_RULES) == set(MovementType)
    assert rule_for(MovementType.SALE).stock_sign == -1
    assert rule_for(MovementType.SALE).checks_stock is True
    assert rule_for(MovementType.ADJUST).stock_sign == 1
    assert rule_for(MovementType.PURCHASE).sets_cost is True
    assert rule_for(MovementType.RETURN).sets_cost is False


def test_batch_merges_same_kind_and_writes_one_row_per_item(store):
    item = create_item(store, name="Gula Pasir 1kg", code="GLP-1", price=17000, cost=15000, initial_stock=40)

    batch = MovementBatch(store, ref_id="ref-merge")
    batch.load([item.id])
    batch.add(MovementType.SALE, item.id, 5)
    batch.add(MovementType.SALE, item.id, 7)
    entries = batch.apply()

    assert len(entries) == 1
    assert entries[0].quantity == -12
    assert (entries[0].stock_before, entries[0].stock_after) == (40, 28)

    store.session.refresh(item)
    assert item.stock == 28
    assert item.sold == 12
    assert item.ledger_sequence == 1


def test_batch_chains_mixed_kinds_on_one_item(store):
    item = create_item(store, name="Minyak Goreng 2L", code="MYK-2", price=36000, cost=32000, initial_stock=10)

    batch = MovementBatch(store, ref_id="ref-edit")
    batch.load([item.id])
    batch.add(MovementType.EDIT_SALE_RESTORE, item.id, 4)
    batch.add(MovementType.EDIT_SALE_APPLY, item.id, 14)
    restore, apply_ = batch.apply()

    assert (restore.sequence, restore.stock_before, restore.stock_after) == (1, 10, 14)
    assert (apply_.sequence, apply_.stock_before, apply_.stock_after) == (2, 14, 0)
    assert verify_ledger_chain(store, item.id).stock == 0


def test_shortfall_writes_nothing(store):
    item = create_item(store, name="Kopi Bubuk 200g", code="KPB-200", price=25000, cost=20000, initial_stock=3)

    batch = MovementBatch(store, ref_id="ref-short")
    batch.load([item.id])
    batch.add(MovementType.SALE, item.id, 4)
    with pytest.raises(InsufficientStockError) as exc_info:
        batch.apply()

    assert exc_info.value.requested == 4
    assert exc_info.value.available == 3
    assert _ledger(store, item.id) == []
    store.session.refresh(item)
    assert item.stock == 3


def test_load_rejects_unknown_inventory(store):
    batch = MovementBatch(store, ref_id="ref-unknown")
    with pytest.raises(ValidationError) as exc_info:
        batch.load(["missing-item"])
    assert "missing-item" in exc_info.value.message


def test_cost_only_moves_on_cost_kinds(store):
    item = create_item(store, name="Teh Celup 25s", code="TEH-25", price=9000, cost=7000)
    batch = MovementBatch(store, ref_id="ref-cost")
    batch.load([item.id])
    with pytest.raises(ValueError):
        batch.add(MovementType.SALE, item.id, 1, cost=100)


def test_verify_detects_aggregate_drift(store):
    item = create_item(store, name="Sabun Mandi 90g", code="SBN-90", price=4000, cost=3000, initial_stock=20)
    batch = MovementBatch(store, ref_id="ref-drift")
    batch.load([item.id])
    batch.add(MovementType.SALE, item.id, 2)
    batch.apply()

    store.session.execute(
        InventoryItem.__table__.update().where(InventoryItem.id == item.id).values(stock=99)
    )
    store.session.expire_all()

    with pytest.raises(ConsistencyError):
        verify_ledger_chain(store, item.id)


def test_verify_accepts_item_without_movements(store):
    item = create_item(store, name="Garam Dapur 500g", code="GRM-500", price=5000, cost=3500, initial_stock=12)
    checked = verify_ledger_chain(store, item.id)
    assert checked.stock == 12
    assert store.session.execute(select(StockLedger.id)).first() is None
