from datetime import datetime, timezone

import pytest

from backoffice.core.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from backoffice.models.inventory import MovementType, StockLedger
from backoffice.models.purchase import PaymentMethod
from backoffice.models.sales import SaleItem
from backoffice.schemas.sales import SaleItemIn
from backoffice.services.inventory_service import create_item
from backoffice.services.sales_service import apply_sale, cancel_sale, edit_sale
from backoffice.services.stock_engine import verify_ledger_chain


def _line(inventory_id: str, quantity: int, unit_price: int = 78000) -> SaleItemIn:
    return SaleItemIn(inventory_id=inventory_id, quantity=quantity, unit_price=unit_price)


def _ledger(store, ref_id: str) -> list[StockLedger]:
    return store.scalars(
        store.select(StockLedger).where(StockLedger.ref_id == ref_id).order_by(StockLedger.sequence)
    )


def _beras(store, stock: int = 100):
    return create_item(store, name="Beras Ramos 5kg", code="BRS-5", price=78000, cost=70000, initial_stock=stock)


def test_sale_then_cancel_restores_stock_and_sold(store):
    item = _beras(store)

    sale = apply_sale(store, method=PaymentMethod.CASH, items=[_line(item.id, 30)])
    store.session.refresh(item)
    assert item.stock == 70
    assert item.sold == 30
    assert sale.total_amount == 30 * 78000
    year = datetime.now(timezone.utc).year
    assert sale.invoice == f"MONI-{year}-000001"

    (sale_row,) = _ledger(store, sale.id)
    assert sale_row.type == MovementType.SALE
    assert (sale_row.quantity, sale_row.stock_before, sale_row.stock_after) == (-30, 100, 70)

    cancel_sale(store, sale.id)
    store.session.refresh(item)
    assert item.stock == 100
    assert item.sold == 0

    rows = _ledger(store, sale.id)
    assert [row.type for row in rows] == [MovementType.SALE, MovementType.CANCEL_SALE]
    assert (rows[1].quantity, rows[1].stock_before, rows[1].stock_after) == (30, 70, 100)
    assert sale.is_deleted is True
    verify_ledger_chain(store, item.id)


def test_sale_over_stock_is_rejected_without_side_effects(store):
    item = _beras(store)
    store.session.commit()

    with pytest.raises(InsufficientStockError) as exc_info:
        apply_sale(store, method=PaymentMethod.CASH, items=[_line(item.id, 150)])
    store.session.rollback()

    assert exc_info.value.details == {"inventory_id": item.id, "requested": 150, "available": 100}
    store.session.refresh(item)
    assert item.stock == 100
    assert store.scalars(store.select(StockLedger)) == []


def test_sale_merges_lines_per_inventory(store):
    item = _beras(store, stock=10)
    other = create_item(store, name="Telur Ayam 1kg", code="TLR-1", price=28000, cost=25000, initial_stock=5)

    sale = apply_sale(
        store,
        method=PaymentMethod.QRIS,
        items=[_line(item.id, 4), _line(other.id, 2, 28000), _line(item.id, 3)],
    )

    rows = _ledger(store, sale.id)
    assert len(rows) == 2
    by_item = {row.inventory_id: row for row in rows}
    assert by_item[item.id].quantity == -7
    assert by_item[other.id].quantity == -2
    assert len(store.scalars(store.children(SaleItem.sale_id, sale))) == 3


def test_merged_lines_are_checked_against_stock(store):
    item = _beras(store, stock=5)
    with pytest.raises(InsufficientStockError):
        apply_sale(store, method=PaymentMethod.CASH, items=[_line(item.id, 3), _line(item.id, 3)])


def test_sale_with_unknown_item_is_validation_error(store):
    with pytest.raises(ValidationError):
        apply_sale(store, method=PaymentMethod.CASH, items=[_line("not-an-item", 1)])


def test_cancel_twice_is_conflict(store):
    item = _beras(store)
    sale = apply_sale(store, method=PaymentMethod.CASH, items=[_line(item.id, 10)])
    cancel_sale(store, sale.id)

    with pytest.raises(ConflictError):
        cancel_sale(store, sale.id)
    store.session.refresh(item)
    assert item.stock == 100


def test_cancel_unknown_sale_is_not_found(store):
    with pytest.raises(NotFoundError):
        cancel_sale(store, "missing-sale")


def test_edit_sale_checks_new_lines_against_restored_stock(store):
    item = _beras(store, stock=10)
    other = create_item(store, name="Telur Ayam 1kg", code="TLR-1", price=28000, cost=25000, initial_stock=5)
    sale = apply_sale(store, method=PaymentMethod.CASH, items=[_line(item.id, 8)])
    invoice = sale.invoice

    edited = edit_sale(store, sale.id, items=[_line(item.id, 10), _line(other.id, 1, 28000)])

    assert edited.invoice == invoice
    assert edited.is_edited is True
    assert edited.total_amount == 10 * 78000 + 28000
    store.session.refresh(item)
    store.session.refresh(other)
    assert (item.stock, item.sold) == (0, 10)
    assert (other.stock, other.sold) == (4, 1)

    rows = [row for row in _ledger(store, sale.id) if row.inventory_id == item.id]
    assert [row.type for row in rows] == [
        MovementType.SALE,
        MovementType.EDIT_SALE_RESTORE,
        MovementType.EDIT_SALE_APPLY,
    ]
    assert [(row.stock_before, row.stock_after) for row in rows] == [(10, 2), (2, 10), (10, 0)]
    lines = store.scalars(store.children(SaleItem.sale_id, sale))
    assert sorted(line.quantity for line in lines) == [1, 10]
    verify_ledger_chain(store, item.id)
    verify_ledger_chain(store, other.id)


def test_edit_sale_over_restored_stock_is_rejected(store):
    item = _beras(store, stock=10)
    sale = apply_sale(store, method=PaymentMethod.CASH, items=[_line(item.id, 8)])

    with pytest.raises(InsufficientStockError):
        edit_sale(store, sale.id, items=[_line(item.id, 11)])


def test_edit_canceled_sale_is_conflict(store):
    item = _beras(store)
    sale = apply_sale(store, method=PaymentMethod.CASH, items=[_line(item.id, 1)])
    cancel_sale(store, sale.id)

    with pytest.raises(ConflictError):
        edit_sale(store, sale.id, items=[_line(item.id, 2)])


def test_sale_from_another_tenant_is_not_found(store, seed_store):
    item = _beras(store)
    sale = apply_sale(store, method=PaymentMethod.CASH, items=[_line(item.id, 1)])
    other_store = seed_store(name="Toko Lain", prefix="LAIN")

    with pytest.raises(NotFoundError):
        cancel_sale(other_store, sale.id)
    with pytest.raises(ValidationError):
        apply_sale(other_store, method=PaymentMethod.CASH, items=[_line(item.id, 1)])


def test_zero_quantity_lines_are_rejected(store):
    item = _beras(store)
    zero_line = SaleItemIn.model_construct(inventory_id=item.id, quantity=0, unit_price=78000)

    with pytest.raises(ValidationError) as exc_info:
        apply_sale(store, method=PaymentMethod.CASH, items=[zero_line])
    assert exc_info.value.message == "Quantity must be greater than zero"
    assert store.scalars(store.select(StockLedger).where(StockLedger.inventory_id == item.id)) == []
    store.session.refresh(item)
    assert item.stock == 100
