from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete

from backoffice.core.errors import ConflictError, ValidationError
from backoffice.core.id_utils import generate_shortuuid
from backoffice.db.tenant_store import TenantStore
from backoffice.models.inventory import MovementType
from backoffice.models.purchase import PaymentMethod
from backoffice.models.sales import Sale, SaleItem
from backoffice.services.invoice_service import next_invoice
from backoffice.services.stock_engine import MovementBatch


class SaleLine(Protocol):
    inventory_id: str
    quantity: int
    unit_price: int


def _check_lines(items: Sequence[SaleLine]) -> None:
    if not items:
        raise ValidationError("Sale needs at least one item", field="items")
    for line in items:
        if line.quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="items")
        if line.unit_price < 0:
            raise ValidationError("Unit price cannot be negative", field="items")


def _add_sale_items(store: TenantStore, sale: Sale, items: Sequence[SaleLine]) -> int:
    total = 0
    for line in items:
        sub_total = line.quantity * line.unit_price
        store.add(
            SaleItem(
                sale_id=sale.id,
                inventory_id=line.inventory_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                sub_total=sub_total,
            )
        )
        total += sub_total
    return total


def apply_sale(store: TenantStore, *, method: PaymentMethod, items: Sequence[SaleLine]) -> Sale:
    _check_lines(items)
    sale_id = generate_shortuuid()
    batch = MovementBatch(store, ref_id=sale_id)
    batch.load(line.inventory_id for line in items)
    for line in items:
        batch.add(MovementType.SALE, line.inventory_id, line.quantity)

    sale = Sale(
        id=sale_id,
        invoice=next_invoice(store),
        method=method,
        total_amount=0,
        issued_by=store.user_id,
    )
    store.add(sale)
    sale.total_amount = _add_sale_items(store, sale, items)
    store.flush()
    batch.apply()
    return sale


def _live_sale(store: TenantStore, sale_id: str) -> Sale:
    sale = store.get(Sale, sale_id, label="Sale", for_update=True)
    if sale.is_deleted:
        raise ConflictError("Sale already canceled")
    return sale


def cancel_sale(store: TenantStore, sale_id: str) -> Sale:
    sale = _live_sale(store, sale_id)
    lines = store.scalars(store.children(SaleItem.sale_id, sale))

    batch = MovementBatch(store, ref_id=sale.id)
    batch.load(line.inventory_id for line in lines)
    for line in lines:
        batch.add(MovementType.CANCEL_SALE, line.inventory_id, line.quantity, note=f"Cancel sale {sale.invoice}")
    batch.apply()

    sale.is_deleted = True
    sale.deleted_at = datetime.now(timezone.utc)
    sale.deleted_by = store.user_id
    store.flush()
    return sale


def edit_sale(store: TenantStore, sale_id: str, *, items: Sequence[SaleLine]) -> Sale:
    """Replace the lines of a live sale, keeping its invoice number.

    The old lines are put back and the new ones taken out in one batch, so
    the new quantities are checked against the restored stock.
    """
    _check_lines(items)
    sale = _live_sale(store, sale_id)
    old_lines = store.scalars(store.children(SaleItem.sale_id, sale))

    batch = MovementBatch(store, ref_id=sale.id)
    batch.load(
        [line.inventory_id for line in old_lines] + [line.inventory_id for line in items]
    )
    for line in old_lines:
        batch.add(MovementType.EDIT_SALE_RESTORE, line.inventory_id, line.quantity)
    for line in items:
        batch.add(MovementType.EDIT_SALE_APPLY, line.inventory_id, line.quantity)
    batch.apply()

    store.execute(delete(SaleItem).where(SaleItem.sale_id == sale.id))
    sale.total_amount = _add_sale_items(store, sale, items)
    sale.is_edited = True
    sale.edited_at = datetime.now(timezone.utc)
    sale.edited_by = store.user_id
    store.flush()
    return sale
