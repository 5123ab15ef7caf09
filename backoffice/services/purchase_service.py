from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Protocol

from backoffice.core.errors import ConflictError, ValidationError
from backoffice.core.id_utils import generate_shortuuid
from backoffice.db.tenant_store import TenantStore
from backoffice.models.inventory import MovementType, StockLedger
from backoffice.models.purchase import (
    PaymentMethod,
    Purchase,
    PurchaseItem,
    PurchasePayment,
    PurchaseStatus,
)
from backoffice.models.purchase_return import PurchaseReturn, ReturnStatus
from backoffice.models.supplier import Supplier
from backoffice.services.invoice_service import next_invoice
from backoffice.services.stock_engine import MovementBatch, consistency_failure

_STATUS_RANK = {
    PurchaseStatus.UNPAID: 0,
    PurchaseStatus.PARTIALLY_PAID: 1,
    PurchaseStatus.PAID: 2,
}


class PurchaseLine(Protocol):
    inventory_id: str
    quantity: int
    unit_cost: int


class PaymentLine(Protocol):
    amount: int
    method: PaymentMethod
    note: str | None


def payment_status(paid_amount: int, total_amount: int) -> PurchaseStatus:
    if paid_amount >= total_amount:
        return PurchaseStatus.PAID
    if paid_amount > 0:
        return PurchaseStatus.PARTIALLY_PAID
    return PurchaseStatus.UNPAID


def _invoice_taken(store: TenantStore, invoice: str) -> bool:
    found = store.execute(
        store.select_columns(Purchase, Purchase.id).where(Purchase.invoice == invoice)
    ).first()
    return found is not None


def apply_purchase(
    store: TenantStore,
    *,
    supplier_id: str,
    items: Sequence[PurchaseLine],
    invoice: str | None = None,
    initial_payment: PaymentLine | None = None,
) -> Purchase:
    if not items:
        raise ValidationError("Purchase needs at least one item", field="items")
    if store.find(Supplier, supplier_id) is None:
        raise ValidationError("Invalid supplier", field="supplier_id")

    seen: set[str] = set()
    for line in items:
        if line.inventory_id in seen:
            raise ValidationError(f"Duplicate inventory item: {line.inventory_id}", field="items")
        seen.add(line.inventory_id)
        if line.quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="items")
        if line.unit_cost < 0:
            raise ValidationError("Unit cost cannot be negative", field="items")

    purchase = Purchase(
        id=generate_shortuuid(),
        supplier_id=supplier_id,
        total_amount=sum(line.quantity * line.unit_cost for line in items),
        paid_amount=0,
        status=PurchaseStatus.UNPAID,
        recorded_by=store.user_id,
    )
    batch = MovementBatch(store, ref_id=purchase.id)
    batch.load([line.inventory_id for line in items])

    invoice = (invoice or "").strip() or None
    if invoice is not None:
        if _invoice_taken(store, invoice):
            raise ConflictError(f"Invoice {invoice} already exists")
        purchase.invoice = invoice
    else:
        purchase.invoice = next_invoice(store)
    if purchase.total_amount == 0:
        purchase.status = PurchaseStatus.PAID

    store.add(purchase)
    store.flush()
    for line in items:
        store.add(
            PurchaseItem(
                purchase_id=purchase.id,
                inventory_id=line.inventory_id,
                quantity=line.quantity,
                unit_cost=line.unit_cost,
                sub_total=line.quantity * line.unit_cost,
            )
        )
        batch.add(MovementType.PURCHASE, line.inventory_id, line.quantity, cost=line.unit_cost)
    batch.apply()

    if initial_payment is not None:
        _add_payment(store, purchase, initial_payment.amount, initial_payment.method, initial_payment.note)
    return purchase


def _add_payment(
    store: TenantStore,
    purchase: Purchase,
    amount: int,
    method: PaymentMethod,
    note: str | None,
) -> PurchasePayment:
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero", field="amount")
    if purchase.status == PurchaseStatus.PAID:
        raise ValidationError("Purchase is already paid", field="amount")
    remaining = purchase.total_amount - purchase.paid_amount
    if amount > remaining:
        raise ValidationError(f"Payment exceeds the remaining amount of {remaining}", field="amount")

    payment = store.add(
        PurchasePayment(
            purchase_id=purchase.id,
            amount=amount,
            method=method,
            note=note,
            recorded_by=store.user_id,
        )
    )
    new_paid = purchase.paid_amount + amount
    new_status = payment_status(new_paid, purchase.total_amount)
    if _STATUS_RANK[new_status] < _STATUS_RANK[purchase.status]:
        raise consistency_failure(
            store,
            f"Payment would move purchase {purchase.invoice} back to {new_status.value}",
            purchase_id=purchase.id,
            status=purchase.status.value,
        )
    purchase.paid_amount = new_paid
    purchase.status = new_status
    store.flush()
    return payment


def record_payment(
    store: TenantStore,
    purchase_id: str,
    *,
    amount: int,
    method: PaymentMethod,
    note: str | None = None,
) -> PurchasePayment:
    purchase = store.get(Purchase, purchase_id, label="Purchase", for_update=True)
    if purchase.is_deleted:
        raise ConflictError("Purchase is canceled")
    return _add_payment(store, purchase, amount, method, note)


def _purchase_ledger(store: TenantStore, purchase_id: str, inventory_id: str, kind: MovementType) -> StockLedger | None:
    return store.execute(
        store.select(StockLedger)
        .where(
            StockLedger.ref_id == purchase_id,
            StockLedger.inventory_id == inventory_id,
            StockLedger.type == kind,
        )
        .order_by(StockLedger.sequence.desc())
        .limit(1)
    ).scalar_one_or_none()


def cancel_purchase(store: TenantStore, purchase_id: str) -> Purchase:
    """Reverse every line of a purchase and soft delete it.

    A line whose item has not moved since the purchase lands exactly on the
    pre-purchase snapshot. Otherwise the purchased quantity is taken off the
    current stock and the cost is put back only while the purchase's cost is
    still the item's cost. A purchase with a requested or approved return
    cannot be canceled until that return is rejected or done.
    """
    purchase = store.get(Purchase, purchase_id, label="Purchase", for_update=True)
    if purchase.is_deleted:
        raise ConflictError("Purchase already canceled")

    pending_return = store.execute(
        store.select_columns(PurchaseReturn, PurchaseReturn.id).where(
            PurchaseReturn.purchase_id == purchase.id,
            PurchaseReturn.status.in_((ReturnStatus.REQUESTED, ReturnStatus.APPROVED)),
        )
    ).first()
    if pending_return is not None:
        raise ConflictError("Purchase has a return in progress")

    lines = store.scalars(store.children(PurchaseItem.purchase_id, purchase))
    batch = MovementBatch(store, ref_id=purchase.id)
    batch.load(line.inventory_id for line in lines)

    for line in lines:
        original = _purchase_ledger(store, purchase.id, line.inventory_id, MovementType.PURCHASE)
        if original is None:
            raise consistency_failure(
                store,
                f"Purchase {purchase.invoice} has no ledger record for one of its items",
                purchase_id=purchase.id,
                inventory_id=line.inventory_id,
            )
        if _purchase_ledger(store, purchase.id, line.inventory_id, MovementType.CANCEL_PURCHASE) is not None:
            raise ConflictError(f"Purchase {purchase.invoice} already reversed")

        item = batch.items[line.inventory_id]
        restored_cost = original.cost_before if item.cost == original.cost_after else None
        batch.add(
            MovementType.CANCEL_PURCHASE,
            line.inventory_id,
            original.quantity,
            cost=restored_cost,
            note=f"Cancel purchase {purchase.invoice}",
        )
    batch.apply()

    purchase.is_deleted = True
    purchase.deleted_at = datetime.now(timezone.utc)
    purchase.deleted_by = store.user_id
    store.flush()
    return purchase
