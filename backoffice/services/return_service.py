from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import func

from backoffice.core.errors import ConflictError, ValidationError
from backoffice.core.id_utils import generate_shortuuid
from backoffice.db.tenant_store import TenantStore
from backoffice.models.inventory import MovementType
from backoffice.models.purchase import Purchase, PurchaseItem
from backoffice.models.purchase_return import PurchaseReturn, PurchaseReturnItem, ReturnStatus
from backoffice.services.stock_engine import MovementBatch


class ReturnLine(Protocol):
    purchase_item_id: str
    quantity: int


def returned_quantities(store: TenantStore, purchase: Purchase) -> dict[str, int]:
    """Quantities already claimed by non-rejected returns, keyed by purchase item id."""
    rows = store.execute(
        store.select_columns(
            PurchaseReturn,
            PurchaseReturnItem.purchase_item_id,
            func.coalesce(func.sum(PurchaseReturnItem.quantity), 0),
        )
        .select_from(PurchaseReturn)
        .join(PurchaseReturnItem, PurchaseReturnItem.return_id == PurchaseReturn.id)
        .where(
            PurchaseReturn.purchase_id == purchase.id,
            PurchaseReturn.status != ReturnStatus.REJECTED,
        )
        .group_by(PurchaseReturnItem.purchase_item_id)
    ).all()
    return {purchase_item_id: int(quantity) for purchase_item_id, quantity in rows}


def create_return(
    store: TenantStore,
    *,
    purchase_id: str,
    reason: str,
    items: Sequence[ReturnLine],
) -> PurchaseReturn:
    if not items:
        raise ValidationError("Return needs at least one item", field="items")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Reason is required", field="reason")

    # The purchase row lock serializes returns against the same purchase.
    purchase = store.get(Purchase, purchase_id, label="Purchase", for_update=True)
    if purchase.is_deleted:
        raise ConflictError("Purchase is canceled")

    open_return = store.execute(
        store.select_columns(PurchaseReturn, PurchaseReturn.id).where(
            PurchaseReturn.purchase_id == purchase.id,
            PurchaseReturn.status == ReturnStatus.REQUESTED,
        )
    ).first()
    if open_return is not None:
        raise ConflictError("Purchase already has an open return")

    purchase_items = {
        line.id: line for line in store.scalars(store.children(PurchaseItem.purchase_id, purchase))
    }
    claimed = returned_quantities(store, purchase)

    seen: set[str] = set()
    for line in items:
        if line.purchase_item_id in seen:
            raise ValidationError(f"Duplicate purchase item: {line.purchase_item_id}", field="items")
        seen.add(line.purchase_item_id)
        if line.quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="items")
        purchased = purchase_items.get(line.purchase_item_id)
        if purchased is None:
            raise ValidationError(f"Item {line.purchase_item_id} is not part of this purchase", field="items")
        returnable = purchased.quantity - claimed.get(purchased.id, 0)
        if line.quantity > returnable:
            raise ValidationError(f"Max returnable quantity is {returnable}", field="items")

    purchase_return = PurchaseReturn(
        id=generate_shortuuid(),
        purchase_id=purchase.id,
        reason=reason,
        requested_by=store.user_id,
        status=ReturnStatus.REQUESTED,
    )
    store.add(purchase_return)
    for line in items:
        purchased = purchase_items[line.purchase_item_id]
        store.add(
            PurchaseReturnItem(
                return_id=purchase_return.id,
                purchase_item_id=purchased.id,
                inventory_id=purchased.inventory_id,
                quantity=line.quantity,
                unit_cost=purchased.unit_cost,
                sub_total=line.quantity * purchased.unit_cost,
            )
        )
    store.flush()
    return purchase_return


def _transition(
    store: TenantStore,
    return_id: str,
    *,
    expected: ReturnStatus,
    target: ReturnStatus,
    moves_stock: bool = False,
) -> PurchaseReturn:
    purchase_return = store.get(PurchaseReturn, return_id, label="Return")
    if moves_stock:
        # Same row lock as cancel_purchase, so a cancel and a stock-moving
        # transition on one purchase never interleave.
        purchase = store.get(Purchase, purchase_return.purchase_id, label="Purchase", for_update=True)
        if purchase.is_deleted:
            raise ConflictError("Purchase is canceled")
    result = store.execute(
        store.update(PurchaseReturn)
        .where(PurchaseReturn.id == purchase_return.id, PurchaseReturn.status == expected)
        .values(status=target, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        store.session.refresh(purchase_return)
        raise ConflictError(
            f"Return is {purchase_return.status.value}, expected {expected.value}"
        )
    store.session.expire(purchase_return)
    return purchase_return


def _move_return_stock(store: TenantStore, purchase_return: PurchaseReturn, kind: MovementType) -> None:
    lines = store.scalars(store.children(PurchaseReturnItem.return_id, purchase_return))
    batch = MovementBatch(store, ref_id=purchase_return.id)
    batch.load(line.inventory_id for line in lines)
    for line in lines:
        batch.add(kind, line.inventory_id, line.quantity)
    batch.apply()


def approve_return(store: TenantStore, return_id: str) -> PurchaseReturn:
    purchase_return = _transition(
        store,
        return_id,
        expected=ReturnStatus.REQUESTED,
        target=ReturnStatus.APPROVED,
        moves_stock=True,
    )
    _move_return_stock(store, purchase_return, MovementType.RETURN)
    return purchase_return


def reject_return(store: TenantStore, return_id: str) -> PurchaseReturn:
    return _transition(store, return_id, expected=ReturnStatus.REQUESTED, target=ReturnStatus.REJECTED)


def complete_return(store: TenantStore, return_id: str) -> PurchaseReturn:
    purchase_return = _transition(
        store,
        return_id,
        expected=ReturnStatus.APPROVED,
        target=ReturnStatus.DONE,
        moves_stock=True,
    )
    _move_return_stock(store, purchase_return, MovementType.ADJUST)
    return purchase_return
