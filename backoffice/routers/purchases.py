from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select

from backoffice.core.api_docs import error_responses
from backoffice.core.config import settings
from backoffice.core.permissions import require_manager
from backoffice.core.security_current import get_tenant_store
from backoffice.db.tenant_store import TenantStore
from backoffice.models.inventory import InventoryItem
from backoffice.models.purchase import Purchase, PurchaseItem, PurchasePayment
from backoffice.models.supplier import Supplier
from backoffice.schemas.common import PaginationMeta
from backoffice.schemas.purchase import (
    PaymentIn,
    PurchaseCreate,
    PurchaseDetailOut,
    PurchaseItemOut,
    PurchaseListOut,
    PurchaseOut,
    PurchasePaymentOut,
)
from backoffice.services.audit_service import log_audit_event
from backoffice.services.purchase_service import apply_purchase, cancel_purchase, record_payment

router = APIRouter(prefix="/purchases", tags=["purchases"])


def _purchase_out(row: Purchase, supplier_name: str) -> PurchaseOut:
    return PurchaseOut(
        id=row.id,
        invoice=row.invoice,
        supplier_id=row.supplier_id,
        supplier=supplier_name,
        total_amount=row.total_amount,
        paid_amount=row.paid_amount,
        status=row.status,
        is_deleted=row.is_deleted,
        created_at=row.created_at,
    )


def _purchase_detail(store: TenantStore, purchase_id: str) -> PurchaseDetailOut:
    row = store.execute(
        store.select(Purchase, Supplier.name)
        .join(Supplier, Supplier.id == Purchase.supplier_id)
        .where(Purchase.id == purchase_id)
    ).first()
    if not row:
        raise HTTPException(status_code=404, detail="Purchase not found")
    purchase, supplier_name = row

    item_rows = store.execute(
        select(PurchaseItem, InventoryItem.name, InventoryItem.code)
        .join(InventoryItem, InventoryItem.id == PurchaseItem.inventory_id)
        .where(PurchaseItem.purchase_id == purchase.id)
        .order_by(InventoryItem.name.asc())
    ).all()
    payments = store.scalars(
        store.children(PurchasePayment.purchase_id, purchase).order_by(PurchasePayment.created_at.asc())
    )

    return PurchaseDetailOut(
        **_purchase_out(purchase, supplier_name).model_dump(),
        recorded_by=purchase.recorded_by,
        deleted_at=purchase.deleted_at,
        items=[
            PurchaseItemOut(
                id=item.id,
                inventory_id=item.inventory_id,
                name=name,
                code=code,
                quantity=item.quantity,
                unit_cost=item.unit_cost,
                sub_total=item.sub_total,
            )
            for item, name, code in item_rows
        ],
        payments=[
            PurchasePaymentOut(
                id=payment.id,
                amount=payment.amount,
                method=payment.method,
                note=payment.note,
                created_at=payment.created_at,
            )
            for payment in payments
        ],
    )


@router.get(
    "",
    response_model=PurchaseListOut,
    summary="List purchases",
    responses=error_responses(400, 401, 422, 500),
)
def list_purchases(
    status_filter: str = Query(default="active", alias="status", pattern="^(active|deleted)$"),
    start_date: date | None = Query(default=None, description="Filter from date (YYYY-MM-DD)"),
    end_date: date | None = Query(default=None, description="Filter to date (YYYY-MM-DD)"),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    store: TenantStore = Depends(get_tenant_store),
):
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date cannot be before start_date")

    deleted = status_filter == "deleted"
    count_stmt = store.select_columns(Purchase, func.count(Purchase.id)).where(Purchase.is_deleted.is_(deleted))
    data_stmt = (
        store.select(Purchase, Supplier.name)
        .join(Supplier, Supplier.id == Purchase.supplier_id)
        .where(Purchase.is_deleted.is_(deleted))
    )
    if start_date:
        count_stmt = count_stmt.where(func.date(Purchase.created_at) >= start_date)
        data_stmt = data_stmt.where(func.date(Purchase.created_at) >= start_date)
    if end_date:
        count_stmt = count_stmt.where(func.date(Purchase.created_at) <= end_date)
        data_stmt = data_stmt.where(func.date(Purchase.created_at) <= end_date)

    total_count = int(store.execute(count_stmt).scalar_one())
    rows = store.execute(
        data_stmt.order_by(Purchase.created_at.desc(), Purchase.invoice.desc()).offset(offset).limit(limit)
    ).all()
    items = [_purchase_out(purchase, supplier_name) for purchase, supplier_name in rows]
    count = len(items)
    return PurchaseListOut(
        pagination=PaginationMeta(
            total=total_count,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total_count,
        ),
        start_date=start_date,
        end_date=end_date,
        items=items,
    )


@router.post(
    "",
    response_model=PurchaseDetailOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record purchase",
    description="Receives stock from a supplier. Each line writes a PURCHASE ledger record and sets the item cost.",
    responses=error_responses(401, 404, 409, 422, 500),
)
def create_purchase(payload: PurchaseCreate, store: TenantStore = Depends(get_tenant_store)):
    purchase = apply_purchase(
        store,
        supplier_id=payload.supplier_id,
        items=payload.items,
        invoice=payload.invoice,
        initial_payment=payload.initial_payment,
    )
    log_audit_event(
        store,
        action="purchase.create",
        target_type="purchase",
        target_id=purchase.id,
        metadata_json={
            "invoice": purchase.invoice,
            "items_count": len(payload.items),
            "total": purchase.total_amount,
        },
    )
    store.session.commit()
    return _purchase_detail(store, purchase.id)


@router.get(
    "/{purchase_id}",
    response_model=PurchaseDetailOut,
    summary="Get purchase",
    responses=error_responses(401, 404, 500),
)
def get_purchase(purchase_id: str, store: TenantStore = Depends(get_tenant_store)):
    return _purchase_detail(store, purchase_id)


@router.post(
    "/{purchase_id}/payments",
    response_model=PurchaseDetailOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record purchase payment",
    responses=error_responses(401, 404, 409, 422, 500),
)
def create_purchase_payment(
    purchase_id: str,
    payload: PaymentIn,
    store: TenantStore = Depends(get_tenant_store),
):
    payment = record_payment(
        store,
        purchase_id,
        amount=payload.amount,
        method=payload.method,
        note=payload.note,
    )
    log_audit_event(
        store,
        action="purchase.payment",
        target_type="purchase",
        target_id=purchase_id,
        metadata_json={"payment_id": payment.id, "amount": payment.amount, "method": payment.method.value},
    )
    store.session.commit()
    return _purchase_detail(store, purchase_id)


@router.delete(
    "/{purchase_id}",
    response_model=PurchaseDetailOut,
    summary="Cancel purchase",
    description="Reverses the purchase's stock movements and marks it deleted.",
    responses=error_responses(401, 403, 404, 409, 500),
    dependencies=[Depends(require_manager)],
)
def delete_purchase(purchase_id: str, store: TenantStore = Depends(get_tenant_store)):
    purchase = cancel_purchase(store, purchase_id)
    log_audit_event(
        store,
        action="purchase.cancel",
        target_type="purchase",
        target_id=purchase.id,
        metadata_json={"invoice": purchase.invoice},
    )
    store.session.commit()
    return _purchase_detail(store, purchase_id)
