from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select

from backoffice.core.api_docs import error_responses
from backoffice.core.config import settings
from backoffice.core.permissions import require_manager
from backoffice.core.security_current import get_tenant_store
from backoffice.db.tenant_store import TenantStore
from backoffice.models.inventory import InventoryItem
from backoffice.models.sales import Sale, SaleItem
from backoffice.schemas.common import PaginationMeta
from backoffice.schemas.sales import (
    SaleCreate,
    SaleDetailOut,
    SaleEdit,
    SaleItemOut,
    SaleListOut,
    SaleOut,
)
from backoffice.services.audit_service import log_audit_event
from backoffice.services.sales_service import apply_sale, cancel_sale, edit_sale

router = APIRouter(prefix="/sales", tags=["sales"])


def _sale_out(row: Sale) -> SaleOut:
    return SaleOut(
        id=row.id,
        invoice=row.invoice,
        method=row.method,
        total_amount=row.total_amount,
        is_deleted=row.is_deleted,
        is_edited=row.is_edited,
        created_at=row.created_at,
    )


def _sale_detail(store: TenantStore, sale_id: str) -> SaleDetailOut:
    sale = store.get(Sale, sale_id, label="Sale")
    store.session.refresh(sale)
    item_rows = store.execute(
        select(SaleItem, InventoryItem.name, InventoryItem.code)
        .join(InventoryItem, InventoryItem.id == SaleItem.inventory_id)
        .where(SaleItem.sale_id == sale.id)
        .order_by(InventoryItem.name.asc())
    ).all()
    return SaleDetailOut(
        **_sale_out(sale).model_dump(),
        issued_by=sale.issued_by,
        edited_at=sale.edited_at,
        deleted_at=sale.deleted_at,
        items=[
            SaleItemOut(
                id=item.id,
                inventory_id=item.inventory_id,
                name=name,
                code=code,
                quantity=item.quantity,
                unit_price=item.unit_price,
                sub_total=item.sub_total,
            )
            for item, name, code in item_rows
        ],
    )


@router.get(
    "",
    response_model=SaleListOut,
    summary="List sales",
    responses=error_responses(400, 401, 422, 500),
)
def list_sales(
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
    count_stmt = store.select_columns(Sale, func.count(Sale.id)).where(Sale.is_deleted.is_(deleted))
    data_stmt = store.select(Sale).where(Sale.is_deleted.is_(deleted))
    if start_date:
        count_stmt = count_stmt.where(func.date(Sale.created_at) >= start_date)
        data_stmt = data_stmt.where(func.date(Sale.created_at) >= start_date)
    if end_date:
        count_stmt = count_stmt.where(func.date(Sale.created_at) <= end_date)
        data_stmt = data_stmt.where(func.date(Sale.created_at) <= end_date)

    total_count = int(store.execute(count_stmt).scalar_one())
    rows = store.scalars(data_stmt.order_by(Sale.created_at.desc(), Sale.invoice.desc()).offset(offset).limit(limit))
    items = [_sale_out(row) for row in rows]
    count = len(items)
    return SaleListOut(
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
    response_model=SaleDetailOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create sale",
    description="Creates a sale, mints its invoice number, and writes one SALE ledger record per item.",
    responses=error_responses(401, 409, 422, 500),
)
def create_sale(payload: SaleCreate, store: TenantStore = Depends(get_tenant_store)):
    sale = apply_sale(store, method=payload.method, items=payload.items)
    log_audit_event(
        store,
        action="sale.create",
        target_type="sale",
        target_id=sale.id,
        metadata_json={
            "invoice": sale.invoice,
            "method": sale.method.value,
            "items_count": len(payload.items),
            "total": sale.total_amount,
        },
    )
    store.session.commit()
    return _sale_detail(store, sale.id)


@router.get(
    "/{sale_id}",
    response_model=SaleDetailOut,
    summary="Get sale",
    responses=error_responses(401, 404, 500),
)
def get_sale(sale_id: str, store: TenantStore = Depends(get_tenant_store)):
    return _sale_detail(store, sale_id)


@router.put(
    "/{sale_id}",
    response_model=SaleDetailOut,
    summary="Edit sale",
    description="Replaces the sale's lines. Old lines are restored to stock before the new ones are taken.",
    responses=error_responses(401, 403, 404, 409, 422, 500),
    dependencies=[Depends(require_manager)],
)
def update_sale(sale_id: str, payload: SaleEdit, store: TenantStore = Depends(get_tenant_store)):
    sale = edit_sale(store, sale_id, items=payload.items)
    log_audit_event(
        store,
        action="sale.edit",
        target_type="sale",
        target_id=sale.id,
        metadata_json={"items_count": len(payload.items), "total": sale.total_amount},
    )
    store.session.commit()
    return _sale_detail(store, sale_id)


@router.delete(
    "/{sale_id}",
    response_model=SaleDetailOut,
    summary="Cancel sale",
    description="Puts the sold stock back and marks the sale deleted.",
    responses=error_responses(401, 403, 404, 409, 500),
    dependencies=[Depends(require_manager)],
)
def delete_sale(sale_id: str, store: TenantStore = Depends(get_tenant_store)):
    sale = cancel_sale(store, sale_id)
    log_audit_event(
        store,
        action="sale.cancel",
        target_type="sale",
        target_id=sale.id,
        metadata_json={"invoice": sale.invoice},
    )
    store.session.commit()
    return _sale_detail(store, sale_id)
