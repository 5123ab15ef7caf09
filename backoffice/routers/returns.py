from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select

from backoffice.core.api_docs import error_responses
from backoffice.core.config import settings
from backoffice.core.permissions import require_manager
from backoffice.core.security_current import get_tenant_store
from backoffice.db.tenant_store import TenantStore
from backoffice.models.inventory import InventoryItem
from backoffice.models.purchase import Purchase
from backoffice.models.purchase_return import PurchaseReturn, PurchaseReturnItem, ReturnStatus
from backoffice.models.supplier import Supplier
from backoffice.schemas.common import PaginationMeta
from backoffice.schemas.purchase_return import (
    ReturnCreate,
    ReturnDetailOut,
    ReturnItemOut,
    ReturnListOut,
    ReturnOut,
)
from backoffice.services.audit_service import log_audit_event
from backoffice.services.return_service import (
    approve_return,
    complete_return,
    create_return,
    reject_return,
)

router = APIRouter(prefix="/returns", tags=["returns"])


def _return_out(row: PurchaseReturn, invoice: str) -> ReturnOut:
    return ReturnOut(
        id=row.id,
        purchase_id=row.purchase_id,
        invoice=invoice,
        status=row.status,
        requested_by=row.requested_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _return_detail(store: TenantStore, return_id: str) -> ReturnDetailOut:
    row = store.execute(
        store.select(PurchaseReturn, Purchase.invoice, Supplier.name)
        .join(Purchase, Purchase.id == PurchaseReturn.purchase_id)
        .join(Supplier, Supplier.id == Purchase.supplier_id)
        .where(PurchaseReturn.id == return_id)
    ).first()
    if not row:
        raise HTTPException(status_code=404, detail="Return not found")
    purchase_return, invoice, supplier_name = row
    store.session.refresh(purchase_return)

    item_rows = store.execute(
        select(PurchaseReturnItem, InventoryItem.name)
        .join(InventoryItem, InventoryItem.id == PurchaseReturnItem.inventory_id)
        .where(PurchaseReturnItem.return_id == purchase_return.id)
        .order_by(InventoryItem.name.asc())
    ).all()
    return ReturnDetailOut(
        **_return_out(purchase_return, invoice).model_dump(),
        reason=purchase_return.reason,
        supplier=supplier_name,
        items=[
            ReturnItemOut(
                id=item.id,
                purchase_item_id=item.purchase_item_id,
                inventory_id=item.inventory_id,
                name=name,
                quantity=item.quantity,
                unit_cost=item.unit_cost,
                sub_total=item.sub_total,
            )
            for item, name in item_rows
        ],
    )


@router.get(
    "",
    response_model=ReturnListOut,
    summary="List purchase returns",
    responses=error_responses(400, 401, 422, 500),
)
def list_returns(
    status_filter: ReturnStatus | None = Query(default=None, alias="status"),
    start_date: date | None = Query(default=None, description="Filter from date (YYYY-MM-DD)"),
    end_date: date | None = Query(default=None, description="Filter to date (YYYY-MM-DD)"),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    store: TenantStore = Depends(get_tenant_store),
):
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date cannot be before start_date")

    count_stmt = store.select_columns(PurchaseReturn, func.count(PurchaseReturn.id))
    data_stmt = store.select(PurchaseReturn, Purchase.invoice).join(
        Purchase, Purchase.id == PurchaseReturn.purchase_id
    )
    if status_filter:
        count_stmt = count_stmt.where(PurchaseReturn.status == status_filter)
        data_stmt = data_stmt.where(PurchaseReturn.status == status_filter)
    if start_date:
        count_stmt = count_stmt.where(func.date(PurchaseReturn.created_at) >= start_date)
        data_stmt = data_stmt.where(func.date(PurchaseReturn.created_at) >= start_date)
    if end_date:
        count_stmt = count_stmt.where(func.date(PurchaseReturn.created_at) <= end_date)
        data_stmt = data_stmt.where(func.date(PurchaseReturn.created_at) <= end_date)

    total_count = int(store.execute(count_stmt).scalar_one())
    rows = store.execute(
        data_stmt.order_by(PurchaseReturn.updated_at.desc()).offset(offset).limit(limit)
    ).all()
    items = [_return_out(purchase_return, invoice) for purchase_return, invoice in rows]
    count = len(items)
    return ReturnListOut(
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
    response_model=ReturnDetailOut,
    status_code=status.HTTP_201_CREATED,
    summary="Request purchase return",
    description="Opens a return against a purchase. Stock does not move until the return is approved.",
    responses=error_responses(401, 404, 409, 422, 500),
)
def request_return(payload: ReturnCreate, store: TenantStore = Depends(get_tenant_store)):
    purchase_return = create_return(
        store,
        purchase_id=payload.purchase_id,
        reason=payload.reason,
        items=payload.items,
    )
    log_audit_event(
        store,
        action="return.create",
        target_type="purchase_return",
        target_id=purchase_return.id,
        metadata_json={"purchase_id": payload.purchase_id, "items_count": len(payload.items)},
    )
    store.session.commit()
    return _return_detail(store, purchase_return.id)


@router.get(
    "/{return_id}",
    response_model=ReturnDetailOut,
    summary="Get purchase return",
    responses=error_responses(401, 404, 500),
)
def get_return(return_id: str, store: TenantStore = Depends(get_tenant_store)):
    return _return_detail(store, return_id)



def _finish_transition(store: TenantStore, purchase_return: PurchaseReturn, action: str) -> ReturnDetailOut:
    log_audit_event(
        store,
        action=f"return.{action}",
        target_type="purchase_return",
        target_id=purchase_return.id,
    )
    store.session.commit()
    return _return_detail(store, purchase_return.id)


@router.patch(
    "/{return_id}/approve",
    response_model=ReturnDetailOut,
    summary="Approve return",
    description="Takes the returned quantities out of stock.",
    responses=error_responses(401, 403, 404, 409, 500),
    dependencies=[Depends(require_manager)],
)
def approve_purchase_return(return_id: str, store: TenantStore = Depends(get_tenant_store)):
    return _finish_transition(store, approve_return(store, return_id), "approve")


@router.patch(
    "/{return_id}/reject",
    response_model=ReturnDetailOut,
    summary="Reject return",
    description="Closes the return without moving stock.",
    responses=error_responses(401, 403, 404, 409, 500),
    dependencies=[Depends(require_manager)],
)
def reject_purchase_return(return_id: str, store: TenantStore = Depends(get_tenant_store)):
    return _finish_transition(store, reject_return(store, return_id), "reject")


@router.patch(
    "/{return_id}/complete",
    response_model=ReturnDetailOut,
    summary="Complete return",
    description="Puts the replacement quantities back into stock.",
    responses=error_responses(401, 403, 404, 409, 500),
    dependencies=[Depends(require_manager)],
)
def complete_purchase_return(return_id: str, store: TenantStore = Depends(get_tenant_store)):
    return _finish_transition(store, complete_return(store, return_id), "complete")
