from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_

from backoffice.core.api_docs import error_responses
from backoffice.core.config import settings
from backoffice.core.permissions import require_manager
from backoffice.core.security_current import get_tenant_store
from backoffice.db.tenant_store import TenantStore
from backoffice.models.inventory import InventoryItem
from backoffice.schemas.common import PaginationMeta
from backoffice.schemas.inventory import (
    InventoryCreate,
    InventoryListOut,
    InventoryOut,
    InventoryUpdate,
    LedgerEntryOut,
    LedgerListOut,
    LedgerVerifyOut,
)
from backoffice.services.audit_service import log_audit_event
from backoffice.services.inventory_service import create_item, list_ledger, update_item
from backoffice.services.stock_engine import verify_ledger_chain

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _inventory_out(item: InventoryItem) -> InventoryOut:
    return InventoryOut(
        id=item.id,
        name=item.name,
        code=item.code,
        description=item.description,
        price=item.price,
        cost=item.cost,
        stock=item.stock,
        sold=item.sold,
        created_at=item.created_at,
    )


@router.get(
    "",
    response_model=InventoryListOut,
    summary="List inventory",
    responses=error_responses(401, 422, 500),
)
def list_inventory(
    q: str | None = Query(default=None, description="Search by name or code"),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    store: TenantStore = Depends(get_tenant_store),
):
    count_stmt = store.select_columns(InventoryItem, func.count(InventoryItem.id))
    data_stmt = store.select(InventoryItem)
    if q and q.strip():
        pattern = f"%{q.strip().lower()}%"
        condition = or_(
            func.lower(InventoryItem.name).like(pattern),
            func.lower(InventoryItem.code).like(pattern),
        )
        count_stmt = count_stmt.where(condition)
        data_stmt = data_stmt.where(condition)

    total_count = int(store.execute(count_stmt).scalar_one())
    rows = store.scalars(data_stmt.order_by(InventoryItem.name.asc()).offset(offset).limit(limit))
    items = [_inventory_out(row) for row in rows]
    count = len(items)
    return InventoryListOut(
        pagination=PaginationMeta(
            total=total_count,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total_count,
        ),
        items=items,
    )


@router.post(
    "",
    response_model=InventoryOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create inventory item",
    description="Creates an item. `initial_stock` anchors the item's stock ledger.",
    responses=error_responses(401, 409, 422, 500),
)
def create_inventory(payload: InventoryCreate, store: TenantStore = Depends(get_tenant_store)):
    item = create_item(
        store,
        name=payload.name,
        code=payload.code,
        price=payload.price,
        cost=payload.cost,
        initial_stock=payload.initial_stock,
        description=payload.description,
    )
    log_audit_event(
        store,
        action="inventory.create",
        target_type="inventory",
        target_id=item.id,
        metadata_json={"code": item.code, "initial_stock": item.initial_stock},
    )
    store.session.commit()
    store.session.refresh(item)
    return _inventory_out(item)


@router.get(
    "/ledger",
    response_model=LedgerListOut,
    summary="List stock ledger",
    description="Stock movements, newest first. Filter by item id or by an item name/code query.",
    responses=error_responses(401, 422, 500),
)
def list_stock_ledger(
    inventory_id: str | None = Query(default=None),
    q: str | None = Query(default=None, description="Search by item name or code"),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    store: TenantStore = Depends(get_tenant_store),
):
    total_count, rows = list_ledger(store, inventory_id=inventory_id, q=q, limit=limit, offset=offset)
    items = [
        LedgerEntryOut(
            id=entry.id,
            inventory_id=entry.inventory_id,
            name=name,
            code=code,
            sequence=entry.sequence,
            type=entry.type,
            quantity=entry.quantity,
            stock_before=entry.stock_before,
            stock_after=entry.stock_after,
            cost_before=entry.cost_before,
            cost_after=entry.cost_after,
            ref_id=entry.ref_id,
            note=entry.note,
            created_at=entry.created_at,
        )
        for entry, name, code in rows
    ]
    count = len(items)
    return LedgerListOut(
        pagination=PaginationMeta(
            total=total_count,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total_count,
        ),
        items=items,
    )


@router.get(
    "/{inventory_id}",
    response_model=InventoryOut,
    summary="Get inventory item",
    responses=error_responses(401, 404, 500),
)
def get_inventory(inventory_id: str, store: TenantStore = Depends(get_tenant_store)):
    return _inventory_out(store.get(InventoryItem, inventory_id, label="Inventory"))


@router.put(
    "/{inventory_id}",
    response_model=InventoryOut,
    summary="Update inventory item",
    description="Edits name, code, price and description. Stock and cost only move through the ledger.",
    responses=error_responses(401, 403, 404, 409, 422, 500),
    dependencies=[Depends(require_manager)],
)
def update_inventory(
    inventory_id: str,
    payload: InventoryUpdate,
    store: TenantStore = Depends(get_tenant_store),
):
    item = update_item(
        store,
        inventory_id,
        name=payload.name,
        code=payload.code,
        price=payload.price,
        description=payload.description,
    )
    log_audit_event(
        store,
        action="inventory.update",
        target_type="inventory",
        target_id=item.id,
        metadata_json={"name": item.name, "code": item.code, "price": item.price},
    )
    store.session.commit()
    store.session.refresh(item)
    return _inventory_out(item)


@router.get(
    "/{inventory_id}/ledger/verify",
    response_model=LedgerVerifyOut,
    summary="Verify stock ledger",
    description="Walks the item's ledger chain and checks it against the current stock.",
    responses=error_responses(401, 404, 500),
)
def verify_inventory_ledger(inventory_id: str, store: TenantStore = Depends(get_tenant_store)):
    item = verify_ledger_chain(store, inventory_id)
    return LedgerVerifyOut(inventory_id=item.id, stock=item.stock, entries=item.ledger_sequence)
