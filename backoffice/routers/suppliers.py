from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func

from backoffice.core.api_docs import error_responses
from backoffice.core.config import settings
from backoffice.core.security_current import get_tenant_store
from backoffice.db.tenant_store import TenantStore
from backoffice.models.supplier import Supplier
from backoffice.schemas.common import PaginationMeta
from backoffice.schemas.supplier import SupplierCreate, SupplierListOut, SupplierOut
from backoffice.services.audit_service import log_audit_event

router = APIRouter(prefix="/suppliers", tags=["suppliers"])


def _supplier_out(row: Supplier) -> SupplierOut:
    return SupplierOut(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        address=row.address,
        created_at=row.created_at,
    )


@router.get(
    "",
    response_model=SupplierListOut,
    summary="List suppliers",
    responses=error_responses(401, 422, 500),
)
def list_suppliers(
    q: str | None = Query(default=None, description="Search by supplier name"),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    store: TenantStore = Depends(get_tenant_store),
):
    count_stmt = store.select_columns(Supplier, func.count(Supplier.id))
    data_stmt = store.select(Supplier)
    if q and q.strip():
        pattern = f"%{q.strip().lower()}%"
        count_stmt = count_stmt.where(func.lower(Supplier.name).like(pattern))
        data_stmt = data_stmt.where(func.lower(Supplier.name).like(pattern))

    total_count = int(store.execute(count_stmt).scalar_one())
    rows = store.scalars(data_stmt.order_by(Supplier.name.asc()).offset(offset).limit(limit))
    items = [_supplier_out(row) for row in rows]
    count = len(items)
    return SupplierListOut(
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
    response_model=SupplierOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create supplier",
    responses=error_responses(401, 409, 422, 500),
)
def create_supplier(payload: SupplierCreate, store: TenantStore = Depends(get_tenant_store)):
    name = payload.name.strip()
    existing = store.execute(
        store.select_columns(Supplier, Supplier.id).where(func.lower(Supplier.name) == name.lower())
    ).first()
    if existing:
        raise HTTPException(status_code=409, detail="Supplier already exists")

    supplier = store.add(
        Supplier(
            name=name,
            email=payload.email,
            phone=payload.phone,
            address=payload.address,
        )
    )
    store.flush()
    log_audit_event(
        store,
        action="supplier.create",
        target_type="supplier",
        target_id=supplier.id,
    )
    store.session.commit()
    store.session.refresh(supplier)
    return _supplier_out(supplier)
