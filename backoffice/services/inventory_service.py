from sqlalchemy import func, or_, select

from backoffice.core.errors import ConflictError
from backoffice.db.tenant_store import TenantStore
from backoffice.models.inventory import InventoryItem, StockLedger


def _ensure_unique(store: TenantStore, *, name: str, code: str, exclude_id: str | None = None) -> None:
    stmt = store.select(InventoryItem).where(
        or_(
            func.lower(InventoryItem.name) == name.lower(),
            func.lower(InventoryItem.code) == code.lower(),
        )
    )
    if exclude_id is not None:
        stmt = stmt.where(InventoryItem.id != exclude_id)
    clash = store.execute(stmt.limit(1)).scalar_one_or_none()
    if clash is None:
        return
    if clash.name.lower() == name.lower():
        raise ConflictError(f"Inventory name {name} already exists")
    raise ConflictError(f"Inventory code {code} already exists")


def create_item(
    store: TenantStore,
    *,
    name: str,
    code: str,
    price: int,
    cost: int,
    initial_stock: int = 0,
    description: str | None = None,
) -> InventoryItem:
    name = name.strip()
    code = code.strip().upper()
    _ensure_unique(store, name=name, code=code)
    item = InventoryItem(
        name=name,
        code=code,
        description=description,
        price=price,
        cost=cost,
        stock=initial_stock,
        initial_stock=initial_stock,
        sold=0,
        ledger_sequence=0,
    )
    store.add(item)
    store.flush()
    return item


def update_item(
    store: TenantStore,
    inventory_id: str,
    *,
    name: str,
    code: str,
    price: int,
    description: str | None = None,
) -> InventoryItem:
    # Stock, cost and sold belong to the movement engine.
    item = store.get(InventoryItem, inventory_id, label="Inventory", for_update=True)
    name = name.strip()
    code = code.strip().upper()
    _ensure_unique(store, name=name, code=code, exclude_id=item.id)
    item.name = name
    item.code = code
    item.price = price
    item.description = description
    store.flush()
    return item


def _ledger_query(store: TenantStore, *, inventory_id: str | None = None, q: str | None = None):
    stmt = (
        store.select(StockLedger, InventoryItem.name, InventoryItem.code)
        .join(InventoryItem, InventoryItem.id == StockLedger.inventory_id)
    )
    if inventory_id:
        stmt = stmt.where(StockLedger.inventory_id == inventory_id)
    if q and q.strip():
        pattern = f"%{q.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(InventoryItem.name).like(pattern),
                func.lower(InventoryItem.code).like(pattern),
            )
        )
    return stmt


def list_ledger(
    store: TenantStore,
    *,
    inventory_id: str | None = None,
    q: str | None = None,
    limit: int,
    offset: int,
) -> tuple[int, list[tuple[StockLedger, str, str]]]:
    stmt = _ledger_query(store, inventory_id=inventory_id, q=q)
    total = int(store.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())
    rows = store.execute(
        stmt.order_by(StockLedger.created_at.desc(), StockLedger.inventory_id, StockLedger.sequence.desc())
        .offset(offset)
        .limit(limit)
    ).all()
    return total, [(entry, name, code) for entry, name, code in rows]
