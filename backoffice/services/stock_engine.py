"""Ledger-backed stock movements.

Every change to ``InventoryItem.stock``/``cost``/``sold`` goes through a
``MovementBatch``. A batch belongs to one business document (``ref_id``) and
one transaction. It

1. loads each touched item once, locking the row where the dialect supports
   ``SELECT ... FOR UPDATE``;
2. merges movements of the same kind on the same item by summing quantities;
3. replays the movements in memory, chaining ``stock_before``/``stock_after``
   and rejecting any outgoing movement the running stock cannot cover;
4. writes exactly one guarded ``UPDATE`` per item, conditioned on the stock
   and ledger sequence it read, then appends the ledger rows.

A guarded update that matches nothing means another transaction committed
against the same item after we read it. The batch does not retry.
"""

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from backoffice.core.errors import (
    ConflictError,
    ConsistencyError,
    InsufficientStockError,
    ValidationError,
)
from backoffice.db.tenant_store import TenantStore
from backoffice.models.inventory import InventoryItem, MovementType, StockLedger

logger = logging.getLogger("retail_backoffice.stock")


@dataclass(frozen=True)
class MovementRule:
    stock_sign: int
    sold_sign: int
    sets_cost: bool
    checks_stock: bool


MOVEMENT_RULES: dict[MovementType, MovementRule] = {
    MovementType.PURCHASE: MovementRule(stock_sign=1, sold_sign=0, sets_cost=True, checks_stock=False),
    MovementType.SALE: MovementRule(stock_sign=-1, sold_sign=1, sets_cost=False, checks_stock=True),
    MovementType.CANCEL_SALE: MovementRule(stock_sign=1, sold_sign=-1, sets_cost=False, checks_stock=False),
    MovementType.CANCEL_PURCHASE: MovementRule(stock_sign=-1, sold_sign=0, sets_cost=True, checks_stock=True),
    MovementType.RETURN: MovementRule(stock_sign=-1, sold_sign=0, sets_cost=False, checks_stock=True),
    MovementType.ADJUST: MovementRule(stock_sign=1, sold_sign=0, sets_cost=False, checks_stock=False),
    MovementType.EDIT_SALE_RESTORE: MovementRule(stock_sign=1, sold_sign=-1, sets_cost=False, checks_stock=False),
    MovementType.EDIT_SALE_APPLY: MovementRule(stock_sign=-1, sold_sign=1, sets_cost=False, checks_stock=True),
}

_unruled = sorted(kind.value for kind in MovementType if kind not in MOVEMENT_RULES)
if _unruled:
    raise RuntimeError(f"Movement kinds without a rule: {', '.join(_unruled)}")


def rule_for(kind: MovementType) -> MovementRule:
    return MOVEMENT_RULES[kind]


@dataclass
class _Movement:
    kind: MovementType
    inventory_id: str
    quantity: int
    cost: int | None = None
    note: str | None = None


@dataclass
class _Running:
    stock: int
    cost: int
    sold: int
    sequence: int


def lock_inventory_items(store: TenantStore, inventory_ids: Iterable[str]) -> dict[str, InventoryItem]:
    ids = list(dict.fromkeys(inventory_ids))
    if not ids:
        return {}
    # Stable lock order keeps two batches over the same items from deadlocking.
    stmt = (
        store.select(InventoryItem)
        .where(InventoryItem.id.in_(ids))
        .order_by(InventoryItem.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {item.id: item for item in store.scalars(stmt)}


class MovementBatch:
    def __init__(self, store: TenantStore, *, ref_id: str):
        self.store = store
        self.ref_id = ref_id
        self.items: dict[str, InventoryItem] = {}
        self._movements: list[_Movement] = []
        self._applied = False

    def load(self, inventory_ids: Iterable[str], *, field: str = "items") -> dict[str, InventoryItem]:
        ids = [inventory_id for inventory_id in dict.fromkeys(inventory_ids) if inventory_id not in self.items]
        found = lock_inventory_items(self.store, ids)
        missing = [inventory_id for inventory_id in ids if inventory_id not in found]
        if missing:
            raise ValidationError(f"Invalid inventory item: {missing[0]}", field=field)
        self.items.update(found)
        return self.items

    def add(
        self,
        kind: MovementType,
        inventory_id: str,
        quantity: int,
        *,
        cost: int | None = None,
        note: str | None = None,
    ) -> None:
        if self._applied:
            raise RuntimeError("Movement batch already applied")
        if inventory_id not in self.items:
            raise RuntimeError(f"Inventory {inventory_id} was not loaded into the batch")
        if quantity < 0:
            raise ValueError("Movement quantity must be a non-negative magnitude")
        if cost is not None and not rule_for(kind).sets_cost:
            raise ValueError(f"{kind.value} movements cannot change cost")

        for movement in self._movements:
            if movement.kind == kind and movement.inventory_id == inventory_id:
                movement.quantity += quantity
                if cost is not None:
                    movement.cost = cost
                return
        self._movements.append(_Movement(kind, inventory_id, quantity, cost, note))

    def apply(self) -> list[StockLedger]:
        if self._applied:
            raise RuntimeError("Movement batch already applied")
        self._applied = True

        running = {
            inventory_id: _Running(item.stock, item.cost, item.sold, item.ledger_sequence)
            for inventory_id, item in self.items.items()
        }
        entries: list[StockLedger] = []
        for movement in self._movements:
            rule = rule_for(movement.kind)
            state = running[movement.inventory_id]
            delta = rule.stock_sign * movement.quantity
            if rule.checks_stock and state.stock + delta < 0:
                item = self.items[movement.inventory_id]
                raise InsufficientStockError(
                    inventory_id=item.id,
                    name=item.name,
                    requested=movement.quantity,
                    available=state.stock,
                )
            cost_after = movement.cost if movement.cost is not None else state.cost
            state.sequence += 1
            entries.append(
                StockLedger(
                    inventory_id=movement.inventory_id,
                    sequence=state.sequence,
                    type=movement.kind,
                    quantity=delta,
                    stock_before=state.stock,
                    stock_after=state.stock + delta,
                    cost_before=state.cost,
                    cost_after=cost_after,
                    ref_id=self.ref_id,
                    note=movement.note,
                )
            )
            state.stock += delta
            state.cost = cost_after
            state.sold += rule.sold_sign * movement.quantity

        for inventory_id, state in running.items():
            item = self.items[inventory_id]
            if state.sequence == item.ledger_sequence:
                continue
            self._write_aggregate(item, state)

        for entry in entries:
            self.store.add(entry)
        try:
            self.store.flush()
        except IntegrityError as exc:
            raise ConflictError("Stock ledger changed concurrently, retry the operation") from exc

        for entry in entries:
            logger.debug(
                json.dumps(
                    {
                        "event": "stock_movement",
                        "tenant_id": self.store.tenant_id,
                        "inventory_id": entry.inventory_id,
                        "type": entry.type.value,
                        "quantity": entry.quantity,
                        "stock_before": entry.stock_before,
                        "stock_after": entry.stock_after,
                        "ref_id": entry.ref_id,
                    }
                )
            )
        return entries

    def _write_aggregate(self, item: InventoryItem, state: _Running) -> None:
        result = self.store.execute(
            self.store.update(InventoryItem)
            .where(
                InventoryItem.id == item.id,
                InventoryItem.stock == item.stock,
                InventoryItem.ledger_sequence == item.ledger_sequence,
            )
            .values(
                stock=state.stock,
                cost=state.cost,
                sold=state.sold,
                ledger_sequence=state.sequence,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._raise_stale(item)
        self.store.session.expire(item)

    def _raise_stale(self, item: InventoryItem) -> None:
        current = self.store.execute(
            self.store.select_columns(InventoryItem, InventoryItem.stock).where(InventoryItem.id == item.id)
        ).scalar_one_or_none()
        if current is None:
            raise consistency_failure(
                self.store,
                f"Inventory {item.id} disappeared during a stock movement",
                inventory_id=item.id,
            )

        outgoing = sum(
            movement.quantity
            for movement in self._movements
            if movement.inventory_id == item.id and rule_for(movement.kind).stock_sign < 0
        )
        incoming = sum(
            movement.quantity
            for movement in self._movements
            if movement.inventory_id == item.id and rule_for(movement.kind).stock_sign > 0
        )
        if outgoing and current + incoming < outgoing:
            raise InsufficientStockError(
                inventory_id=item.id,
                name=item.name,
                requested=outgoing,
                available=current + incoming,
            )
        raise ConflictError(f"Stock of {item.name} changed concurrently, retry the operation")


def consistency_failure(store: TenantStore, message: str, **context) -> ConsistencyError:
    """Log a ledger/aggregate desync as an operational alert and return the error to raise."""
    logger.critical(
        json.dumps(
            {
                "event": "consistency_alert",
                "tenant_id": store.tenant_id,
                "message": message,
                **context,
            }
        )
    )
    return ConsistencyError(message)


def verify_ledger_chain(store: TenantStore, inventory_id: str) -> InventoryItem:
    """Walk one item's ledger and check it against the aggregate.

    Raises ``ConsistencyError`` on the first broken link.
    """
    item = store.get(InventoryItem, inventory_id, label="Inventory")
    entries = store.scalars(
        store.select(StockLedger)
        .where(StockLedger.inventory_id == inventory_id)
        .order_by(StockLedger.sequence)
    )
    expected_stock = item.initial_stock
    for position, entry in enumerate(entries, start=1):
        if entry.sequence != position:
            raise consistency_failure(
                store,
                f"Ledger sequence gap for {item.name}",
                inventory_id=item.id,
                sequence=entry.sequence,
                expected_sequence=position,
            )
        if entry.stock_before != expected_stock or entry.stock_after != entry.stock_before + entry.quantity:
            raise consistency_failure(
                store,
                f"Ledger chain broken for {item.name}",
                inventory_id=item.id,
                ledger_id=entry.id,
                sequence=entry.sequence,
            )
        expected_stock = entry.stock_after
    if item.stock != expected_stock or item.ledger_sequence != len(entries):
        raise consistency_failure(
            store,
            f"Stock of {item.name} does not match its ledger",
            inventory_id=item.id,
            stock=item.stock,
            ledger_stock=expected_stock,
        )
    return item
