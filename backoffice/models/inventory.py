import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.id_utils import generate_shortuuid
from backoffice.db.base import Base


class MovementType(str, enum.Enum):
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    CANCEL_SALE = "CANCEL_SALE"
    CANCEL_PURCHASE = "CANCEL_PURCHASE"
    RETURN = "RETURN"
    ADJUST = "ADJUST"
    EDIT_SALE_RESTORE = "EDIT_SALE_RESTORE"
    EDIT_SALE_APPLY = "EDIT_SALE_APPLY"


class InventoryItem(Base):
    """
    Current-state projection of one stock-keeping item.

    ``stock``, ``cost``, ``sold`` and ``ledger_sequence`` are written only by
    the stock engine, in the same transaction as the ledger rows that explain
    the change.
    """
    __tablename__ = "inventory_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    initial_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    ledger_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_inventory_items_tenant_code"),
        UniqueConstraint("tenant_id", "name", name="uq_inventory_items_tenant_name"),
    )


class StockLedger(Base):
    """
    One row per stock movement. ``quantity`` is the signed delta applied to stock.
    Rows are never updated or deleted.
    """
    __tablename__ = "stock_ledger"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    inventory_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_items.id"), index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    type: Mapped[MovementType] = mapped_column(
        Enum(MovementType, native_enum=False, length=30),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_before: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_after: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_before: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_after: Mapped[int] = mapped_column(Integer, nullable=False)
    ref_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)  # purchase/sale/return id
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("inventory_id", "sequence", name="uq_stock_ledger_inventory_sequence"),
        Index("ix_stock_ledger_tenant_created_at", "tenant_id", "created_at"),
        Index("ix_stock_ledger_ref_type_inventory", "ref_id", "type", "inventory_id"),
    )
