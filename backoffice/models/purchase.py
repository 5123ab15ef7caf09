import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.id_utils import generate_shortuuid
from backoffice.db.base import Base


class PurchaseStatus(str, enum.Enum):
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CREDITCARD = "CREDITCARD"
    TRANSFER = "TRANSFER"
    QRIS = "QRIS"


class Purchase(Base):
    __tablename__ = "purchases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    supplier_id: Mapped[str] = mapped_column(String(36), ForeignKey("suppliers.id"), index=True)
    invoice: Mapped[str] = mapped_column(String(60), nullable=False)

    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    status: Mapped[PurchaseStatus] = mapped_column(
        Enum(PurchaseStatus, native_enum=False, length=20),
        nullable=False,
        default=PurchaseStatus.UNPAID,
        server_default=PurchaseStatus.UNPAID.value,
    )
    recorded_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    edited_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice", name="uq_purchases_tenant_invoice"),
        Index("ix_purchases_tenant_deleted_created_at", "tenant_id", "is_deleted", "created_at"),
    )


class PurchaseItem(Base):
    __tablename__ = "purchase_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    purchase_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchases.id"), index=True)
    inventory_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_items.id"), index=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    sub_total: Mapped[int] = mapped_column(Integer, nullable=False)


class PurchasePayment(Base):
    __tablename__ = "purchase_payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    purchase_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchases.id"), index=True)

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod, native_enum=False, length=20), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    recorded_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
