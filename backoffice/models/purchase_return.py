import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.id_utils import generate_shortuuid
from backoffice.db.base import Base


class ReturnStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DONE = "DONE"


class PurchaseReturn(Base):
    __tablename__ = "purchase_returns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    purchase_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchases.id"), index=True)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    requested_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    status: Mapped[ReturnStatus] = mapped_column(
        Enum(ReturnStatus, native_enum=False, length=20),
        nullable=False,
        default=ReturnStatus.REQUESTED,
        server_default=ReturnStatus.REQUESTED.value,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_purchase_returns_tenant_status_updated_at", "tenant_id", "status", "updated_at"),
    )


class PurchaseReturnItem(Base):
    __tablename__ = "purchase_return_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    return_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchase_returns.id"), index=True)
    purchase_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchase_items.id"), index=True)
    inventory_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_items.id"), index=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    sub_total: Mapped[int] = mapped_column(Integer, nullable=False)
