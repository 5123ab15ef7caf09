from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.id_utils import generate_shortuuid
from backoffice.db.base import Base


class InvoiceCounter(Base):
    __tablename__ = "invoice_counters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    __table_args__ = (
        UniqueConstraint("tenant_id", "year", name="uq_invoice_counters_tenant_year"),
    )
