from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from backoffice.models.purchase import PaymentMethod, PurchaseStatus
from backoffice.schemas.common import PaginationMeta


class PurchaseItemIn(BaseModel):
    inventory_id: str
    quantity: int = Field(gt=0)
    unit_cost: int = Field(ge=0)


class PaymentIn(BaseModel):
    amount: int = Field(gt=0)
    method: PaymentMethod
    note: str | None = Field(default=None, max_length=255)


class PurchaseCreate(BaseModel):
    supplier_id: str
    invoice: str | None = Field(default=None, min_length=1, max_length=60)
    items: list[PurchaseItemIn] = Field(min_length=1)
    initial_payment: PaymentIn | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "supplier_id": "supplier-id-here",
                "invoice": "SUP-0001",
                "items": [{"inventory_id": "inventory-id-here", "quantity": 10, "unit_cost": 500}],
                "initial_payment": {"amount": 2000, "method": "CASH"},
            }
        }
    )


class PurchaseItemOut(BaseModel):
    id: str
    inventory_id: str
    name: str
    code: str
    quantity: int
    unit_cost: int
    sub_total: int


class PurchasePaymentOut(BaseModel):
    id: str
    amount: int
    method: PaymentMethod
    note: str | None = None
    created_at: datetime


class PurchaseOut(BaseModel):
    id: str
    invoice: str
    supplier_id: str
    supplier: str
    total_amount: int
    paid_amount: int
    status: PurchaseStatus
    is_deleted: bool
    created_at: datetime


class PurchaseDetailOut(PurchaseOut):
    recorded_by: str
    deleted_at: datetime | None = None
    items: list[PurchaseItemOut]
    payments: list[PurchasePaymentOut]


class PurchaseListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    items: list[PurchaseOut]
