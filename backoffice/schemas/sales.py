from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from backoffice.models.purchase import PaymentMethod
from backoffice.schemas.common import PaginationMeta


class SaleItemIn(BaseModel):
    inventory_id: str
    quantity: int = Field(gt=0)
    unit_price: int = Field(ge=0)


class SaleCreate(BaseModel):
    method: PaymentMethod
    items: list[SaleItemIn] = Field(min_length=1)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "method": "CASH",
                "items": [{"inventory_id": "inventory-id-here", "quantity": 2, "unit_price": 78000}],
            }
        }
    )


class SaleEdit(BaseModel):
    items: list[SaleItemIn] = Field(min_length=1)


class SaleItemOut(BaseModel):
    id: str
    inventory_id: str
    name: str
    code: str
    quantity: int
    unit_price: int
    sub_total: int


class SaleOut(BaseModel):
    id: str
    invoice: str
    method: PaymentMethod
    total_amount: int
    is_deleted: bool
    is_edited: bool
    created_at: datetime


class SaleDetailOut(SaleOut):
    issued_by: str
    edited_at: datetime | None = None
    deleted_at: datetime | None = None
    items: list[SaleItemOut]


class SaleListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    items: list[SaleOut]
