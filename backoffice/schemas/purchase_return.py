from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from backoffice.models.purchase_return import ReturnStatus
from backoffice.schemas.common import PaginationMeta


class ReturnItemIn(BaseModel):
    purchase_item_id: str
    quantity: int = Field(gt=0)


class ReturnCreate(BaseModel):
    purchase_id: str
    reason: str = Field(min_length=20, max_length=500)
    items: list[ReturnItemIn] = Field(min_length=1)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "purchase_id": "purchase-id-here",
                "reason": "Two sacks arrived torn and wet on delivery",
                "items": [{"purchase_item_id": "purchase-item-id-here", "quantity": 2}],
            }
        }
    )


class ReturnItemOut(BaseModel):
    id: str
    purchase_item_id: str
    inventory_id: str
    name: str
    quantity: int
    unit_cost: int
    sub_total: int


class ReturnOut(BaseModel):
    id: str
    purchase_id: str
    invoice: str
    status: ReturnStatus
    requested_by: str
    created_at: datetime
    updated_at: datetime | None = None


class ReturnDetailOut(ReturnOut):
    reason: str
    supplier: str
    items: list[ReturnItemOut]


class ReturnListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    items: list[ReturnOut]
