from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from backoffice.models.inventory import MovementType
from backoffice.schemas.common import PaginationMeta


class InventoryCreate(BaseModel):
    name: str = Field(min_length=3, max_length=255)
    code: str = Field(min_length=2, max_length=50)
    price: int = Field(ge=0)
    cost: int = Field(ge=0)
    initial_stock: int = Field(default=0, ge=0)
    description: str | None = Field(default=None, max_length=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Beras Ramos 5kg",
                "code": "BRS-5",
                "price": 78000,
                "cost": 70000,
                "initial_stock": 0,
            }
        }
    )


class InventoryUpdate(BaseModel):
    name: str = Field(min_length=3, max_length=255)
    code: str = Field(min_length=2, max_length=50)
    price: int = Field(ge=0)
    description: str | None = Field(default=None, max_length=500)


class InventoryOut(BaseModel):
    id: str
    name: str
    code: str
    description: str | None = None
    price: int
    cost: int
    stock: int
    sold: int
    created_at: datetime | None = None


class InventoryListOut(BaseModel):
    pagination: PaginationMeta
    items: list[InventoryOut]


class LedgerEntryOut(BaseModel):
    id: str
    inventory_id: str
    name: str
    code: str
    sequence: int
    type: MovementType
    quantity: int
    stock_before: int
    stock_after: int
    cost_before: int
    cost_after: int
    ref_id: str
    note: str | None = None
    created_at: datetime


class LedgerListOut(BaseModel):
    pagination: PaginationMeta
    items: list[LedgerEntryOut]


class LedgerVerifyOut(BaseModel):
    inventory_id: str
    consistent: bool = True
    stock: int
    entries: int
