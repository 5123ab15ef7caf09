from datetime import datetime

from pydantic import BaseModel, Field

from backoffice.schemas.common import PaginationMeta


class SupplierCreate(BaseModel):
    name: str = Field(min_length=3, max_length=120)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    address: str | None = Field(default=None, max_length=255)


class SupplierOut(BaseModel):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    created_at: datetime


class SupplierListOut(BaseModel):
    pagination: PaginationMeta
    items: list[SupplierOut]
