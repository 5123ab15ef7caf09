from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from backoffice.schemas.common import PaginationMeta


class RegisterIn(BaseModel):
    tenant_name: str = Field(min_length=3, max_length=120)
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6, max_length=72)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "tenant_name": "Monita Mart",
                "username": "owner",
                "password": "password123",
                "email": "owner@monita.example",
            }
        }
    )


class LoginIn(BaseModel):
    tenant: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreateIn(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6, max_length=72)
    role: Literal["admin", "staff"]


class UserUpdateIn(BaseModel):
    username: str | None = Field(default=None, min_length=3, max_length=50)
    password: str | None = Field(default=None, min_length=6, max_length=72)
    role: Literal["admin", "staff"] | None = None


class UserOut(BaseModel):
    id: str
    username: str
    role: str
    is_active: bool
    created_at: datetime | None = None


class UserListOut(BaseModel):
    pagination: PaginationMeta
    items: list[UserOut]


class MeOut(BaseModel):
    tenant_id: str
    tenant_name: str
    user_id: str
    username: str
    role: str
