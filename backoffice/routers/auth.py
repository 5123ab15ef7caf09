from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice.core.api_docs import error_responses
from backoffice.core.config import settings
from backoffice.core.deps import get_db
from backoffice.core.id_utils import invoice_prefix_from_name
from backoffice.core.permissions import require_manager
from backoffice.core.security import create_access_token, hash_password, verify_password
from backoffice.core.security_current import TenantAccess, get_current_access
from backoffice.db.tenant_store import TenantStore
from backoffice.models.tenant import Tenant
from backoffice.models.user import User
from backoffice.schemas.auth import (
    LoginIn,
    MeOut,
    RegisterIn,
    TokenOut,
    UserCreateIn,
    UserListOut,
    UserOut,
    UserUpdateIn,
)
from backoffice.schemas.common import PaginationMeta
from backoffice.services.audit_service import log_audit_event

router = APIRouter(prefix="/auth", tags=["auth"])
TOKEN_RESPONSE = {
    200: {
        "description": "Bearer access token",
        "content": {
            "application/json": {
                "example": {
                    "access_token": "access-token",
                    "token_type": "bearer",
                }
            }
        },
    }
}


def _find_tenant(db: Session, name: str) -> Tenant | None:
    return db.execute(
        select(Tenant).where(func.lower(Tenant.name) == name.strip().lower())
    ).scalar_one_or_none()


def _username_exists(db: Session, tenant_id: str, username: str) -> bool:
    found = db.execute(
        select(User.id).where(
            User.tenant_id == tenant_id,
            func.lower(User.username) == username.lower(),
        )
    ).scalar_one_or_none()
    return found is not None


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        role=user.role,
        is_active=user.is_active,
        created_at=user.created_at,
    )


def _managed_user(db: Session, access: TenantAccess, user_id: str) -> User:
    user = db.execute(
        select(User).where(User.id == user_id, User.tenant_id == access.tenant_id)
    ).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.role == "owner":
        raise HTTPException(status_code=403, detail="The owner account cannot be changed here")
    if user.id == access.user_id:
        raise HTTPException(status_code=400, detail="Use another manager account to change your own")
    if user.role == "admin" and access.role != "owner":
        raise HTTPException(status_code=403, detail="Only the owner can change admins")
    return user


def _authenticate(db: Session, tenant_name: str, username: str, password: str) -> User:
    tenant = _find_tenant(db, tenant_name)
    user = None
    if tenant:
        user = db.execute(
            select(User).where(
                User.tenant_id == tenant.id,
                func.lower(User.username) == username.strip().lower(),
            )
        ).scalar_one_or_none()
    if not user or not verify_password(password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User is inactive")
    return user


@router.post(
    "/register",
    response_model=TokenOut,
    summary="Register tenant",
    description="Creates a tenant with its owner account and returns an access token.",
    responses={**TOKEN_RESPONSE, **error_responses(400, 409, 422, 500)},
)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    name = payload.tenant_name.strip()
    if _find_tenant(db, name):
        raise HTTPException(status_code=409, detail="Tenant name already registered")

    tenant = Tenant(
        name=name,
        invoice_prefix=invoice_prefix_from_name(name),
        email=payload.email,
        phone=payload.phone,
    )
    db.add(tenant)
    db.flush()

    owner = User(
        tenant_id=tenant.id,
        username=payload.username.strip().lower(),
        hashed_password=hash_password(payload.password),
        role="owner",
        is_active=True,
    )
    db.add(owner)
    db.flush()

    log_audit_event(
        TenantStore(db, tenant.id, user_id=owner.id),
        action="tenant.register",
        target_type="tenant",
        target_id=tenant.id,
        metadata_json={"invoice_prefix": tenant.invoice_prefix},
    )
    db.commit()
    return TokenOut(access_token=create_access_token(owner.id, tenant.id))


@router.post(
    "/login",
    response_model=TokenOut,
    summary="Login",
    responses={**TOKEN_RESPONSE, **error_responses(401, 422, 500)},
)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user = _authenticate(db, payload.tenant, payload.username, payload.password)
    return TokenOut(access_token=create_access_token(user.id, user.tenant_id))


@router.post(
    "/token",
    response_model=TokenOut,
    summary="OAuth2 token",
    description="Form login for the OpenAPI client. The username field takes `tenant/username`.",
    responses={**TOKEN_RESPONSE, **error_responses(401, 422, 500)},
)
def token(form: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    tenant_name, sep, username = form.username.partition("/")
    if not sep:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user = _authenticate(db, tenant_name, username, form.password)
    return TokenOut(access_token=create_access_token(user.id, user.tenant_id))


@router.get(
    "/me",
    response_model=MeOut,
    summary="Current access",
    responses=error_responses(401, 404, 500),
)
def me(access: TenantAccess = Depends(get_current_access)):
    return MeOut(
        tenant_id=access.tenant_id,
        tenant_name=access.tenant.name,
        user_id=access.user_id,
        username=access.user.username,
        role=access.role,
    )


@router.post(
    "/users",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
    description="Adds an admin or staff account to the caller's tenant.",
    responses=error_responses(401, 403, 409, 422, 500),
)
def create_user(
    payload: UserCreateIn,
    db: Session = Depends(get_db),
    access: TenantAccess = Depends(require_manager),
):
    username = payload.username.strip().lower()
    if _username_exists(db, access.tenant_id, username):
        raise HTTPException(status_code=409, detail="Username already exists")
    if payload.role == "admin" and access.role != "owner":
        raise HTTPException(status_code=403, detail="Only the owner can add admins")

    user = User(
        tenant_id=access.tenant_id,
        username=username,
        hashed_password=hash_password(payload.password),
        role=payload.role,
        is_active=True,
    )
    db.add(user)
    db.flush()

    log_audit_event(
        TenantStore(db, access.tenant_id, user_id=access.user_id),
        action="user.create",
        target_type="user",
        target_id=user.id,
        metadata_json={"role": user.role},
    )
    db.commit()
    db.refresh(user)
    return _user_out(user)


@router.get(
    "/users",
    response_model=UserListOut,
    summary="List users",
    responses=error_responses(401, 403, 422, 500),
)
def list_users(
    include_inactive: bool = Query(default=False),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    access: TenantAccess = Depends(require_manager),
):
    count_stmt = select(func.count(User.id)).where(User.tenant_id == access.tenant_id)
    data_stmt = select(User).where(User.tenant_id == access.tenant_id)
    if not include_inactive:
        count_stmt = count_stmt.where(User.is_active.is_(True))
        data_stmt = data_stmt.where(User.is_active.is_(True))

    total_count = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(data_stmt.order_by(User.username.asc()).offset(offset).limit(limit)).scalars().all()
    items = [_user_out(row) for row in rows]
    count = len(items)
    return UserListOut(
        pagination=PaginationMeta(
            total=total_count,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total_count,
        ),
        items=items,
    )


@router.patch(
    "/users/{user_id}",
    response_model=UserOut,
    summary="Update user",
    description="Changes the username, password or role of an admin or staff account.",
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def update_user(
    user_id: str,
    payload: UserUpdateIn,
    db: Session = Depends(get_db),
    access: TenantAccess = Depends(require_manager),
):
    user = _managed_user(db, access, user_id)
    changes: dict[str, str] = {}

    if payload.username is not None:
        username = payload.username.strip().lower()
        if username != user.username:
            if _username_exists(db, access.tenant_id, username):
                raise HTTPException(status_code=409, detail="Username already exists")
            user.username = username
            changes["username"] = username
    if payload.role is not None and payload.role != user.role:
        if payload.role == "admin" and access.role != "owner":
            raise HTTPException(status_code=403, detail="Only the owner can add admins")
        user.role = payload.role
        changes["role"] = payload.role
    if payload.password is not None:
        user.hashed_password = hash_password(payload.password)
        changes["password"] = "changed"

    if not changes:
        raise HTTPException(status_code=400, detail="No changes detected")

    log_audit_event(
        TenantStore(db, access.tenant_id, user_id=access.user_id),
        action="user.update",
        target_type="user",
        target_id=user.id,
        metadata_json=changes,
    )
    db.commit()
    db.refresh(user)
    return _user_out(user)


@router.delete(
    "/users/{user_id}",
    response_model=UserOut,
    summary="Deactivate user",
    description="Blocks the account from logging in. Its documents and audit history stay attached.",
    responses=error_responses(400, 401, 403, 404, 409, 500),
)
def deactivate_user(
    user_id: str,
    db: Session = Depends(get_db),
    access: TenantAccess = Depends(require_manager),
):
    user = _managed_user(db, access, user_id)
    if not user.is_active:
        raise HTTPException(status_code=409, detail="User is already inactive")
    user.is_active = False

    log_audit_event(
        TenantStore(db, access.tenant_id, user_id=access.user_id),
        action="user.deactivate",
        target_type="user",
        target_id=user.id,
    )
    db.commit()
    db.refresh(user)
    return _user_out(user)
