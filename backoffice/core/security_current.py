from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.core.deps import get_db
from backoffice.core.security import TokenValidationError, decode_token
from backoffice.db.tenant_store import TenantStore
from backoffice.models.tenant import Tenant
from backoffice.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


@dataclass(frozen=True)
class TenantAccess:
    tenant: Tenant
    user: User
    role: str

    @property
    def tenant_id(self) -> str:
        return self.tenant.id

    @property
    def user_id(self) -> str:
        return self.user.id


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    try:
        payload = decode_token(token, expected_type="access")
    except TokenValidationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    user = db.execute(
        select(User).where(User.id == payload.get("sub"), User.tenant_id == payload.get("tid"))
    ).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User is inactive")
    return user


def get_current_access(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> TenantAccess:
    tenant = db.get(Tenant, user.tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return TenantAccess(tenant=tenant, user=user, role=(user.role or "staff").lower())


def get_tenant_store(
    access: TenantAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
) -> TenantStore:
    return TenantStore(db, access.tenant_id, user_id=access.user_id)
