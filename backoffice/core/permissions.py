from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from backoffice.core.security_current import TenantAccess, get_current_access
from backoffice.models.user import USER_ROLES


def require_roles(*allowed_roles: str) -> Callable[[TenantAccess], TenantAccess]:
    normalized_allowed = {role.strip().lower() for role in allowed_roles if role.strip()}
    if not normalized_allowed:
        raise ValueError("At least one allowed role is required")
    unknown = normalized_allowed - set(USER_ROLES)
    if unknown:
        raise ValueError(f"Unknown roles: {', '.join(sorted(unknown))}")

    def dependency(access: TenantAccess = Depends(get_current_access)) -> TenantAccess:
        if (access.role or "").lower() not in normalized_allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this action",
            )
        return access

    return dependency


require_manager = require_roles("owner", "admin")
