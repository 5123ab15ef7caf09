from typing import Any

from backoffice.db.tenant_store import TenantStore
from backoffice.models.audit_log import AuditLog


def log_audit_event(
    store: TenantStore,
    *,
    action: str,
    target_type: str,
    target_id: str | None = None,
    metadata_json: dict[str, Any] | None = None,
) -> AuditLog:
    if not store.user_id:
        raise ValueError("Audit events need an acting user")
    event = AuditLog(
        actor_user_id=store.user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        metadata_json=metadata_json,
    )
    store.add(event)
    return event
