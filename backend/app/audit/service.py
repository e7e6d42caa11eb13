from sqlalchemy.orm import Session

from app.audit.models import AuditLog


def write_audit_log(
    db: Session,
    *,
    tenant_id: str,
    user_id: str | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> AuditLog:
    # Joins the caller's transaction; the caller commits.
    log = AuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(log)
    return log
