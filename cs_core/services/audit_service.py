"""
Audit logging service
"""
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any, Union
from cs_core.models.audit import AuditEvent
import uuid


def _as_uuid(value: Union[uuid.UUID, str, None]) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def log_audit_event(
    db: Session,
    event_type: str,
    company_id: Union[uuid.UUID, str, None] = None,
    session_id: Union[uuid.UUID, str, None] = None,
    payload: Optional[Dict[str, Any]] = None
) -> AuditEvent:
    """Log an audit event"""
    audit_event = AuditEvent(
        company_id=_as_uuid(company_id),
        session_id=_as_uuid(session_id),
        event_type=event_type,
        payload=payload or {}
    )
    db.add(audit_event)
    db.commit()
    return audit_event
