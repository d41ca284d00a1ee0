"""
Audit logging service.

Append-only: events are only ever added, never updated or deleted.
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from buildstream.models.audit import AuditEvent

logger = structlog.get_logger(__name__)


def record_audit(
    db: Session,
    event_type: str,
    entity_type: str,
    entity_id: str,
    user_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditEvent:
    """
    Write an audit event and commit it.

    Args:
        db: Database session
        event_type: One of AuditEventType
        entity_type: Type of entity (User|Site|SiteLog|SafetyReport)
        entity_id: Entity ID
        user_id: Acting user, None for system events
        payload: Minimal context (statuses, decisions, refusal reasons)
    """
    event = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=str(entity_id),
        user_id=user_id,
        payload_json=payload or {},
    )
    db.add(event)
    db.commit()
    logger.debug("audit_recorded", event_type=event_type, entity_type=entity_type, entity_id=str(entity_id))
    return event
