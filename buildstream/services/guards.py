"""Capability checks for service operations. Refusals are audited before raising."""
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from buildstream.models.audit import AuditEventType
from buildstream.models.enums import Capability
from buildstream.models.records import UserRecord
from buildstream.services.audit import record_audit
from buildstream.services.errors import NotAuthorized
from buildstream.services.policy import require_capability

logger = structlog.get_logger(__name__)


def authorize(
    db: Session,
    actor: Optional[UserRecord],
    capability: Capability,
    entity_type: str,
    entity_id: Optional[str] = None,
) -> UserRecord:
    """Return the actor if it holds the capability, else audit and raise NotAuthorized."""
    try:
        require_capability(actor, capability)
    except NotAuthorized as e:
        record_audit(
            db,
            event_type=AuditEventType.CAPABILITY_REFUSED,
            entity_type=entity_type,
            entity_id=entity_id or "-",
            user_id=actor.id if actor else None,
            payload={
                "capability": capability.value,
                "role": actor.role.value if actor else None,
                "status": actor.status.value if actor else None,
            },
        )
        logger.warning(
            "capability_refused",
            capability=capability.value,
            user_id=actor.id if actor else None,
            reason=e.message,
        )
        raise
    return actor
