"""Site directory - listing and administrator creation of project sites."""
from typing import List

import structlog
from sqlalchemy.orm import Session

from buildstream.models.audit import AuditEventType
from buildstream.models.enums import Capability
from buildstream.models.records import SiteRecord, UserRecord
from buildstream.services.audit import record_audit
from buildstream.services.guards import authorize
from buildstream.services.store import RecordStore

logger = structlog.get_logger(__name__)


class SiteDirectory:

    def __init__(self, db: Session):
        self.db = db
        self.store = RecordStore(db)

    def list_sites(self) -> List[SiteRecord]:
        return self.store.get_sites()

    def create(
        self,
        actor: UserRecord,
        name: str,
        location: str = "",
        progress: int = 0,
        budget: float = 0,
        spent: float = 0,
    ) -> SiteRecord:
        """Sites are created by administrators and never deleted."""
        authorize(self.db, actor, Capability.MANAGE_USERS, "Site")
        site = self.store.create_site(
            name=name.strip(),
            location=location,
            progress=progress,
            budget=budget,
            spent=spent,
        )
        record_audit(
            self.db,
            event_type=AuditEventType.SITE_CREATED,
            entity_type="Site",
            entity_id=site.id,
            user_id=actor.id,
            payload={"name": site.name, "budget": site.budget},
        )
        logger.info("site_created", site_id=site.id, actor_id=actor.id)
        return site
