"""
Site log workflow that enforces the review state machine.

    DRAFT → SUBMITTED → APPROVED | REJECTED

All status changes MUST go through here. APPROVED and REJECTED are terminal.
"""
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy.orm import Session

from buildstream.models.audit import AuditEventType
from buildstream.models.enums import Capability, FormKind, LogStatus, Shift
from buildstream.models.records import EquipmentUsage, MaterialUsage, SiteLogRecord, UserRecord
from buildstream.services.audit import record_audit
from buildstream.services.errors import (
    IllegalTransition,
    InvalidValue,
    MissingSite,
    NotAuthorized,
    NotFound,
    NotReviewable,
    parse_enum,
)
from buildstream.services.guards import authorize
from buildstream.services.store import RecordStore

logger = structlog.get_logger(__name__)

CREATABLE_STATUSES = frozenset({LogStatus.DRAFT, LogStatus.SUBMITTED})
REVIEW_DECISIONS = frozenset({LogStatus.APPROVED, LogStatus.REJECTED})

# Fields a foreman may rewrite while the log is still a draft
EDITABLE_FIELDS = frozenset({
    "date",
    "shift",
    "site_id",
    "block_name",
    "foreman_name",
    "workers_count",
    "work_completed",
    "material_usage",
    "equipment_usage",
    "incidents",
    "photos",
})
# Draft fields where null means an empty list
LIST_FIELDS = frozenset({"material_usage", "equipment_usage", "photos"})


def _materials(entries: Optional[Iterable[Any]]) -> List[dict]:
    return [MaterialUsage.model_validate(entry).model_dump() for entry in entries or []]


def _equipment(entries: Optional[Iterable[Any]]) -> List[dict]:
    return [EquipmentUsage.model_validate(entry).model_dump() for entry in entries or []]


class SiteLogWorkflow:
    """Enforces site log transitions and who may make them."""

    def __init__(self, db: Session):
        self.db = db
        self.store = RecordStore(db)

    def _require_site(self, site_id: Optional[str]) -> str:
        if not site_id or not site_id.strip():
            raise MissingSite("A site must be selected for a site log")
        if self.store.get_site(site_id) is None:
            raise MissingSite(f"Site {site_id} does not exist")
        return site_id

    def _refuse(self, actor: UserRecord, log: SiteLogRecord, event_type: str, error: Exception, **payload):
        record_audit(
            self.db,
            event_type=event_type,
            entity_type="SiteLog",
            entity_id=log.id,
            user_id=actor.id,
            payload={"current_status": log.status.value, "attempted_by_user_id": actor.id, **payload},
        )
        logger.warning(event_type, log_id=log.id, current_status=log.status.value, actor_id=actor.id)
        raise error

    def _get_owned_draft(self, actor: UserRecord, log_id: str) -> SiteLogRecord:
        log = self.store.get_site_log(log_id)
        if log is None:
            raise NotFound(f"Site log {log_id} not found")
        if log.submitted_by_user_id != actor.id:
            raise NotAuthorized("Only the author of a site log may edit or submit it")
        return log

    def list_logs(self) -> List[SiteLogRecord]:
        """All site logs, newest first."""
        return self.store.get_site_logs()

    def review_queue(self, actor: UserRecord) -> List[SiteLogRecord]:
        """SUBMITTED logs awaiting a decision, each exactly once, newest first."""
        authorize(self.db, actor, Capability.REVIEW_SITE_LOGS, "SiteLog")
        return self.store.get_site_logs(status=LogStatus.SUBMITTED)

    def create(
        self,
        actor: UserRecord,
        site_id: str,
        shift=Shift.DAY,
        block_name: str = "",
        foreman_name: Optional[str] = None,
        workers_count: int = 0,
        work_completed: str = "",
        material_usage: Optional[Iterable[Any]] = None,
        equipment_usage: Optional[Iterable[Any]] = None,
        incidents: str = "",
        photos: Optional[Iterable[str]] = None,
        status=LogStatus.DRAFT,
        log_date: Optional[str] = None,
    ) -> SiteLogRecord:
        """
        Persist a new site log as DRAFT or SUBMITTED.

        The caller picks the initial status; there is no separate
        create-then-submit step for a log filed straight to review.
        """
        authorize(self.db, actor, Capability.SUBMIT_SITE_LOGS, "SiteLog")
        self._require_site(site_id)

        status = parse_enum(LogStatus, status, "status")
        if status not in CREATABLE_STATUSES:
            raise IllegalTransition(
                f"Site logs are created as DRAFT or SUBMITTED, not {status.value}",
                requested_status=status.value,
            )

        log = self.store.create_site_log({
            "date": log_date or date.today().isoformat(),
            "shift": parse_enum(Shift, shift, "shift"),
            "site_id": site_id,
            "block_name": block_name,
            "foreman_name": foreman_name or actor.name,
            "status": status,
            "workers_count": workers_count,
            "work_completed": work_completed,
            "material_usage": _materials(material_usage),
            "equipment_usage": _equipment(equipment_usage),
            "incidents": incidents,
            "photos": list(photos or []),
            "submitted_by_user_id": actor.id,
        })

        if status == LogStatus.SUBMITTED:
            self.store.clear_draft(actor.id, FormKind.SITE_LOG)

        record_audit(
            self.db,
            event_type=AuditEventType.SITE_LOG_CREATED,
            entity_type="SiteLog",
            entity_id=log.id,
            user_id=actor.id,
            payload={"site_id": site_id, "status": status.value},
        )
        logger.info("site_log_created", log_id=log.id, site_id=site_id, status=status.value)
        return log

    def save_draft(self, actor: UserRecord, log_id: str, fields: Dict[str, Any]) -> SiteLogRecord:
        """
        Re-save a draft's fields. The state machine position does not move.
        """
        authorize(self.db, actor, Capability.SUBMIT_SITE_LOGS, "SiteLog", log_id)
        log = self._get_owned_draft(actor, log_id)

        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise InvalidValue(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        cleared = sorted(name for name, value in fields.items() if value is None and name not in LIST_FIELDS)
        if cleared:
            raise InvalidValue(f"Fields cannot be null: {', '.join(cleared)}")
        if fields.get("workers_count", 0) < 0:
            raise InvalidValue("workers_count cannot be negative")

        values = dict(fields)
        if "site_id" in values:
            self._require_site(values["site_id"])
        if "shift" in values:
            values["shift"] = parse_enum(Shift, values["shift"], "shift")
        if "material_usage" in values:
            values["material_usage"] = _materials(values["material_usage"])
        if "equipment_usage" in values:
            values["equipment_usage"] = _equipment(values["equipment_usage"])
        if "photos" in values:
            values["photos"] = list(values["photos"] or [])

        if log.status != LogStatus.DRAFT or not self.store.update_draft_fields(log_id, values):
            current = self.store.get_site_log(log_id) or log
            self._refuse(
                actor,
                current,
                AuditEventType.SITE_LOG_TRANSITION_REFUSED,
                IllegalTransition(
                    f"Only DRAFT logs can be edited; this log is {current.status.value}",
                    current_status=current.status.value,
                ),
                action="save_draft",
            )

        record_audit(
            self.db,
            event_type=AuditEventType.SITE_LOG_DRAFT_SAVED,
            entity_type="SiteLog",
            entity_id=log_id,
            user_id=actor.id,
            payload={"fields": sorted(values)},
        )
        return self.store.get_site_log(log_id)

    def submit(self, actor: UserRecord, log_id: str) -> SiteLogRecord:
        """DRAFT → SUBMITTED, by the log's author only."""
        authorize(self.db, actor, Capability.SUBMIT_SITE_LOGS, "SiteLog", log_id)
        log = self._get_owned_draft(actor, log_id)

        if not self.store.update_site_log_status(log_id, LogStatus.DRAFT, LogStatus.SUBMITTED):
            current = self.store.get_site_log(log_id) or log
            self._refuse(
                actor,
                current,
                AuditEventType.SITE_LOG_TRANSITION_REFUSED,
                IllegalTransition(
                    f"Only DRAFT logs can be submitted; this log is {current.status.value}",
                    current_status=current.status.value,
                    requested_status=LogStatus.SUBMITTED.value,
                ),
                action="submit",
            )

        self.store.clear_draft(actor.id, FormKind.SITE_LOG)
        record_audit(
            self.db,
            event_type=AuditEventType.SITE_LOG_SUBMITTED,
            entity_type="SiteLog",
            entity_id=log_id,
            user_id=actor.id,
            payload={"site_id": log.site_id},
        )
        logger.info("site_log_submitted", log_id=log_id, actor_id=actor.id)
        return self.store.get_site_log(log_id)

    def review(self, actor: UserRecord, log_id: str, decision, feedback: str = "") -> SiteLogRecord:
        """
        Approve or reject a SUBMITTED log.

        Invariants:
        - The caller must hold review-site-logs, checked before anything else
        - Only SUBMITTED logs are reviewable; anything else raises NotReviewable
        - At most one terminal decision per log: the status write is
          conditional on SUBMITTED, so of two racing reviewers exactly one wins
        - Feedback is stored verbatim
        """
        authorize(self.db, actor, Capability.REVIEW_SITE_LOGS, "SiteLog", log_id)

        decision = parse_enum(LogStatus, decision, "decision")
        if decision not in REVIEW_DECISIONS:
            raise IllegalTransition(
                f"A review decides APPROVED or REJECTED, not {decision.value}",
                requested_status=decision.value,
            )

        reviewed = self.store.update_site_log_status(
            log_id,
            LogStatus.SUBMITTED,
            decision,
            feedback=feedback,
            reviewed_by_user_id=actor.id,
        )
        if not reviewed:
            current = self.store.get_site_log(log_id)
            if current is None:
                raise NotFound(f"Site log {log_id} not found")
            self._refuse(
                actor,
                current,
                AuditEventType.SITE_LOG_REVIEW_REFUSED,
                NotReviewable(
                    f"Site log is {current.status.value}, only SUBMITTED logs can be reviewed",
                    current_status=current.status.value,
                ),
                decision=decision.value,
            )

        record_audit(
            self.db,
            event_type=AuditEventType.SITE_LOG_REVIEWED,
            entity_type="SiteLog",
            entity_id=log_id,
            user_id=actor.id,
            payload={"decision": decision.value, "has_feedback": bool(feedback)},
        )
        logger.info("site_log_reviewed", log_id=log_id, decision=decision.value, reviewer_id=actor.id)
        return self.store.get_site_log(log_id)
