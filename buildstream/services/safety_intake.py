"""
Safety report intake - an append-only hazard log.

There is no review step and no update path. High and Critical reports are
handed to a notifier after the write; a failing notifier never fails intake.
"""
from datetime import date
from typing import Iterable, List, Optional

import structlog
from sqlalchemy.orm import Session

from buildstream.models.audit import AuditEventType
from buildstream.models.enums import Capability, FormKind, HazardLevel
from buildstream.models.records import SafetyReportRecord, UserRecord
from buildstream.services.audit import record_audit
from buildstream.services.errors import MissingSite, parse_enum
from buildstream.services.guards import authorize
from buildstream.services.store import RecordStore

logger = structlog.get_logger(__name__)

ESCALATION_LEVEL = HazardLevel.HIGH


class LogNotifier:
    """Default notifier: emits a structured warning for management follow-up."""

    def notify_hazard(self, report: SafetyReportRecord) -> None:
        logger.warning(
            "hazard_escalated",
            report_id=report.id,
            site_id=report.site_id,
            hazard_level=report.hazard_level.value,
            ppe_compliance=report.ppe_compliance,
        )


def needs_escalation(level: HazardLevel) -> bool:
    return level.rank >= ESCALATION_LEVEL.rank


class SafetyIntake:

    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.store = RecordStore(db)
        self.notifier = notifier or LogNotifier()

    def list_reports(self) -> List[SafetyReportRecord]:
        return self.store.get_safety_reports()

    def create(
        self,
        actor: UserRecord,
        site_id: str,
        hazard_level,
        ppe_compliance: bool,
        observations: str = "",
        action_required: str = "",
        photos: Optional[Iterable[str]] = None,
        report_date: Optional[str] = None,
    ) -> SafetyReportRecord:
        authorize(self.db, actor, Capability.SUBMIT_SAFETY_REPORTS, "SafetyReport")
        if not site_id or not site_id.strip():
            raise MissingSite("A site must be selected for a safety report")
        if self.store.get_site(site_id) is None:
            raise MissingSite(f"Site {site_id} does not exist")

        level = parse_enum(HazardLevel, hazard_level, "hazard level")
        report = self.store.create_safety_report({
            "date": report_date or date.today().isoformat(),
            "site_id": site_id,
            "hazard_level": level,
            "ppe_compliance": bool(ppe_compliance),
            "observations": observations,
            "action_required": action_required,
            "photos": list(photos or []),
            "reported_by_user_id": actor.id,
        })
        self.store.clear_draft(actor.id, FormKind.SAFETY_REPORT)

        record_audit(
            self.db,
            event_type=AuditEventType.SAFETY_REPORT_CREATED,
            entity_type="SafetyReport",
            entity_id=report.id,
            user_id=actor.id,
            payload={"site_id": site_id, "hazard_level": level.value, "ppe_compliance": report.ppe_compliance},
        )
        logger.info("safety_report_created", report_id=report.id, hazard_level=level.value)

        if needs_escalation(level):
            try:
                self.notifier.notify_hazard(report)
            except Exception:
                logger.exception("hazard_notification_failed", report_id=report.id)
        return report
