"""Tests for safety report intake and hazard escalation."""
import pytest

from buildstream.models.audit import AuditEvent, AuditEventType
from buildstream.models.enums import FormKind, HazardLevel
from buildstream.services.errors import MissingSite, NotAuthorized
from buildstream.services.safety_intake import SafetyIntake, needs_escalation
from buildstream.services.store import RecordStore


class RecordingNotifier:
    def __init__(self):
        self.reports = []

    def notify_hazard(self, report):
        self.reports.append(report)


class BrokenNotifier:
    def notify_hazard(self, report):
        raise RuntimeError("pager service down")


class TestSafetyIntake:

    def test_create_persists_report(self, db_session, safety_officer, site):
        report = SafetyIntake(db_session).create(
            safety_officer,
            site_id=site.id,
            hazard_level=HazardLevel.MEDIUM,
            ppe_compliance=True,
            observations="Loose scaffolding boards on level 2",
            action_required="Secure boards before next shift",
            photos=["photos/scaffold-1.jpg"],
        )
        assert report.id
        assert report.hazard_level == HazardLevel.MEDIUM
        assert report.reported_by_user_id == safety_officer.id
        assert report.photos == ["photos/scaffold-1.jpg"]

        audit = db_session.query(AuditEvent).filter(
            AuditEvent.event_type == AuditEventType.SAFETY_REPORT_CREATED,
            AuditEvent.entity_id == report.id
        ).first()
        assert audit.payload_json["hazard_level"] == "Medium"

    @pytest.mark.parametrize("site_id", ["", None, "unknown-site"])
    def test_site_required(self, db_session, safety_officer, site_id):
        with pytest.raises(MissingSite):
            SafetyIntake(db_session).create(safety_officer, site_id=site_id, hazard_level="Low", ppe_compliance=True)
        assert RecordStore(db_session).get_safety_reports() == []

    def test_foreman_cannot_file_safety_reports(self, db_session, foreman, site):
        with pytest.raises(NotAuthorized):
            SafetyIntake(db_session).create(foreman, site_id=site.id, hazard_level="Low", ppe_compliance=True)

    def test_hazard_levels_are_ordered(self):
        levels = [HazardLevel.LOW, HazardLevel.MEDIUM, HazardLevel.HIGH, HazardLevel.CRITICAL]
        assert [level.rank for level in levels] == [0, 1, 2, 3]
        assert [needs_escalation(level) for level in levels] == [False, False, True, True]

    @pytest.mark.parametrize("level,escalated", [
        ("Low", False),
        ("Medium", False),
        ("High", True),
        ("Critical", True),
    ])
    def test_high_hazards_reach_notifier(self, db_session, safety_officer, site, level, escalated):
        notifier = RecordingNotifier()
        report = SafetyIntake(db_session, notifier=notifier).create(
            safety_officer, site_id=site.id, hazard_level=level, ppe_compliance=False
        )
        assert [r.id for r in notifier.reports] == ([report.id] if escalated else [])

    def test_notifier_failure_does_not_fail_intake(self, db_session, safety_officer, site):
        report = SafetyIntake(db_session, notifier=BrokenNotifier()).create(
            safety_officer, site_id=site.id, hazard_level=HazardLevel.CRITICAL, ppe_compliance=False
        )
        assert [r.id for r in RecordStore(db_session).get_safety_reports()] == [report.id]

    def test_create_clears_safety_draft(self, db_session, safety_officer, site):
        store = RecordStore(db_session)
        store.save_draft(safety_officer.id, FormKind.SAFETY_REPORT, {"observations": "half typed"})
        SafetyIntake(db_session).create(safety_officer, site_id=site.id, hazard_level="Low", ppe_compliance=True)
        assert store.get_draft(safety_officer.id, FormKind.SAFETY_REPORT) is None

    def test_reports_listed_newest_first(self, db_session, safety_officer, site):
        intake = SafetyIntake(db_session)
        first = intake.create(safety_officer, site_id=site.id, hazard_level="Low", ppe_compliance=True)
        second = intake.create(safety_officer, site_id=site.id, hazard_level="Medium", ppe_compliance=True)
        assert [r.id for r in intake.list_reports()] == [second.id, first.id]

    def test_critical_report_listed_unchanged(self, db_session, safety_officer, site):
        intake = SafetyIntake(db_session, notifier=RecordingNotifier())
        report = intake.create(
            safety_officer,
            site_id=site.id,
            hazard_level=HazardLevel.CRITICAL,
            ppe_compliance=False,
            observations="Worker on roof edge without harness",
        )
        assert intake.list_reports() == [report]
        assert report.hazard_level == HazardLevel.CRITICAL
        assert report.ppe_compliance is False

    def test_reports_have_no_update_path(self):
        """INVARIANT: safety reports are write-once."""
        assert not [name for name in dir(SafetyIntake) if name.startswith(("update", "edit", "delete"))]
        assert not [name for name in dir(RecordStore) if "safety_report" in name and name.startswith("update")]
