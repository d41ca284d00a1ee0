"""
Record store - the narrow repository the workflow core talks to.

Every read returns typed records, never ORM rows. Every database failure
surfaces as PersistenceFailure (or StoreTimeout) after rolling back.
Status changes are conditional updates: the database decides which of two
racing writers wins, not a read made earlier by the caller.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from buildstream.models.domain import FormDraft, SafetyReport, Site, SiteLog, SystemMarker, User
from buildstream.models.enums import FormKind, LogStatus, UserStatus
from buildstream.models.records import (
    SafetyReportRecord,
    SiteLogRecord,
    SiteRecord,
    UserRecord,
)
from buildstream.services.errors import (
    BuildStreamError,
    DuplicateAccount,
    PersistenceFailure,
    StoreTimeout,
)

logger = structlog.get_logger(__name__)


@contextmanager
def store_guard(db: Session, operation: str):
    """Roll back and translate database failures into typed errors."""
    try:
        yield
    except BuildStreamError:
        db.rollback()
        raise
    except PoolTimeoutError as e:
        db.rollback()
        logger.error("store_timeout", operation=operation)
        raise StoreTimeout(f"Store timed out during {operation}") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("store_failure", operation=operation, error=e.__class__.__name__)
        raise PersistenceFailure(f"Store failed during {operation}") from e


class RecordStore:
    """Sites, user profiles, site logs, safety reports and form drafts."""

    def __init__(self, db: Session):
        self.db = db

    def _guard(self, operation: str):
        return store_guard(self.db, operation)

    # Sites
    def get_sites(self) -> List[SiteRecord]:
        with self._guard("get_sites"):
            rows = self.db.query(Site).order_by(Site.created_at.asc()).all()
            return [SiteRecord.model_validate(row) for row in rows]

    def get_site(self, site_id: str) -> Optional[SiteRecord]:
        with self._guard("get_site"):
            row = self.db.query(Site).filter(Site.id == site_id).first()
            return SiteRecord.model_validate(row) if row else None

    def create_site(
        self,
        name: str,
        location: str = "",
        progress: int = 0,
        budget: float = 0,
        spent: float = 0,
    ) -> SiteRecord:
        with self._guard("create_site"):
            site = Site(name=name, location=location, progress=progress, budget=budget, spent=spent)
            self.db.add(site)
            self.db.commit()
            self.db.refresh(site)
            return SiteRecord.model_validate(site)

    def delete_site(self, site_id: str) -> None:
        """Only used to undo a bootstrap that failed before its admin existed."""
        with self._guard("delete_site"):
            self.db.query(Site).filter(Site.id == site_id).delete(synchronize_session=False)
            self.db.commit()

    # System markers
    def claim_marker(self, name: str) -> bool:
        """Insert a one-time marker. False when it already exists."""
        with self._guard("claim_marker"):
            try:
                self.db.execute(insert(SystemMarker).values(name=name, created_at=datetime.utcnow()))
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                return False
            return True

    def release_marker(self, name: str) -> None:
        with self._guard("release_marker"):
            self.db.query(SystemMarker).filter(SystemMarker.name == name).delete(synchronize_session=False)
            self.db.commit()

    def count_sites(self) -> int:
        with self._guard("count_sites"):
            return self.db.query(func.count(Site.id)).scalar()

    # Users
    def get_users(self) -> List[UserRecord]:
        with self._guard("get_users"):
            rows = self.db.query(User).order_by(User.created_at.asc()).all()
            return [UserRecord.model_validate(row) for row in rows]

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._guard("get_user"):
            row = self.db.query(User).filter(User.id == user_id).first()
            return UserRecord.model_validate(row) if row else None

    def count_users(self) -> int:
        with self._guard("count_users"):
            return self.db.query(func.count(User.id)).scalar()

    def create_profile(
        self,
        identity_id: str,
        name: str,
        email: str,
        role,
        status: UserStatus,
        site_id: Optional[str] = None,
        onboarded: bool = False,
    ) -> UserRecord:
        """
        Create the profile row for an identity.

        Idempotent per identity id: a retry after a partial failure returns
        the existing profile instead of creating a second one.
        """
        with self._guard("create_profile"):
            existing = self.db.query(User).filter(User.id == identity_id).first()
            if existing:
                return UserRecord.model_validate(existing)

            user = User(
                id=identity_id,
                name=name,
                email=email,
                role=role,
                status=status,
                site_id=site_id,
                onboarded_at=datetime.utcnow() if onboarded else None,
            )
            self.db.add(user)
            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise DuplicateAccount(f"An account for {email} already exists") from e
            self.db.refresh(user)
            return UserRecord.model_validate(user)

    def update_user_status(self, user_id: str, expected: UserStatus, new_status: UserStatus) -> bool:
        """Set status only if it is still `expected`. Returns whether a row changed."""
        with self._guard("update_user_status"):
            result = self.db.execute(
                update(User)
                .where(User.id == user_id, User.status == expected)
                .values(status=new_status, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            return result.rowcount == 1

    def update_profile(self, user_id: str, **fields: Any) -> Optional[UserRecord]:
        with self._guard("update_profile"):
            user = self.db.query(User).filter(User.id == user_id).first()
            if user is None:
                return None
            for key, value in fields.items():
                setattr(user, key, value)
            self.db.commit()
            self.db.refresh(user)
            return UserRecord.model_validate(user)

    def touch_last_active(self, user_id: str) -> None:
        with self._guard("touch_last_active"):
            self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(last_active=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            self.db.commit()

    # Site logs
    def get_site_logs(self, status: Optional[LogStatus] = None) -> List[SiteLogRecord]:
        """Site logs newest first, optionally narrowed to one status."""
        with self._guard("get_site_logs"):
            query = self.db.query(SiteLog)
            if status is not None:
                query = query.filter(SiteLog.status == status)
            rows = query.order_by(SiteLog.timestamp.desc(), SiteLog.id.desc()).all()
            return [SiteLogRecord.model_validate(row) for row in rows]

    def get_site_log(self, log_id: str) -> Optional[SiteLogRecord]:
        with self._guard("get_site_log"):
            row = self.db.query(SiteLog).filter(SiteLog.id == log_id).first()
            return SiteLogRecord.model_validate(row) if row else None

    def create_site_log(self, fields: Dict[str, Any]) -> SiteLogRecord:
        with self._guard("create_site_log"):
            log = SiteLog(**fields)
            self.db.add(log)
            self.db.commit()
            self.db.refresh(log)
            return SiteLogRecord.model_validate(log)

    def update_draft_fields(self, log_id: str, fields: Dict[str, Any]) -> bool:
        """Rewrite a log's fields only while it is still a DRAFT."""
        with self._guard("update_draft_fields"):
            result = self.db.execute(
                update(SiteLog)
                .where(SiteLog.id == log_id, SiteLog.status == LogStatus.DRAFT)
                .values(**fields)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            return result.rowcount == 1

    def update_site_log_status(
        self,
        log_id: str,
        expected: LogStatus,
        new_status: LogStatus,
        feedback: Optional[str] = None,
        reviewed_by_user_id: Optional[str] = None,
    ) -> bool:
        """
        update site_logs set status = new where id = X and status = expected.

        Exactly one of two concurrent callers sees True.
        """
        values: Dict[str, Any] = {"status": new_status}
        if new_status in (LogStatus.APPROVED, LogStatus.REJECTED):
            values["engineer_feedback"] = feedback
            values["reviewed_by_user_id"] = reviewed_by_user_id
            values["reviewed_at"] = datetime.utcnow()
        with self._guard("update_site_log_status"):
            result = self.db.execute(
                update(SiteLog)
                .where(SiteLog.id == log_id, SiteLog.status == expected)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            return result.rowcount == 1

    # Safety reports
    def get_safety_reports(self) -> List[SafetyReportRecord]:
        with self._guard("get_safety_reports"):
            rows = self.db.query(SafetyReport).order_by(
                SafetyReport.created_at.desc(), SafetyReport.id.desc()
            ).all()
            return [SafetyReportRecord.model_validate(row) for row in rows]

    def create_safety_report(self, fields: Dict[str, Any]) -> SafetyReportRecord:
        with self._guard("create_safety_report"):
            report = SafetyReport(**fields)
            self.db.add(report)
            self.db.commit()
            self.db.refresh(report)
            return SafetyReportRecord.model_validate(report)

    # Form drafts
    def get_draft(self, user_id: str, form_kind: FormKind) -> Optional[Dict[str, Any]]:
        with self._guard("get_draft"):
            row = self.db.query(FormDraft).filter(
                FormDraft.user_id == user_id,
                FormDraft.form_kind == form_kind
            ).first()
            return dict(row.payload) if row else None

    def save_draft(self, user_id: str, form_kind: FormKind, payload: Dict[str, Any]) -> None:
        with self._guard("save_draft"):
            row = self.db.query(FormDraft).filter(
                FormDraft.user_id == user_id,
                FormDraft.form_kind == form_kind
            ).first()
            if row is None:
                row = FormDraft(user_id=user_id, form_kind=form_kind)
                self.db.add(row)
            row.payload = payload
            row.updated_at = datetime.utcnow()
            self.db.commit()

    def clear_draft(self, user_id: str, form_kind: FormKind) -> None:
        with self._guard("clear_draft"):
            self.db.query(FormDraft).filter(
                FormDraft.user_id == user_id,
                FormDraft.form_kind == form_kind
            ).delete(synchronize_session=False)
            self.db.commit()
