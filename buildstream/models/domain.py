"""Record store tables - sites, user profiles, site logs, safety reports, form drafts and system markers."""
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from buildstream.database import Base
from buildstream.models.enums import (
    FormKind,
    HazardLevel,
    LogStatus,
    Shift,
    UserRole,
    UserStatus,
)


def _new_id() -> str:
    return str(uuid.uuid4())


class Site(Base):
    """
    A managed construction project location.

    Invariants enforced here:
    - progress is within 0..100
    - budget and spent are non-negative
    """
    __tablename__ = "sites"
    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_sites_progress"),
        CheckConstraint("budget >= 0", name="ck_sites_budget"),
        CheckConstraint("spent >= 0", name="ck_sites_spent"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    location = Column(String, nullable=False, default="")
    progress = Column(Integer, nullable=False, default=0)
    budget = Column(Float, nullable=False, default=0)
    spent = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    site_logs = relationship("SiteLog", back_populates="site")
    safety_reports = relationship("SafetyReport", back_populates="site")


class User(Base):
    """
    A staff profile. The id is the identity id issued by the identity store,
    which makes profile creation idempotent per identity.

    Invariants:
    - exactly one role
    - email is unique (stored lower-cased)
    - never hard-deleted; suspension is the deletion-equivalent
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    phone = Column(String, nullable=True)
    role = Column(SQLEnum(UserRole), nullable=False)
    site_id = Column(String(36), ForeignKey("sites.id"), nullable=True)
    status = Column(SQLEnum(UserStatus), nullable=False, default=UserStatus.PENDING)
    last_active = Column(DateTime, nullable=True)  # Null until first login
    avatar = Column(String, nullable=True)
    onboarded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class SiteLog(Base):
    """
    A single shift's field report: DRAFT → SUBMITTED → APPROVED/REJECTED.

    Invariants:
    - status only moves forward through the sequence above
    - status and engineer_feedback change only through conditional updates
    """
    __tablename__ = "site_logs"
    __table_args__ = (
        CheckConstraint("workers_count >= 0", name="ck_site_logs_workers_count"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    date = Column(String(10), nullable=False)  # ISO date of the shift
    shift = Column(SQLEnum(Shift), nullable=False, default=Shift.DAY)
    site_id = Column(String(36), ForeignKey("sites.id"), nullable=False, index=True)
    block_name = Column(String, nullable=False, default="")
    foreman_name = Column(String, nullable=False)
    status = Column(SQLEnum(LogStatus), nullable=False, default=LogStatus.DRAFT, index=True)
    workers_count = Column(Integer, nullable=False, default=0)
    work_completed = Column(String, nullable=False, default="")
    material_usage = Column(JSON, nullable=False, default=list)  # [{item, quantity, unit}]
    equipment_usage = Column(JSON, nullable=False, default=list)  # [{item, hours}]
    incidents = Column(String, nullable=False, default="")
    photos = Column(JSON, nullable=False, default=list)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    engineer_feedback = Column(String, nullable=True)

    submitted_by_user_id = Column(String(36), nullable=True)
    reviewed_by_user_id = Column(String(36), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    site = relationship("Site", back_populates="site_logs")


class SafetyReport(Base):
    """
    Point-in-time hazard observation. Append-only: no status, never updated.
    """
    __tablename__ = "safety_reports"

    id = Column(String(36), primary_key=True, default=_new_id)
    date = Column(String(10), nullable=False)
    site_id = Column(String(36), ForeignKey("sites.id"), nullable=False, index=True)
    hazard_level = Column(SQLEnum(HazardLevel), nullable=False)
    ppe_compliance = Column(Boolean, nullable=False, default=True)
    observations = Column(String, nullable=False, default="")
    action_required = Column(String, nullable=False, default="")
    photos = Column(JSON, nullable=False, default=list)
    reported_by_user_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    site = relationship("Site", back_populates="safety_reports")


class FormDraft(Base):
    """
    In-progress form input cached per (user, form kind).

    Never authoritative for workflow status; cleared on successful submission.
    """
    __tablename__ = "form_drafts"
    __table_args__ = (
        UniqueConstraint("user_id", "form_kind", name="uq_form_drafts_user_kind"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    form_kind = Column(SQLEnum(FormKind), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class SystemMarker(Base):
    """
    One-time system events. The primary key makes claiming a marker atomic:
    of two concurrent inserts for the same name, exactly one commits.
    """
    __tablename__ = "system_markers"

    name = Column(String(64), primary_key=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
