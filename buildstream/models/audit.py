"""
Audit trail table. Written by services/audit.py, never served by the API.

Every account change, site log transition, safety report and refusal
leaves one row here.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON
from buildstream.database import Base


class AuditEvent(Base):
    """
    Immutable audit event for reconstructing who did what to which entity.

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    - Records all mutations and refusals
    """
    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_type = Column(String, nullable=False, index=True)  # e.g., "site_log_review_refused"
    entity_type = Column(String, nullable=False)  # e.g., "SiteLog", "User"
    entity_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)  # Nullable for system events
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    payload_json = Column(JSON, nullable=True)  # Minimal contextual data


class AuditEventType:
    """Enumeration of audit event types."""
    # User lifecycle
    USER_REGISTERED = "user_registered"
    USER_STATUS_CHANGED = "user_status_changed"
    USER_ONBOARDED = "user_onboarded"
    SYSTEM_BOOTSTRAPPED = "system_bootstrapped"

    # Site log lifecycle
    SITE_LOG_CREATED = "site_log_created"
    SITE_LOG_DRAFT_SAVED = "site_log_draft_saved"
    SITE_LOG_SUBMITTED = "site_log_submitted"
    SITE_LOG_REVIEWED = "site_log_reviewed"

    # Safety intake
    SAFETY_REPORT_CREATED = "safety_report_created"

    # Site administration
    SITE_CREATED = "site_created"

    # Refusal events
    USER_TRANSITION_REFUSED = "user_transition_refused"
    SITE_LOG_TRANSITION_REFUSED = "site_log_transition_refused"
    SITE_LOG_REVIEW_REFUSED = "site_log_review_refused"
    CAPABILITY_REFUSED = "capability_refused"
