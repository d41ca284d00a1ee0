"""Enums for BuildStream - these define the valid values for roles, states and levels."""
from enum import Enum


class UserRole(str, Enum):
    """Staff roles. Exactly one per user; capabilities derive from it."""
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    ADMIN_MANAGER = "ADMIN_MANAGER"
    FOREMAN = "FOREMAN"
    SAFETY_OFFICER = "SAFETY_OFFICER"
    SITE_SUPERVISOR = "SITE_SUPERVISOR"
    SITE_ENGINEER = "SITE_ENGINEER"
    ARCHITECT = "ARCHITECT"
    PROJECT_MANAGER = "PROJECT_MANAGER"
    CONSTRUCTION_MANAGER = "CONSTRUCTION_MANAGER"
    EXECUTIVE = "EXECUTIVE"


class UserStatus(str, Enum):
    """Account status. Transitions are governed by the user lifecycle."""
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"
    DEACTIVATED = "DEACTIVATED"


class LogStatus(str, Enum):
    """Site log status. FINALIZED is representable but no transition reaches it."""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    FINALIZED = "FINALIZED"


class Shift(str, Enum):
    DAY = "Day"
    NIGHT = "Night"


class HazardLevel(str, Enum):
    """Ordinal hazard classification for safety reports."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return list(HazardLevel).index(self)


class Capability(str, Enum):
    """Dashboard capabilities granted by the authorization policy."""
    MANAGE_USERS = "manage-users"
    VIEW_PORTFOLIO_ANALYTICS = "view-portfolio-analytics"
    REVIEW_SITE_LOGS = "review-site-logs"
    SUBMIT_SITE_LOGS = "submit-site-logs"
    SUBMIT_SAFETY_REPORTS = "submit-safety-reports"
    VIEW_EXECUTIVE_SUMMARY = "view-executive-summary"


class Screen(str, Enum):
    """Top-level screens chosen by the session/routing controller."""
    INITIALIZING = "Initializing"
    UNAUTHENTICATED = "Unauthenticated"
    AUTHENTICATED_NO_PROFILE = "AuthenticatedNoProfile"
    PENDING_APPROVAL = "PendingApproval"
    REVOKED = "Revoked"
    ACTIVE_DASHBOARD = "ActiveDashboard"


class FormKind(str, Enum):
    """Forms whose in-progress input may be cached per user."""
    SITE_LOG = "site-log"
    SAFETY_REPORT = "safety-report"
