"""API routes for the BuildStream site workflow."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.orm import Session

from buildstream.api.deps import get_actor, get_insight_client, get_token, require_capability
from buildstream.api.schemas import (
    BootstrapRequest,
    BootstrapResponse,
    BootstrapStatus,
    ErrorResponse,
    FormDraftBody,
    FormDraftResponse,
    InsightResponse,
    LoginRequest,
    LoginResponse,
    OnboardingRequest,
    ReviewRequest,
    SafetyReportCreate,
    SignupRequest,
    SiteCreate,
    SiteLogCreate,
    SiteLogDraftUpdate,
    StatusUpdate,
)
from buildstream.database import get_db
from buildstream.models.enums import Capability, FormKind
from buildstream.models.records import SafetyReportRecord, SiteLogRecord, SiteRecord, UserRecord
from buildstream.services.analytics import (
    ExecutiveSummary,
    PortfolioSummary,
    executive_summary,
    portfolio_summary,
)
from buildstream.services.errors import NotAuthenticated, NotFound
from buildstream.services.identity import IdentityStore
from buildstream.services.insights import InsightClient
from buildstream.services.safety_intake import SafetyIntake
from buildstream.services.session_controller import RouteDecision, SessionController
from buildstream.services.site_log_workflow import SiteLogWorkflow
from buildstream.services.sites import SiteDirectory
from buildstream.services.store import RecordStore
from buildstream.services.user_lifecycle import UserLifecycle

router = APIRouter()

REFUSALS = {
    403: {"model": ErrorResponse, "description": "Refusal - capability or account status"},
    409: {"model": ErrorResponse, "description": "Refusal - illegal transition"},
}

# Logs handed to the insight model, newest first
INSIGHT_LOG_LIMIT = 20


# Auth endpoints
@router.post("/auth/signup", response_model=UserRecord, status_code=status.HTTP_201_CREATED)
def signup(data: SignupRequest, db: Session = Depends(get_db)):
    """Create a credential and profile. Status depends on the requested role."""
    return UserLifecycle(db).register(
        name=data.name,
        email=data.email,
        password=data.password,
        requested_role=data.role,
        site_id=data.site_id,
    )


@router.post("/auth/login", response_model=LoginResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    session, profile = UserLifecycle(db).authenticate(data.email, data.password)
    return LoginResponse(session=session, profile=profile)


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(token: Optional[str] = Depends(get_token), db: Session = Depends(get_db)):
    UserLifecycle(db).logout(token)


@router.get("/auth/session", response_model=RouteDecision, responses=REFUSALS)
def get_session(
    token: Optional[str] = Depends(get_token),
    x_impersonate_role: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """
    Decide the top-level screen for the caller.
    Administrators may pass X-Impersonate-Role to preview another role's view.
    """
    return SessionController(db).route(token, impersonate_role=x_impersonate_role)


# Bootstrap endpoints
@router.get("/bootstrap", response_model=BootstrapStatus)
def get_bootstrap_status(db: Session = Depends(get_db)):
    return BootstrapStatus(required=UserLifecycle(db).bootstrap_required())


@router.post("/bootstrap", response_model=BootstrapResponse, status_code=status.HTTP_201_CREATED)
def bootstrap(data: BootstrapRequest, db: Session = Depends(get_db)):
    """One-time setup of the first site and its super administrator."""
    site, admin = UserLifecycle(db).bootstrap_system(
        site_name=data.site_name,
        site_location=data.site_location,
        admin_name=data.admin_name,
        admin_email=data.admin_email,
        admin_password=data.admin_password,
        site_budget=data.site_budget,
    )
    return BootstrapResponse(site=site, admin=admin)


# User endpoints
@router.get("/users", response_model=List[UserRecord])
def list_users(
    actor: UserRecord = Depends(require_capability(Capability.MANAGE_USERS)),
    db: Session = Depends(get_db),
):
    return RecordStore(db).get_users()


@router.put("/users/me/onboarding", response_model=UserRecord)
def complete_onboarding(
    data: OnboardingRequest,
    token: Optional[str] = Depends(get_token),
    db: Session = Depends(get_db),
):
    """
    Onboarding is open to PENDING accounts, so it only needs a live session,
    not the dashboard.
    """
    identity_id = IdentityStore(db).validate_session(token)
    if identity_id is None:
        raise NotAuthenticated("Not authenticated")
    return UserLifecycle(db).complete_onboarding(identity_id, phone=data.phone, avatar=data.avatar)


@router.put("/users/{user_id}/status", response_model=UserRecord, responses=REFUSALS)
def update_user_status(
    user_id: str,
    data: StatusUpdate,
    actor: UserRecord = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """
    Approve, reject, suspend or reinstate an account.

    WILL REFUSE if the transition is not PENDING->ACTIVE|REJECTED,
    ACTIVE->SUSPENDED or SUSPENDED->ACTIVE.
    """
    return UserLifecycle(db).set_status(actor, user_id, data.status)


# Site endpoints
@router.get("/sites", response_model=List[SiteRecord])
def list_sites(db: Session = Depends(get_db)):
    """Public: the sign-up form offers these as assignment choices."""
    return SiteDirectory(db).list_sites()


@router.post("/sites", response_model=SiteRecord, status_code=status.HTTP_201_CREATED, responses=REFUSALS)
def create_site(data: SiteCreate, actor: UserRecord = Depends(get_actor), db: Session = Depends(get_db)):
    return SiteDirectory(db).create(
        actor,
        name=data.name,
        location=data.location,
        progress=data.progress,
        budget=data.budget,
        spent=data.spent,
    )


# Site log endpoints
@router.get("/site-logs", response_model=List[SiteLogRecord])
def list_site_logs(actor: UserRecord = Depends(get_actor), db: Session = Depends(get_db)):
    """All site logs, newest first."""
    return SiteLogWorkflow(db).list_logs()


@router.post("/site-logs", response_model=SiteLogRecord, status_code=status.HTTP_201_CREATED, responses=REFUSALS)
def create_site_log(data: SiteLogCreate, actor: UserRecord = Depends(get_actor), db: Session = Depends(get_db)):
    """Create a site log as DRAFT, or SUBMITTED to go straight to review."""
    return SiteLogWorkflow(db).create(
        actor,
        site_id=data.site_id,
        shift=data.shift,
        block_name=data.block_name,
        foreman_name=data.foreman_name,
        workers_count=data.workers_count,
        work_completed=data.work_completed,
        material_usage=[m.model_dump() for m in data.material_usage],
        equipment_usage=[e.model_dump() for e in data.equipment_usage],
        incidents=data.incidents,
        photos=data.photos,
        status=data.status,
        log_date=data.date,
    )


@router.get("/site-logs/review-queue", response_model=List[SiteLogRecord], responses=REFUSALS)
def get_review_queue(actor: UserRecord = Depends(get_actor), db: Session = Depends(get_db)):
    return SiteLogWorkflow(db).review_queue(actor)


@router.get("/site-logs/{log_id}", response_model=SiteLogRecord)
def get_site_log(log_id: str, actor: UserRecord = Depends(get_actor), db: Session = Depends(get_db)):
    log = RecordStore(db).get_site_log(log_id)
    if log is None:
        raise NotFound(f"Site log {log_id} not found")
    return log


@router.put("/site-logs/{log_id}", response_model=SiteLogRecord, responses=REFUSALS)
def save_site_log_draft(
    log_id: str,
    data: SiteLogDraftUpdate,
    actor: UserRecord = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Rewrite fields of a DRAFT log without moving it."""
    return SiteLogWorkflow(db).save_draft(actor, log_id, data.model_dump(exclude_unset=True))


@router.post("/site-logs/{log_id}/submit", response_model=SiteLogRecord, responses=REFUSALS)
def submit_site_log(log_id: str, actor: UserRecord = Depends(get_actor), db: Session = Depends(get_db)):
    return SiteLogWorkflow(db).submit(actor, log_id)


@router.post("/site-logs/{log_id}/review", response_model=SiteLogRecord, responses=REFUSALS)
def review_site_log(
    log_id: str,
    data: ReviewRequest,
    actor: UserRecord = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """
    Approve or reject a SUBMITTED log.

    WILL REFUSE if:
    - Caller does not hold review-site-logs
    - Log is not SUBMITTED (already decided, or still a draft)
    """
    return SiteLogWorkflow(db).review(actor, log_id, data.decision, feedback=data.feedback)


# Safety report endpoints
@router.get("/safety-reports", response_model=List[SafetyReportRecord])
def list_safety_reports(actor: UserRecord = Depends(get_actor), db: Session = Depends(get_db)):
    return SafetyIntake(db).list_reports()


@router.post("/safety-reports", response_model=SafetyReportRecord, status_code=status.HTTP_201_CREATED, responses=REFUSALS)
def create_safety_report(data: SafetyReportCreate, actor: UserRecord = Depends(get_actor), db: Session = Depends(get_db)):
    return SafetyIntake(db).create(
        actor,
        site_id=data.site_id,
        hazard_level=data.hazard_level,
        ppe_compliance=data.ppe_compliance,
        observations=data.observations,
        action_required=data.action_required,
        photos=data.photos,
        report_date=data.date,
    )


# Draft cache endpoints
@router.get("/drafts/{form_kind}", response_model=FormDraftResponse)
def get_form_draft(form_kind: FormKind, actor: UserRecord = Depends(get_actor), db: Session = Depends(get_db)):
    return FormDraftResponse(form_kind=form_kind, payload=RecordStore(db).get_draft(actor.id, form_kind))


@router.put("/drafts/{form_kind}", response_model=FormDraftResponse)
def save_form_draft(
    form_kind: FormKind,
    data: FormDraftBody,
    actor: UserRecord = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Cache in-progress form input. Never affects a record's status."""
    store = RecordStore(db)
    store.save_draft(actor.id, form_kind, data.payload)
    return FormDraftResponse(form_kind=form_kind, payload=store.get_draft(actor.id, form_kind))


@router.delete("/drafts/{form_kind}", status_code=status.HTTP_204_NO_CONTENT)
def clear_form_draft(form_kind: FormKind, actor: UserRecord = Depends(get_actor), db: Session = Depends(get_db)):
    RecordStore(db).clear_draft(actor.id, form_kind)


# Analytics endpoints
@router.get("/analytics/portfolio", response_model=PortfolioSummary, responses=REFUSALS)
def get_portfolio(
    actor: UserRecord = Depends(require_capability(Capability.VIEW_PORTFOLIO_ANALYTICS)),
    db: Session = Depends(get_db),
):
    """
    Aggregate KPIs across sites, logs and safety reports.
    Simple, deterministic aggregation with no predictions.
    """
    store = RecordStore(db)
    return portfolio_summary(store.get_sites(), store.get_site_logs(), store.get_safety_reports())


@router.get("/analytics/executive", response_model=ExecutiveSummary, responses=REFUSALS)
def get_executive_summary(
    actor: UserRecord = Depends(require_capability(Capability.VIEW_EXECUTIVE_SUMMARY)),
    db: Session = Depends(get_db),
):
    return executive_summary(RecordStore(db).get_sites())


@router.get("/analytics/insight", response_model=InsightResponse, responses=REFUSALS)
def get_insight(
    actor: UserRecord = Depends(require_capability(Capability.VIEW_PORTFOLIO_ANALYTICS)),
    client: InsightClient = Depends(get_insight_client),
    db: Session = Depends(get_db),
):
    """Narrative summary of recent logs. Falls back to a fixed message, never errors."""
    logs = RecordStore(db).get_site_logs()[:INSIGHT_LOG_LIMIT]
    return InsightResponse(summary=client.summarize(logs), log_count=len(logs))
