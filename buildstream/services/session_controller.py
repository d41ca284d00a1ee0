"""
Session/routing controller - decides which top-level screen a request lands on.

Routing is derived from (session, profile) on every call and never stored,
so a status change made by an administrator takes effect on the next request.
"""
from typing import FrozenSet, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from buildstream.models.enums import Capability, Screen, UserRole, UserStatus
from buildstream.models.records import UserRecord
from buildstream.services.errors import (
    AccountNotActive,
    NotAuthenticated,
    NotAuthorized,
    PersistenceFailure,
)
from buildstream.services.identity import IdentityStore
from buildstream.services.policy import can_impersonate, capabilities_for, primary_view
from buildstream.services.store import RecordStore
from buildstream.services.user_lifecycle import REVOKED_STATUSES

logger = structlog.get_logger(__name__)

SCREEN_ACTIONS = {
    Screen.UNAUTHENTICATED: ["sign-in", "sign-up"],
    Screen.AUTHENTICATED_NO_PROFILE: ["retry", "sign-out"],
    Screen.PENDING_APPROVAL: ["refresh", "sign-out"],
    Screen.REVOKED: ["sign-out"],
    Screen.ACTIVE_DASHBOARD: ["sign-out"],
}


class RouteDecision(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    screen: Screen = Screen.INITIALIZING
    profile: Optional[UserRecord] = None
    capabilities: List[Capability] = []
    view: Optional[Capability] = None
    actions: List[str] = []
    impersonating: Optional[UserRole] = None
    error: Optional[str] = None


def resolve_screen(has_session: bool, profile: Optional[UserRecord]) -> Screen:
    """Pure routing rule over session presence and the loaded profile."""
    if not has_session:
        return Screen.UNAUTHENTICATED
    if profile is None:
        return Screen.AUTHENTICATED_NO_PROFILE
    if profile.status == UserStatus.PENDING:
        return Screen.PENDING_APPROVAL
    if profile.status in REVOKED_STATUSES:
        return Screen.REVOKED
    if profile.status == UserStatus.ACTIVE:
        return Screen.ACTIVE_DASHBOARD
    return Screen.REVOKED


def _sorted(capabilities: FrozenSet[Capability]) -> List[Capability]:
    return [c for c in Capability if c in capabilities]


class SessionController:
    """Loads session and profile, then routes."""

    def __init__(self, db: Session):
        self.db = db
        self.identity = IdentityStore(db)
        self.store = RecordStore(db)

    def route(self, token: Optional[str], impersonate_role=None) -> RouteDecision:
        identity_id = self.identity.validate_session(token)
        if identity_id is None:
            return self._decision(Screen.UNAUTHENTICATED)

        try:
            profile = self.store.get_user(identity_id)
        except PersistenceFailure as e:
            logger.error("profile_fetch_failed", identity_id=identity_id, error=e.message)
            return self._decision(Screen.AUTHENTICATED_NO_PROFILE, error=e.message)

        screen = resolve_screen(True, profile)
        if screen != Screen.ACTIVE_DASHBOARD:
            error = "No profile exists for this account" if profile is None else None
            return self._decision(screen, profile=profile, error=error)

        role = profile.role
        impersonating = None
        if impersonate_role:
            if not can_impersonate(profile.role):
                raise NotAuthorized("Only administrators may preview another role's dashboard")
            try:
                impersonating = UserRole(impersonate_role)
            except ValueError:
                raise NotAuthorized(f"Unknown role {impersonate_role}")
            role = impersonating

        capabilities = capabilities_for(role)
        return self._decision(
            screen,
            profile=profile,
            capabilities=_sorted(capabilities),
            view=primary_view(role),
            impersonating=impersonating,
        )

    def _decision(self, screen: Screen, **fields) -> RouteDecision:
        return RouteDecision(screen=screen, actions=list(SCREEN_ACTIONS.get(screen, [])), **fields)

    def require_active(self, token: Optional[str]) -> UserRecord:
        """The acting profile for a request that needs the dashboard."""
        decision = self.route(token)
        if decision.screen == Screen.UNAUTHENTICATED:
            raise NotAuthenticated("Not authenticated")
        if decision.screen != Screen.ACTIVE_DASHBOARD:
            raise AccountNotActive(
                f"Account cannot act from the {decision.screen.value} screen",
                screen=decision.screen.value,
            )
        return decision.profile
