"""
User lifecycle - account creation, status transitions and onboarding.

    PENDING → ACTIVE | REJECTED
    ACTIVE → SUSPENDED
    SUSPENDED → ACTIVE

REJECTED and DEACTIVATED have no outgoing transitions.
"""
from datetime import datetime
from typing import Iterable, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from buildstream.config import settings
from buildstream.models.audit import AuditEventType
from buildstream.models.enums import Capability, UserRole, UserStatus
from buildstream.models.records import SessionRecord, SiteRecord, UserRecord
from buildstream.services.audit import record_audit
from buildstream.services.errors import (
    AlreadyBootstrapped,
    BuildStreamError,
    DuplicateAccount,
    IllegalTransition,
    InvalidCredential,
    MissingSite,
    NotFound,
    ProfileMissing,
    WeakCredential,
    parse_enum,
)
from buildstream.services.guards import authorize
from buildstream.services.identity import IdentityStore, normalize_email
from buildstream.services.policy import initial_status_for
from buildstream.services.store import RecordStore

logger = structlog.get_logger(__name__)

ALLOWED_USER_TRANSITIONS = {
    UserStatus.PENDING: frozenset({UserStatus.ACTIVE, UserStatus.REJECTED}),
    UserStatus.ACTIVE: frozenset({UserStatus.SUSPENDED}),
    UserStatus.SUSPENDED: frozenset({UserStatus.ACTIVE}),
}

# Statuses that lock an account out of onboarding and the dashboard
REVOKED_STATUSES = frozenset({UserStatus.REJECTED, UserStatus.SUSPENDED, UserStatus.DEACTIVATED})

BOOTSTRAP_MARKER = "bootstrap"


def is_allowed_transition(current: UserStatus, new: UserStatus) -> bool:
    return new in ALLOWED_USER_TRANSITIONS.get(current, frozenset())


class UserLifecycle:
    """Enforces account rules against the identity and record stores."""

    def __init__(
        self,
        db: Session,
        auto_activate_roles: Optional[Iterable[str]] = None,
        min_password_length: Optional[int] = None,
    ):
        self.db = db
        self.store = RecordStore(db)
        self.identity = IdentityStore(db)
        self.auto_activate_roles = list(
            settings.auto_activate_roles if auto_activate_roles is None else auto_activate_roles
        )
        self.min_password_length = (
            settings.min_password_length if min_password_length is None else min_password_length
        )

    def _check_password(self, password: str) -> None:
        if len(password or "") < self.min_password_length:
            raise WeakCredential(
                f"Password must be at least {self.min_password_length} characters"
            )

    def _orphaned_identity(self, email: str, password: str) -> Optional[str]:
        """Identity id of a credential with no profile whose password matches, else None."""
        try:
            identity_id = self.identity.verify(email, password)
        except InvalidCredential:
            return None
        if self.store.get_user(identity_id) is not None:
            return None
        return identity_id

    def _create_account(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole,
        status: UserStatus,
        site_id: Optional[str] = None,
        onboarded: bool = False,
    ) -> UserRecord:
        """
        Create one credential and one profile, or neither.

        If the profile cannot be written the credential is deleted again. When
        that cleanup also failed, registering again with the same password
        finishes the profile for the existing credential.
        """
        if self.identity.email_registered(email):
            identity_id = self._orphaned_identity(email, password)
            if identity_id is None:
                raise DuplicateAccount(f"An account for {normalize_email(email)} already exists")
            logger.info("registration_resumed", identity_id=identity_id)
        else:
            identity_id = self.identity.create_credential(email, password)
        try:
            return self.store.create_profile(
                identity_id=identity_id,
                name=name.strip(),
                email=normalize_email(email),
                role=role,
                status=status,
                site_id=site_id,
                onboarded=onboarded,
            )
        except BuildStreamError:
            try:
                self.identity.delete_credential(identity_id)
            except BuildStreamError:
                logger.error("registration_cleanup_failed", identity_id=identity_id)
            raise

    def register(
        self,
        name: str,
        email: str,
        password: str,
        requested_role,
        site_id: Optional[str] = None,
    ) -> UserRecord:
        """
        Sign up a new account.

        Initial status comes from the auto-activate table: listed roles start
        ACTIVE, every other role starts PENDING until an administrator decides.
        """
        self._check_password(password)
        role = parse_enum(UserRole, requested_role, "role")
        if site_id and self.store.get_site(site_id) is None:
            raise MissingSite(f"Site {site_id} does not exist")

        status = initial_status_for(role, self.auto_activate_roles)
        profile = self._create_account(name, email, password, role, status, site_id=site_id)

        record_audit(
            self.db,
            event_type=AuditEventType.USER_REGISTERED,
            entity_type="User",
            entity_id=profile.id,
            user_id=profile.id,
            payload={"role": role.value, "status": status.value},
        )
        logger.info("user_registered", user_id=profile.id, role=role.value, status=status.value)
        return profile

    def authenticate(self, email: str, password: str) -> Tuple[SessionRecord, UserRecord]:
        """
        Validate credentials and load the matching profile.

        A valid identity without a profile row raises ProfileMissing, which the
        caller can recover from by retrying or signing out.
        """
        identity_id = self.identity.verify(email, password)
        if self.store.get_user(identity_id) is None:
            logger.warning("profile_missing", identity_id=identity_id)
            raise ProfileMissing("Signed in, but no profile exists for this account", identity_id=identity_id)

        self.store.touch_last_active(identity_id)
        session = self.identity.issue_session(identity_id)
        logger.info("user_authenticated", user_id=identity_id)
        return session, self.store.get_user(identity_id)

    def logout(self, token: Optional[str]) -> None:
        self.identity.revoke_session(token)

    def current_profile(self, token: Optional[str]) -> Optional[UserRecord]:
        """Profile behind a session token; None when there is no live session or no profile."""
        identity_id = self.identity.validate_session(token)
        if identity_id is None:
            return None
        return self.store.get_user(identity_id)

    def set_status(self, actor: UserRecord, user_id: str, new_status) -> UserRecord:
        """
        Administrator status change.

        Invariants:
        - Only transitions in ALLOWED_USER_TRANSITIONS succeed
        - The write is conditional on the status that was checked, so a
          concurrent change makes this call refuse instead of overwrite
        - Returns a fresh read of the whole profile
        """
        authorize(self.db, actor, Capability.MANAGE_USERS, "User", user_id)
        new_status = parse_enum(UserStatus, new_status, "status")

        target = self.store.get_user(user_id)
        if target is None:
            raise NotFound(f"User {user_id} not found")

        if not is_allowed_transition(target.status, new_status):
            self._refuse_transition(actor, target, new_status)

        if not self.store.update_user_status(user_id, target.status, new_status):
            fresh = self.store.get_user(user_id)
            self._refuse_transition(actor, fresh or target, new_status, concurrent=True)

        record_audit(
            self.db,
            event_type=AuditEventType.USER_STATUS_CHANGED,
            entity_type="User",
            entity_id=user_id,
            user_id=actor.id,
            payload={"from": target.status.value, "to": new_status.value},
        )
        logger.info(
            "user_status_changed",
            user_id=user_id,
            actor_id=actor.id,
            from_status=target.status.value,
            to_status=new_status.value,
        )
        return self.store.get_user(user_id)

    def _refuse_transition(self, actor, target: UserRecord, new_status: UserStatus, concurrent: bool = False):
        record_audit(
            self.db,
            event_type=AuditEventType.USER_TRANSITION_REFUSED,
            entity_type="User",
            entity_id=target.id,
            user_id=actor.id if actor else None,
            payload={
                "from": target.status.value,
                "to": new_status.value,
                "concurrent": concurrent,
            },
        )
        logger.warning(
            "user_transition_refused",
            user_id=target.id,
            from_status=target.status.value,
            to_status=new_status.value,
        )
        if concurrent:
            message = (
                f"User {target.id} changed status concurrently (now {target.status.value}); "
                f"refresh and retry"
            )
        else:
            message = f"Cannot move user from {target.status.value} to {new_status.value}"
        raise IllegalTransition(message, current_status=target.status.value, requested_status=new_status.value)

    def complete_onboarding(
        self,
        user_id: str,
        phone: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> UserRecord:
        """
        Fill profile details and stamp onboarding.

        A PENDING user whose role is auto-activated becomes ACTIVE; other
        PENDING users keep waiting for an administrator. Calling again with
        the same data changes nothing and does not error.
        """
        profile = self.store.get_user(user_id)
        if profile is None:
            raise ProfileMissing("No profile exists for this account", identity_id=user_id)
        if profile.status in REVOKED_STATUSES:
            raise IllegalTransition(
                f"Cannot onboard a {profile.status.value} account",
                current_status=profile.status.value,
            )

        changes = {}
        if phone is not None and phone != profile.phone:
            changes["phone"] = phone
        if avatar is not None and avatar != profile.avatar:
            changes["avatar"] = avatar
        if profile.onboarded_at is None:
            changes["onboarded_at"] = datetime.utcnow()
        if changes:
            self.store.update_profile(user_id, **changes)

        activated = False
        if (
            profile.status == UserStatus.PENDING
            and initial_status_for(profile.role, self.auto_activate_roles) == UserStatus.ACTIVE
        ):
            activated = self.store.update_user_status(user_id, UserStatus.PENDING, UserStatus.ACTIVE)

        if changes or activated:
            record_audit(
                self.db,
                event_type=AuditEventType.USER_ONBOARDED,
                entity_type="User",
                entity_id=user_id,
                user_id=user_id,
                payload={"fields": sorted(changes), "activated": activated},
            )
            logger.info("user_onboarded", user_id=user_id, activated=activated)
        return self.store.get_user(user_id)

    def bootstrap_required(self) -> bool:
        return self.store.count_users() == 0 and self.store.count_sites() == 0

    def bootstrap_system(
        self,
        site_name: str,
        site_location: str,
        admin_name: str,
        admin_email: str,
        admin_password: str,
        site_budget: float = 0,
    ) -> Tuple[SiteRecord, UserRecord]:
        """
        One-time initialization of an empty store: a first site and its
        SUPER_ADMIN, active and onboarded.

        The bootstrap marker is claimed before anything is written, so of two
        concurrent calls only one proceeds.
        """
        if not self.bootstrap_required():
            raise AlreadyBootstrapped("System already has users or sites")
        self._check_password(admin_password)
        if not self.store.claim_marker(BOOTSTRAP_MARKER):
            raise AlreadyBootstrapped("System bootstrap already in progress or complete")

        try:
            site = self.store.create_site(name=site_name, location=site_location, budget=site_budget)
            try:
                admin = self._create_account(
                    admin_name,
                    admin_email,
                    admin_password,
                    UserRole.SUPER_ADMIN,
                    UserStatus.ACTIVE,
                    site_id=site.id,
                    onboarded=True,
                )
            except BuildStreamError:
                self.store.delete_site(site.id)
                raise
        except BuildStreamError:
            self.store.release_marker(BOOTSTRAP_MARKER)
            raise

        record_audit(
            self.db,
            event_type=AuditEventType.SYSTEM_BOOTSTRAPPED,
            entity_type="Site",
            entity_id=site.id,
            user_id=admin.id,
            payload={"site_name": site.name, "admin_email": admin.email},
        )
        logger.info("system_bootstrapped", site_id=site.id, admin_id=admin.id)
        return site, admin
