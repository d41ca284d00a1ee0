"""
Authorization policy - pure mapping from role to capabilities.

Grants are whitelists: a role absent from a capability's grant list is denied.
Anything that is not a recognized role fails closed to no capabilities.
"""
from typing import FrozenSet, Iterable, Optional

from buildstream.models.enums import Capability, UserRole, UserStatus
from buildstream.services.errors import NotAuthorized

# Roles that implicitly hold every capability
FULL_ACCESS_ROLES = frozenset({UserRole.SUPER_ADMIN, UserRole.ADMIN})

CAPABILITY_GRANTS = {
    Capability.MANAGE_USERS: frozenset({
        UserRole.ADMIN_MANAGER,
    }),
    Capability.VIEW_PORTFOLIO_ANALYTICS: frozenset({
        UserRole.ADMIN_MANAGER,
        UserRole.SITE_ENGINEER,
        UserRole.ARCHITECT,
        UserRole.PROJECT_MANAGER,
        UserRole.CONSTRUCTION_MANAGER,
    }),
    Capability.REVIEW_SITE_LOGS: frozenset({
        UserRole.SITE_SUPERVISOR,
        UserRole.SITE_ENGINEER,
        UserRole.ARCHITECT,
    }),
    Capability.SUBMIT_SITE_LOGS: frozenset({
        UserRole.FOREMAN,
        UserRole.SITE_SUPERVISOR,
    }),
    Capability.SUBMIT_SAFETY_REPORTS: frozenset({
        UserRole.SAFETY_OFFICER,
        UserRole.SITE_SUPERVISOR,
    }),
    Capability.VIEW_EXECUTIVE_SUMMARY: frozenset({
        UserRole.PROJECT_MANAGER,
        UserRole.CONSTRUCTION_MANAGER,
        UserRole.EXECUTIVE,
    }),
}

# Order in which a role's capabilities are offered as its landing view
VIEW_PRIORITY = (
    Capability.MANAGE_USERS,
    Capability.REVIEW_SITE_LOGS,
    Capability.SUBMIT_SITE_LOGS,
    Capability.SUBMIT_SAFETY_REPORTS,
    Capability.VIEW_PORTFOLIO_ANALYTICS,
    Capability.VIEW_EXECUTIVE_SUMMARY,
)


def _coerce_role(role) -> Optional[UserRole]:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except (ValueError, TypeError):
        return None


def capabilities_for(role) -> FrozenSet[Capability]:
    """Return the capabilities granted to a role; empty for anything unrecognized."""
    role = _coerce_role(role)
    if role is None:
        return frozenset()
    if role in FULL_ACCESS_ROLES:
        return frozenset(Capability)
    return frozenset(
        capability
        for capability, roles in CAPABILITY_GRANTS.items()
        if role in roles
    )


def has_capability(role, capability: Capability) -> bool:
    return capability in capabilities_for(role)


def require_capability(profile, capability: Capability) -> None:
    """
    Raise NotAuthorized unless an ACTIVE profile's role grants the capability.

    Pending, rejected and suspended accounts hold nothing, whatever their role.
    """
    if profile is None or profile.status != UserStatus.ACTIVE:
        raise NotAuthorized(f"An active account is required for {capability.value}")
    if not has_capability(profile.role, capability):
        raise NotAuthorized(f"Role {profile.role.value} is not granted {capability.value}")


def primary_view(role) -> Optional[Capability]:
    """The capability whose view a role lands on, or None for no access."""
    granted = capabilities_for(role)
    for capability in VIEW_PRIORITY:
        if capability in granted:
            return capability
    return None


def can_impersonate(role) -> bool:
    """Only roles holding every capability may preview another role's dashboard."""
    return _coerce_role(role) in FULL_ACCESS_ROLES


def initial_status_for(role, auto_activate_roles: Iterable[str]) -> UserStatus:
    """
    Status a new account starts in.

    Roles listed in the auto-activate table skip admin approval; every other
    role, including unrecognized ones, waits in PENDING.
    """
    role = _coerce_role(role)
    allowed = {_coerce_role(r) for r in auto_activate_roles}
    if role is not None and role in allowed:
        return UserStatus.ACTIVE
    return UserStatus.PENDING
