"""
Typed errors raised by the workflow core.

Refusals (IllegalTransition, NotReviewable, NotAuthorized) are the system
working correctly. They are audited and raised, never swallowed.
"""


class BuildStreamError(Exception):
    """Base class. status_code is the HTTP status the API layer responds with."""
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class DuplicateAccount(BuildStreamError):
    status_code = 409


class WeakCredential(BuildStreamError):
    status_code = 422


class InvalidCredential(BuildStreamError):
    status_code = 401


class ProfileMissing(BuildStreamError):
    """An authenticated identity has no profile row. Recoverable by retry."""
    status_code = 409

    def __init__(self, message: str, identity_id: str = None):
        self.identity_id = identity_id
        super().__init__(message)


class IllegalTransition(BuildStreamError):
    status_code = 409

    def __init__(self, message: str, current_status: str = None, requested_status: str = None):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(message)


class NotReviewable(BuildStreamError):
    status_code = 409

    def __init__(self, message: str, current_status: str = None):
        self.current_status = current_status
        super().__init__(message)


class MissingSite(BuildStreamError):
    status_code = 422


class NotAuthorized(BuildStreamError):
    status_code = 403


class NotAuthenticated(BuildStreamError):
    status_code = 401


class AccountNotActive(BuildStreamError):
    """The session is valid but the profile does not route to the dashboard."""
    status_code = 403

    def __init__(self, message: str, screen: str = None):
        self.screen = screen
        super().__init__(message)


class NotFound(BuildStreamError):
    status_code = 404


class AlreadyBootstrapped(BuildStreamError):
    status_code = 409


class PersistenceFailure(BuildStreamError):
    status_code = 503


class StoreTimeout(PersistenceFailure):
    status_code = 504


class InvalidValue(BuildStreamError, ValueError):
    """A caller-supplied value the domain cannot accept."""
    status_code = 422


def parse_enum(enum_cls, value, field: str):
    """Coerce `value` into `enum_cls`, raising InvalidValue for anything else."""
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidValue(f"Invalid {field}: {value!r}") from None
