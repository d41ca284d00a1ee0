"""Tests for the session/routing controller."""
import pytest

from buildstream.models.enums import Capability, Screen, UserRole, UserStatus
from buildstream.models.records import UserRecord
from buildstream.services.errors import AccountNotActive, NotAuthenticated, NotAuthorized, PersistenceFailure
from buildstream.services.identity import IdentityStore
from buildstream.services.session_controller import SessionController, resolve_screen
from buildstream.services.store import RecordStore
from buildstream.services.user_lifecycle import UserLifecycle

PASSWORD = "hardhat42"


def _token(db_session, email):
    session, _ = UserLifecycle(db_session).authenticate(email, PASSWORD)
    return session.access_token


def _profile(status):
    return UserRecord(id="u1", name="Test", email="t@buildstream.io", role=UserRole.FOREMAN, status=status)


class TestResolveScreen:

    def test_no_session(self):
        assert resolve_screen(False, None) == Screen.UNAUTHENTICATED
        assert resolve_screen(False, _profile(UserStatus.ACTIVE)) == Screen.UNAUTHENTICATED

    def test_session_without_profile(self):
        assert resolve_screen(True, None) == Screen.AUTHENTICATED_NO_PROFILE

    @pytest.mark.parametrize("status,screen", [
        (UserStatus.PENDING, Screen.PENDING_APPROVAL),
        (UserStatus.REJECTED, Screen.REVOKED),
        (UserStatus.SUSPENDED, Screen.REVOKED),
        (UserStatus.DEACTIVATED, Screen.REVOKED),
        (UserStatus.ACTIVE, Screen.ACTIVE_DASHBOARD),
    ])
    def test_status_routes(self, status, screen):
        assert resolve_screen(True, _profile(status)) == screen


class TestSessionController:

    def test_missing_or_invalid_token(self, db_session):
        controller = SessionController(db_session)
        assert controller.route(None).screen == Screen.UNAUTHENTICATED
        assert controller.route("garbage").screen == Screen.UNAUTHENTICATED
        assert controller.route(None).actions == ["sign-in", "sign-up"]

    def test_active_user_gets_dashboard(self, db_session, foreman):
        decision = SessionController(db_session).route(_token(db_session, "foreman@buildstream.io"))
        assert decision.screen == Screen.ACTIVE_DASHBOARD
        assert decision.profile.id == foreman.id
        assert decision.view == Capability.SUBMIT_SITE_LOGS
        assert decision.capabilities == [Capability.SUBMIT_SITE_LOGS]

    def test_pending_user(self, db_session, make_user):
        make_user(UserRole.FOREMAN, status=UserStatus.PENDING, email="new@buildstream.io")
        decision = SessionController(db_session).route(_token(db_session, "new@buildstream.io"))
        assert decision.screen == Screen.PENDING_APPROVAL
        assert decision.capabilities == []

    def test_suspension_takes_effect_on_next_request(self, db_session, admin, foreman):
        """A session issued while ACTIVE routes to Revoked once the account is suspended."""
        token = _token(db_session, "foreman@buildstream.io")
        controller = SessionController(db_session)
        assert controller.route(token).screen == Screen.ACTIVE_DASHBOARD

        UserLifecycle(db_session).set_status(admin, foreman.id, UserStatus.SUSPENDED)

        decision = controller.route(token)
        assert decision.screen == Screen.REVOKED
        assert decision.actions == ["sign-out"]
        with pytest.raises(AccountNotActive):
            controller.require_active(token)

    def test_identity_without_profile(self, db_session):
        identity = IdentityStore(db_session)
        identity_id = identity.create_credential("orphan@buildstream.io", PASSWORD)
        token = identity.issue_session(identity_id).access_token

        decision = SessionController(db_session).route(token)
        assert decision.screen == Screen.AUTHENTICATED_NO_PROFILE
        assert decision.actions == ["retry", "sign-out"]
        assert decision.error

    def test_profile_fetch_failure_offers_retry(self, db_session, foreman, monkeypatch):
        token = _token(db_session, "foreman@buildstream.io")

        def fail(self, user_id):
            raise PersistenceFailure("Store failed during get_user")

        monkeypatch.setattr(RecordStore, "get_user", fail)
        decision = SessionController(db_session).route(token)
        assert decision.screen == Screen.AUTHENTICATED_NO_PROFILE
        assert decision.error == "Store failed during get_user"

    def test_logged_out_token_is_unauthenticated(self, db_session, foreman):
        token = _token(db_session, "foreman@buildstream.io")
        UserLifecycle(db_session).logout(token)
        with pytest.raises(NotAuthenticated):
            SessionController(db_session).require_active(token)

    def test_admin_may_preview_other_role(self, db_session, admin):
        decision = SessionController(db_session).route(
            _token(db_session, "admin@buildstream.io"), impersonate_role="FOREMAN"
        )
        assert decision.impersonating == UserRole.FOREMAN
        assert decision.view == Capability.SUBMIT_SITE_LOGS
        assert decision.profile.role == UserRole.SUPER_ADMIN

    def test_non_admin_cannot_preview(self, db_session, engineer):
        with pytest.raises(NotAuthorized):
            SessionController(db_session).route(
                _token(db_session, "engineer@buildstream.io"), impersonate_role="SUPER_ADMIN"
            )

    def test_preview_of_unknown_role(self, db_session, admin):
        with pytest.raises(NotAuthorized):
            SessionController(db_session).route(_token(db_session, "admin@buildstream.io"), impersonate_role="CEO")
