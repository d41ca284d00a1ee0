"""Pytest configuration and shared fixtures."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from buildstream.database import Base, get_db
from buildstream.main import app
# Import models to register them with SQLAlchemy Base
from buildstream.models import audit, domain, identity  # noqa: F401
from buildstream.models.enums import UserRole, UserStatus
from buildstream.services.store import RecordStore
from buildstream.services.user_lifecycle import UserLifecycle

PASSWORD = "hardhat42"


@pytest.fixture
def engine():
    """Fresh in-memory database per test; every session shares one connection."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def site(db_session):
    return RecordStore(db_session).create_site(
        name="Skyline Towers",
        location="Downtown Metro",
        progress=65,
        budget=12_500_000,
        spent=8_200_000,
    )


@pytest.fixture
def make_user(db_session, site):
    """Register a user through the lifecycle, then force the wanted status."""
    store = RecordStore(db_session)
    counter = {"n": 0}

    def _make(role, status=UserStatus.ACTIVE, name=None, email=None):
        counter["n"] += 1
        role = UserRole(role)
        profile = UserLifecycle(db_session).register(
            name=name or f"{role.value.title()} {counter['n']}",
            email=email or f"{role.value.lower()}{counter['n']}@buildstream.io",
            password=PASSWORD,
            requested_role=role,
            site_id=site.id,
        )
        if profile.status != status:
            store.update_profile(profile.id, status=status)
            profile = store.get_user(profile.id)
        return profile

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.SUPER_ADMIN, name="Ada Admin", email="admin@buildstream.io")


@pytest.fixture
def foreman(make_user):
    return make_user(UserRole.FOREMAN, name="Frank Foreman", email="foreman@buildstream.io")


@pytest.fixture
def engineer(make_user):
    return make_user(UserRole.SITE_ENGINEER, name="Erin Engineer", email="engineer@buildstream.io")


@pytest.fixture
def safety_officer(make_user):
    return make_user(UserRole.SAFETY_OFFICER, name="Sam Safety", email="safety@buildstream.io")


@pytest.fixture
def project_manager(make_user):
    return make_user(UserRole.PROJECT_MANAGER, name="Pat Manager", email="pm@buildstream.io")


@pytest.fixture
def client(session_factory):
    """API client bound to the test database."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Return bearer headers for an existing account."""
    def _login(email, password=PASSWORD):
        r = client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['session']['accessToken']}"}

    return _login
