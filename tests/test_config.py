"""Tests for settings and engine configuration."""
from buildstream.config import DEFAULT_AUTO_ACTIVATE_ROLES, Settings
from buildstream.database import engine_options


class TestSettings:

    def test_postgres_scheme_rewritten(self):
        s = Settings(DATABASE_URL="postgres://u:p@db:5432/buildstream")
        assert s.sqlalchemy_database_url == "postgresql://u:p@db:5432/buildstream"

    def test_other_urls_untouched(self):
        s = Settings(DATABASE_URL="sqlite:///./local.db")
        assert s.sqlalchemy_database_url == "sqlite:///./local.db"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("MIN_PASSWORD_LENGTH", "10")
        monkeypatch.setenv("AUTO_ACTIVATE_ROLES", '["FOREMAN"]')
        s = Settings()
        assert s.min_password_length == 10
        assert s.auto_activate_roles == ["FOREMAN"]

    def test_default_auto_activate_table(self, monkeypatch):
        monkeypatch.delenv("AUTO_ACTIVATE_ROLES", raising=False)
        assert "FOREMAN" not in DEFAULT_AUTO_ACTIVATE_ROLES
        assert Settings().auto_activate_roles == DEFAULT_AUTO_ACTIVATE_ROLES


class TestEngineOptions:

    def test_sqlite_busy_timeout(self):
        options = engine_options("sqlite:///./x.db", 15)
        assert options["connect_args"] == {"check_same_thread": False, "timeout": 15}

    def test_postgres_pool_timeout(self):
        options = engine_options("postgresql://u:p@db/x", 7.5)
        assert options["pool_timeout"] == 7.5
        assert options["pool_pre_ping"] is True
