"""Engine, session factory and the `get_db` request dependency."""
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from buildstream.config import settings


def engine_options(url: str, timeout: float) -> Dict[str, Any]:
    """
    Per-backend engine arguments. `timeout` bounds how long a store call
    waits: SQLite's busy timeout, or the Postgres pool checkout timeout.
    """
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": timeout}}
    return {
        "pool_pre_ping": True,  # Drop connections the server has closed
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": timeout,
    }


engine = create_engine(
    settings.sqlalchemy_database_url,
    **engine_options(settings.sqlalchemy_database_url, settings.store_timeout_seconds)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """One session per request, always closed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
