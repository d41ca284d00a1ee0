"""Request dependencies: bearer token, acting profile and capability checks."""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from buildstream.database import get_db
from buildstream.models.enums import Capability
from buildstream.models.records import UserRecord
from buildstream.services.guards import authorize
from buildstream.services.insights import InsightClient
from buildstream.services.session_controller import SessionController

bearer_scheme = HTTPBearer(auto_error=False)


def get_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    return credentials.credentials if credentials else None


def get_actor(
    token: Optional[str] = Depends(get_token),
    db: Session = Depends(get_db),
) -> UserRecord:
    """Profile of the caller; raises unless the session routes to the dashboard."""
    return SessionController(db).require_active(token)


def require_capability(capability: Capability):
    def dependency(
        actor: UserRecord = Depends(get_actor),
        db: Session = Depends(get_db),
    ) -> UserRecord:
        return authorize(db, actor, capability, "Endpoint")

    return dependency


def get_insight_client() -> InsightClient:
    return InsightClient()
