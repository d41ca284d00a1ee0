"""
Identity store - credentials and signed sessions.

Passwords are hashed with pbkdf2_sha256. Sessions are JWTs carrying the
identity id as subject; logout records the token id so the token stops
validating before it expires.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from buildstream.config import settings
from buildstream.models.identity import Credential, RevokedSession
from buildstream.models.records import SessionRecord
from buildstream.services.errors import DuplicateAccount, InvalidCredential
from buildstream.services.store import store_guard

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class IdentityStore:
    """Issues and validates sessions for stored credentials."""

    def __init__(self, db: Session, secret: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.db = db
        self.secret = secret or settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.ttl_seconds = ttl_seconds or settings.jwt_ttl_seconds

    def _guard(self, operation: str):
        return store_guard(self.db, operation)

    # Credentials
    def email_registered(self, email: str) -> bool:
        with self._guard("email_registered"):
            return self.db.query(Credential).filter(
                Credential.email == normalize_email(email)
            ).first() is not None

    def create_credential(self, email: str, password: str) -> str:
        """Store a hashed credential and return its identity id."""
        with self._guard("create_credential"):
            credential = Credential(
                email=normalize_email(email),
                password_hash=get_password_hash(password),
            )
            self.db.add(credential)
            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise DuplicateAccount(f"An account for {normalize_email(email)} already exists") from e
            self.db.refresh(credential)
            return credential.identity_id

    def delete_credential(self, identity_id: str) -> None:
        """Compensating cleanup for a registration whose profile never landed."""
        with self._guard("delete_credential"):
            self.db.query(Credential).filter(
                Credential.identity_id == identity_id
            ).delete(synchronize_session=False)
            self.db.commit()
        logger.warning("credential_deleted", identity_id=identity_id)

    def verify(self, email: str, password: str) -> str:
        """Return the identity id for a matching email/password, else raise InvalidCredential."""
        with self._guard("verify_credential"):
            credential = self.db.query(Credential).filter(
                Credential.email == normalize_email(email)
            ).first()
        if credential is None or not verify_password(password, credential.password_hash):
            raise InvalidCredential("Invalid email or password")
        return credential.identity_id

    # Sessions
    def issue_session(self, identity_id: str) -> SessionRecord:
        now = datetime.now(tz=timezone.utc)
        expires = now + timedelta(seconds=self.ttl_seconds)
        payload = {
            "sub": identity_id,
            "iat": int(now.timestamp()),
            "exp": int(expires.timestamp()),
            "jti": str(uuid.uuid4()),
        }
        token = jwt.encode(payload, self.secret, algorithm=self.algorithm)
        return SessionRecord(
            identity_id=identity_id,
            access_token=token,
            expires_at=expires.replace(tzinfo=None),
        )

    def _decode(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.InvalidTokenError:
            return None

    def validate_session(self, token: Optional[str]) -> Optional[str]:
        """Return the identity id of a live session, or None."""
        if not token:
            return None
        payload = self._decode(token)
        if payload is None or not payload.get("sub") or not payload.get("jti"):
            return None
        with self._guard("validate_session"):
            revoked = self.db.query(RevokedSession).filter(
                RevokedSession.jti == payload["jti"]
            ).first()
            if revoked is not None:
                return None
            credential = self.db.query(Credential).filter(
                Credential.identity_id == payload["sub"]
            ).first()
        if credential is None:
            return None
        return payload["sub"]

    def revoke_session(self, token: Optional[str]) -> None:
        """Log out. Unknown or already-invalid tokens are a no-op."""
        payload = self._decode(token) if token else None
        if payload is None or not payload.get("jti"):
            return
        with self._guard("revoke_session"):
            exists = self.db.query(RevokedSession).filter(
                RevokedSession.jti == payload["jti"]
            ).first()
            if exists is None:
                self.db.add(RevokedSession(
                    jti=payload["jti"],
                    identity_id=payload["sub"],
                    expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc).replace(tzinfo=None),
                ))
                self.db.commit()
        logger.info("session_revoked", identity_id=payload["sub"])
