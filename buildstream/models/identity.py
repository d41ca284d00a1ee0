"""
Identity store tables - credentials and revoked sessions.

Kept apart from the record store: profiles reference a credential only by
its identity id, and nothing outside the identity store reads password hashes.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String

from buildstream.database import Base


class Credential(Base):
    __tablename__ = "credentials"

    identity_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class RevokedSession(Base):
    """Session tokens invalidated by logout, keyed by token id (jti)."""
    __tablename__ = "revoked_sessions"

    jti = Column(String(36), primary_key=True)
    identity_id = Column(String(36), nullable=False, index=True)
    revoked_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)
