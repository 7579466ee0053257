"""
Database models for authentication.

This module defines the SQLAlchemy model backing the credential store.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Index, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UserRecord(Base):  # type: ignore[valid-type, misc]
    """Persisted user identity and its MFA state."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default="user")

    # Latest issued refresh token (SHA-256 hex)
    refresh_token_hash = Column(String(64), nullable=True)

    # MFA settings
    mfa_enabled = Column(Boolean, nullable=False, default=True)
    mfa_method = Column(String(16), nullable=False, default="email")
    totp_secret = Column(String(64), nullable=True)

    # Live one-time code; both columns are written in the same statement
    otp = Column(String(10), nullable=True)
    otp_expires = Column(DateTime, nullable=True)

    # Timestamps (naive UTC)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (Index("idx_users_email", "email"),)

    def __repr__(self) -> str:
        return f"<UserRecord(id={self.id}, email={self.email})>"
