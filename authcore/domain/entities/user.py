"""
User Entity - Identity record driving the authentication state machine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4


class MfaMethod(Enum):
    """Second factor delivery method"""

    EMAIL = "email"
    TOTP = "totp"

    @classmethod
    def parse(cls, value: str | MfaMethod | None) -> MfaMethod | None:
        """Return the matching method, or None for unknown values."""
        if isinstance(value, MfaMethod):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup."""
    return email.strip().lower()


@dataclass
class User:
    """
    Durable user identity.

    OTP fields are always written together: either both ``otp`` and
    ``otp_expires`` are set or neither is.
    """

    email: str
    password_hash: str
    id: str = field(default_factory=lambda: str(uuid4()))
    role: str = "user"
    refresh_token_hash: str | None = None
    mfa_enabled: bool = True
    mfa_method: MfaMethod = MfaMethod.EMAIL
    totp_secret: str | None = None
    otp: str | None = None
    otp_expires: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        self.email = normalize_email(self.email)
        if (self.otp is None) != (self.otp_expires is None):
            raise ValueError("otp and otp_expires must be set together")

    @property
    def has_pending_otp(self) -> bool:
        return self.otp is not None and self.otp_expires is not None

    @property
    def totp_setup_required(self) -> bool:
        return self.mfa_method is MfaMethod.TOTP and not self.totp_secret

    def otp_expired(self, now: datetime) -> bool:
        """True once ``now`` is past the stored expiry."""
        if self.otp_expires is None:
            return True
        return now > self.otp_expires

    def __repr__(self) -> str:
        # Keep hashes and codes out of logs
        return (
            f"User(id={self.id!r}, email={self.email!r}, role={self.role!r}, "
            f"mfa_enabled={self.mfa_enabled}, mfa_method={self.mfa_method.value!r})"
        )
