"""
Password management service.

Handles password hashing, verification and the policy applied to new
passwords.
"""

import hashlib
import logging
import secrets
from functools import cached_property

import bcrypt

logger = logging.getLogger(__name__)


class PasswordHasher:
    """Bcrypt password hashing utility."""

    def __init__(self, rounds: int = 12) -> None:
        """Initialize with bcrypt rounds (cost factor)."""
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash."""
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except Exception as e:
            logger.error(f"Password verification failed: {e}")
            return False


class PasswordValidator:
    """Policy for newly chosen passwords."""

    # bcrypt only looks at the first 72 bytes
    MAX_BYTES = 72

    COMMON_PASSWORDS = {
        "password",
        "12345678",
        "123456789",
        "password123",
        "admin123",
        "qwerty123",
        "letmein",
        "iloveyou",
        "trustno1",
        "welcome1",
    }

    def __init__(self, min_length: int = 8) -> None:
        self.min_length = min_length

    def validate(self, password: str) -> tuple[bool, list[str]]:
        """
        Validate a new password.

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        if len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters long")
        if len(password.encode("utf-8")) > self.MAX_BYTES:
            errors.append(f"Password must not exceed {self.MAX_BYTES} bytes")
        if password.strip() != password:
            errors.append("Password must not start or end with whitespace")
        if password.lower() in self.COMMON_PASSWORDS:
            errors.append("Password is too common")

        return len(errors) == 0, errors


class PasswordService:
    """Password management service."""

    def __init__(self, rounds: int = 12, min_length: int = 8) -> None:
        self.hasher = PasswordHasher(rounds)
        self.validator = PasswordValidator(min_length)

    def hash_password(self, password: str) -> str:
        return self.hasher.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        return self.hasher.verify(password, password_hash)

    def validate_password(self, password: str) -> tuple[bool, list[str]]:
        return self.validator.validate(password)

    @cached_property
    def _dummy_hash(self) -> str:
        return self.hasher.hash(secrets.token_urlsafe(16))

    def dummy_verify(self, password: str) -> None:
        """Spend the same bcrypt work as a real check, for unknown accounts."""
        self.hasher.verify(password, self._dummy_hash)

    @staticmethod
    def fingerprint(password_hash: str) -> str:
        """Short digest of a password hash, embedded in reset tokens."""
        return hashlib.sha256(password_hash.encode("utf-8")).hexdigest()[:16]
