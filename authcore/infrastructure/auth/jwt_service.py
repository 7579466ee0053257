"""
JWT token management service for authentication.

This module signs and verifies every bearer token the authentication core
hands out: access and refresh tokens for sessions, short-lived pending tokens
between the password and MFA steps, and password reset authorisations.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

import jwt

from authcore.config import AuthConfig
from authcore.domain.entities import User
from authcore.domain.errors import AuthError, AuthFailure

logger = logging.getLogger(__name__)


class TokenPurpose(Enum):
    """Value of the ``purpose`` claim; no token kind is accepted as another."""

    ACCESS = "access"
    REFRESH = "refresh"
    MFA_PENDING = "mfa_pending"
    PASSWORD_RESET = "password_reset"


class TokenIssuer:
    """
    JWT service for creating and validating tokens.

    Supports:
    - Access tokens (15 minutes default)
    - Refresh tokens (7 days default), signed with a separate secret
    - Pending MFA tokens (10 minutes default)
    - Password reset tokens (15 minutes default)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        issuer: str = "authcore",
        access_token_ttl: timedelta = timedelta(minutes=15),
        refresh_token_ttl: timedelta = timedelta(days=7),
        pending_token_ttl: timedelta = timedelta(minutes=10),
        reset_token_ttl: timedelta = timedelta(minutes=15),
    ):
        """
        Initialize the token issuer.

        Args:
            access_secret: HMAC secret for access, pending and reset tokens
            refresh_secret: HMAC secret for refresh tokens only
            issuer: Token issuer identifier
            access_token_ttl: Access token lifetime
            refresh_token_ttl: Refresh token lifetime
            pending_token_ttl: Pending MFA token lifetime
            reset_token_ttl: Password reset token lifetime
        """
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.issuer = issuer
        self.algorithm = "HS256"
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self.pending_token_ttl = pending_token_ttl
        self.reset_token_ttl = reset_token_ttl

    @classmethod
    def from_config(cls, config: AuthConfig) -> "TokenIssuer":
        return cls(
            access_secret=config.access_token_secret,
            refresh_secret=config.refresh_token_secret,
            issuer=config.token_issuer,
            access_token_ttl=config.access_token_ttl,
            refresh_token_ttl=config.refresh_token_ttl,
            pending_token_ttl=config.pending_token_ttl,
            reset_token_ttl=config.reset_token_ttl,
        )

    def sign(self, claims: dict[str, Any], secret: str, ttl: timedelta) -> str:
        """
        Sign ``claims`` into a JWT that expires after ``ttl``.

        Standard claims (iss, iat, exp, jti) are added here. The random jti
        makes two tokens minted in the same second for the same claims differ.
        """
        now = datetime.now(UTC)
        payload = {
            **claims,
            "iss": self.issuer,
            "iat": now,
            "exp": now + ttl,
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def verify(self, token: str, secret: str) -> dict[str, Any] | AuthFailure:
        """
        Verify signature, issuer and expiry.

        Returns:
            Decoded claims, or an ``AuthFailure`` with ``TOKEN_EXPIRED`` or
            ``INVALID_TOKEN``. Never raises on malformed input.
        """
        if not token or not isinstance(token, str):
            return AuthFailure(AuthError.INVALID_TOKEN, detail="empty token")

        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "iss", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            return AuthFailure(AuthError.TOKEN_EXPIRED)
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected token: {e!s}")
            return AuthFailure(AuthError.INVALID_TOKEN, detail=str(e))

        return dict(payload)

    def verify_purpose(
        self, token: str, secret: str, purpose: TokenPurpose
    ) -> dict[str, Any] | AuthFailure:
        """Verify a token and require its ``purpose`` claim to match."""
        payload = self.verify(token, secret)
        if isinstance(payload, AuthFailure):
            return payload

        if payload.get("purpose") != purpose.value:
            logger.warning(
                f"Token purpose mismatch: expected {purpose.value}, got {payload.get('purpose')!r}"
            )
            return AuthFailure(AuthError.WRONG_TOKEN_PURPOSE)

        return payload

    # Minting

    def _session_claims(self, user: User, purpose: TokenPurpose) -> dict[str, Any]:
        return {
            "sub": user.id,
            "email": user.email,
            "role": user.role,
            "purpose": purpose.value,
        }

    def create_access_token(self, user: User) -> str:
        """Create a session access token carrying email, subject and role."""
        return self.sign(
            self._session_claims(user, TokenPurpose.ACCESS),
            self.access_secret,
            self.access_token_ttl,
        )

    def create_refresh_token(self, user: User) -> str:
        """Create a session refresh token, signed with the refresh secret."""
        return self.sign(
            self._session_claims(user, TokenPurpose.REFRESH),
            self.refresh_secret,
            self.refresh_token_ttl,
        )

    def create_pending_token(self, user_id: str) -> str:
        """Create a token authorising MFA attempts for ``user_id``."""
        return self.sign(
            {"sub": user_id, "purpose": TokenPurpose.MFA_PENDING.value},
            self.access_secret,
            self.pending_token_ttl,
        )

    def create_reset_token(self, user: User, password_fingerprint: str) -> str:
        """
        Create a password reset authorisation.

        ``password_fingerprint`` ties the token to the current password hash,
        so the token stops verifying once the password has been changed.
        """
        return self.sign(
            {
                "sub": user.id,
                "email": user.email,
                "purpose": TokenPurpose.PASSWORD_RESET.value,
                "pwd": password_fingerprint,
            },
            self.access_secret,
            self.reset_token_ttl,
        )

    # Verification shortcuts

    def verify_access_token(self, token: str) -> dict[str, Any] | AuthFailure:
        return self.verify_purpose(token, self.access_secret, TokenPurpose.ACCESS)

    def verify_refresh_token(self, token: str) -> dict[str, Any] | AuthFailure:
        return self.verify_purpose(token, self.refresh_secret, TokenPurpose.REFRESH)

    def verify_pending_token(self, token: str) -> dict[str, Any] | AuthFailure:
        return self.verify_purpose(token, self.access_secret, TokenPurpose.MFA_PENDING)

    def verify_reset_token(self, token: str) -> dict[str, Any] | AuthFailure:
        return self.verify_purpose(token, self.access_secret, TokenPurpose.PASSWORD_RESET)

    # Refresh token fingerprints

    @staticmethod
    def hash_token(token: str) -> str:
        """SHA-256 hex digest stored in place of the refresh token."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    @classmethod
    def token_matches_hash(cls, token: str, token_hash: str | None) -> bool:
        if not token_hash:
            return False
        return hmac.compare_digest(cls.hash_token(token), token_hash)
