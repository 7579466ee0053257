"""
Shared authentication types.

Successful results returned by the authentication orchestrator.
"""

from dataclasses import dataclass

from authcore.domain.entities import MfaMethod


@dataclass(frozen=True)
class SessionTokenPair:
    """Access/refresh token pair issued after full authentication."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


@dataclass(frozen=True)
class LoginOutcome:
    """Credentials were valid but a second factor is still required."""

    mfa_method: MfaMethod
    pending_token: str
    totp_setup_required: bool = False
    mfa_required: bool = True


@dataclass(frozen=True)
class TotpEnrollment:
    """Authenticator app enrollment material."""

    secret: str
    provisioning_uri: str
    qr_code: str


@dataclass(frozen=True)
class OtpDispatched:
    """A fresh one-time code was stored and sent."""

    message: str = "OTP sent successfully"


@dataclass(frozen=True)
class PasswordResetRequested:
    """Returned whether or not the email exists."""

    message: str = "If this email exists, you will receive a password reset code"


@dataclass(frozen=True)
class PasswordResetAuthorization:
    """Short-lived token allowing one password change."""

    reset_token: str
    message: str = "OTP verified successfully"
