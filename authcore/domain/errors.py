"""
Authentication failure values.

Expected failures (bad code, expired token, unknown user) are returned as
``AuthFailure`` values rather than raised. Exceptions are kept for faults the
caller cannot act on, such as broken configuration.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class AuthError(Enum):
    """Failure codes produced by the authentication core."""

    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"
    TOKEN_EXPIRED = "token_expired"
    WRONG_TOKEN_PURPOSE = "wrong_token_purpose"
    USER_NOT_FOUND = "user_not_found"
    NO_PENDING_OTP = "no_pending_otp"
    OTP_EXPIRED = "otp_expired"
    INVALID_OTP = "invalid_otp"
    TOTP_NOT_CONFIGURED = "totp_not_configured"
    MFA_VERIFICATION_FAILED = "mfa_verification_failed"
    REFRESH_TOKEN_REVOKED = "refresh_token_revoked"
    RESEND_NOT_AVAILABLE = "resend_not_available"
    OTP_RESEND_FAILED = "otp_resend_failed"
    OTP_DELIVERY_FAILED = "otp_delivery_failed"
    RESET_VERIFICATION_FAILED = "reset_verification_failed"
    PASSWORD_RESET_FAILED = "password_reset_failed"
    WEAK_PASSWORD = "weak_password"
    EMAIL_ALREADY_REGISTERED = "email_already_registered"
    INVALID_MFA_METHOD = "invalid_mfa_method"


# Messages safe to show to clients. Umbrella codes deliberately say nothing
# about which check failed.
PUBLIC_MESSAGES: dict[AuthError, str] = {
    AuthError.INVALID_CREDENTIALS: "Invalid credentials",
    AuthError.INVALID_TOKEN: "Invalid token",
    AuthError.TOKEN_EXPIRED: "Token has expired",
    AuthError.WRONG_TOKEN_PURPOSE: "Invalid token type",
    AuthError.USER_NOT_FOUND: "User not found",
    AuthError.NO_PENDING_OTP: "No OTP found. Please request a new one",
    AuthError.OTP_EXPIRED: "OTP expired. Please request a new one",
    AuthError.INVALID_OTP: "Invalid OTP",
    AuthError.TOTP_NOT_CONFIGURED: "TOTP not configured",
    AuthError.MFA_VERIFICATION_FAILED: "MFA verification failed",
    AuthError.REFRESH_TOKEN_REVOKED: "Invalid refresh token",
    AuthError.RESEND_NOT_AVAILABLE: "Resend OTP is only available for email authentication",
    AuthError.OTP_RESEND_FAILED: "Failed to resend OTP",
    AuthError.OTP_DELIVERY_FAILED: "Failed to send verification code",
    AuthError.RESET_VERIFICATION_FAILED: "OTP verification failed",
    AuthError.PASSWORD_RESET_FAILED: "Failed to reset password",
    AuthError.WEAK_PASSWORD: "Password does not meet requirements",
    AuthError.EMAIL_ALREADY_REGISTERED: "Email already registered",
    AuthError.INVALID_MFA_METHOD: "Unsupported MFA method",
}


@dataclass(frozen=True)
class AuthFailure:
    """
    A failed authentication step.

    ``cause`` carries the specific reason behind an umbrella error. It is for
    logging and tests only and must never be rendered to clients.
    """

    error: AuthError
    cause: AuthError | None = None
    detail: str | None = None

    @property
    def reason(self) -> AuthError:
        """Most specific code available."""
        return self.cause or self.error

    @property
    def public_message(self) -> str:
        if self.error is AuthError.WEAK_PASSWORD and self.detail:
            return f"{PUBLIC_MESSAGES[self.error]}: {self.detail}"
        return PUBLIC_MESSAGES[self.error]

    def wrap(self, umbrella: AuthError) -> "AuthFailure":
        """Hide this failure behind ``umbrella``, keeping the reason for logs."""
        return AuthFailure(error=umbrella, cause=self.reason, detail=self.detail)

    def to_log_context(self) -> dict[str, Any]:
        return {
            "error": self.error.value,
            "cause": self.cause.value if self.cause else None,
            "detail": self.detail,
        }


class ConfigurationError(Exception):
    """Raised at startup when required settings are missing or invalid."""

    def __init__(self, message: str, setting: str | None = None) -> None:
        super().__init__(message)
        self.setting = setting
