"""
JWT-based authentication with adaptive MFA.

This package provides token issuance, one-time codes, password hashing and
the orchestrator that drives the login and password reset flows.
"""

from .jwt_service import TokenIssuer, TokenPurpose
from .middleware import JWTBearer, RequestIDMiddleware, RequireRole, SecurityHeadersMiddleware
from .models import Base, UserRecord
from .otp_service import OtpGenerator, TotpSecret
from .password_service import PasswordHasher, PasswordService, PasswordValidator
from .services import AuthenticationOrchestrator
from .types import (
    LoginOutcome,
    OtpDispatched,
    PasswordResetAuthorization,
    PasswordResetRequested,
    SessionTokenPair,
    TotpEnrollment,
)

__all__ = [
    "AuthenticationOrchestrator",
    "Base",
    "JWTBearer",
    "LoginOutcome",
    "OtpDispatched",
    "OtpGenerator",
    "PasswordHasher",
    "PasswordResetAuthorization",
    "PasswordResetRequested",
    "PasswordService",
    "PasswordValidator",
    "RequestIDMiddleware",
    "RequireRole",
    "SecurityHeadersMiddleware",
    "SessionTokenPair",
    "TokenIssuer",
    "TokenPurpose",
    "TotpEnrollment",
    "TotpSecret",
    "UserRecord",
]
