"""
Authentication API endpoints.

Login with adaptive MFA, TOTP enrollment, session refresh and logout, and the
password reset flow. Request and response bodies use camelCase field names.
"""

import logging
from typing import Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from authcore.domain.entities import MfaMethod
from authcore.domain.errors import AuthError, AuthFailure

from .middleware import JWTBearer
from .services.authentication_orchestrator import AuthenticationOrchestrator
from .types import LoginOutcome, SessionTokenPair

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/auth", tags=["Authentication"])

# Failures that are not plain 401s
FAILURE_STATUS: dict[AuthError, int] = {
    AuthError.WEAK_PASSWORD: status.HTTP_400_BAD_REQUEST,
    AuthError.INVALID_MFA_METHOD: status.HTTP_400_BAD_REQUEST,
    AuthError.EMAIL_ALREADY_REGISTERED: status.HTTP_409_CONFLICT,
    AuthError.OTP_DELIVERY_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def raise_for_failure(
    failure: AuthFailure, overrides: dict[AuthError, int] | None = None
) -> NoReturn:
    """Translate an ``AuthFailure`` into an ``HTTPException``."""
    status_code = {**FAILURE_STATUS, **(overrides or {})}.get(
        failure.error, status.HTTP_401_UNAUTHORIZED
    )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    raise HTTPException(status_code=status_code, detail=failure.public_message, headers=headers)


# Request/Response models
class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )


class LoginRequest(CamelModel):
    """Login request."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class LoginResponse(CamelModel):
    """
    Login response.

    Carries either an MFA challenge (``tempToken``) or, when MFA is off for
    the account, the session tokens.
    """

    mfa_required: bool
    mfa_method: str | None = None
    temp_token: str | None = None
    totp_setup_required: bool | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None


class TokenResponse(CamelModel):
    """Session token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class TotpSetupRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    email: str | None = None


class TotpSetupResponse(CamelModel):
    """Authenticator enrollment material; ``qrCode`` is a PNG data URI."""

    secret: str
    otpauth_url: str
    qr_code: str


class MFAVerificationRequest(CamelModel):
    """MFA verification request."""

    temp_token: str
    otp: str = Field(..., min_length=1, max_length=16)
    method: str | None = None


class ResendOtpRequest(CamelModel):
    temp_token: str


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class VerifyResetOtpRequest(CamelModel):
    email: EmailStr
    otp: str = Field(..., min_length=1, max_length=16)


class VerifyResetOtpResponse(MessageResponse):
    reset_token: str


class ResetPasswordRequest(CamelModel):
    reset_token: str
    new_password: str = Field(..., min_length=1, max_length=128)


class LogoutRequest(CamelModel):
    user_id: str = Field(..., min_length=1)


class RefreshTokenRequest(CamelModel):
    """Token refresh request."""

    refresh_token: str


class CurrentUserResponse(CamelModel):
    """Profile of the authenticated caller."""

    id: str
    email: str
    role: str
    mfa_enabled: bool
    mfa_method: str
    totp_configured: bool


# Dependency injection functions


def get_orchestrator(request: Request) -> AuthenticationOrchestrator:
    """Orchestrator built by the application factory."""
    return request.app.state.orchestrator  # type: ignore[no-any-return]


def token_response(tokens: SessionTokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
    )


# Public endpoints (no authentication required)
@router.post("/login", response_model=LoginResponse, response_model_exclude_none=True)
async def login(
    login_request: LoginRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> LoginResponse:
    """
    Authenticate with email and password.

    Returns an MFA challenge when MFA is enabled for the account, otherwise
    the session tokens.
    """
    try:
        result = await orchestrator.authenticate(login_request.email, login_request.password)
    except Exception as e:
        logger.error(f"Login failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Authentication failed"
        )

    if isinstance(result, AuthFailure):
        raise_for_failure(result)

    if isinstance(result, LoginOutcome):
        return LoginResponse(
            mfa_required=True,
            mfa_method=result.mfa_method.value,
            temp_token=result.pending_token,
            totp_setup_required=(
                result.totp_setup_required if result.mfa_method is MfaMethod.TOTP else None
            ),
        )

    return LoginResponse(
        mfa_required=False,
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        token_type=result.token_type,
        expires_in=result.expires_in,
    )


# Unauthenticated on purpose: the routing contract identifies the caller by
# ``userId`` in the body (DESIGN.md, "Decisions on open questions" item 7).
@router.post("/setup-totp", response_model=TotpSetupResponse)
async def setup_totp(
    setup_request: TotpSetupRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> TotpSetupResponse:
    """
    Generate a new authenticator secret for a user.

    Replaces any existing secret immediately.
    """
    try:
        result = await orchestrator.enroll_totp(setup_request.user_id, setup_request.email)
    except Exception as e:
        logger.error(f"TOTP setup failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="TOTP setup failed"
        )

    if isinstance(result, AuthFailure):
        raise_for_failure(result, {AuthError.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND})

    return TotpSetupResponse(
        secret=result.secret, otpauth_url=result.provisioning_uri, qr_code=result.qr_code
    )


@router.post("/verify-mfa", response_model=TokenResponse)
async def verify_mfa(
    mfa_request: MFAVerificationRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> TokenResponse:
    """
    Verify the second factor and complete authentication.

    ``method`` overrides the account's configured method when given.
    """
    result = await orchestrator.verify_mfa(
        mfa_request.temp_token, mfa_request.otp, mfa_request.method
    )

    if isinstance(result, AuthFailure):
        raise_for_failure(result)

    return token_response(result)


@router.post("/resend-otp", response_model=MessageResponse)
async def resend_otp(
    resend_request: ResendOtpRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    """Send a fresh email code for a pending login."""
    result = await orchestrator.resend_otp(resend_request.temp_token)

    if isinstance(result, AuthFailure):
        raise_for_failure(result)

    return MessageResponse(message=result.message)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    forgot_request: ForgotPasswordRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    """
    Request a password reset code.

    The response is identical whether or not the email is registered.
    """
    try:
        result = await orchestrator.forgot_password(forgot_request.email)
    except Exception as e:
        logger.error(f"Password reset request failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process request",
        )

    if isinstance(result, AuthFailure):
        raise_for_failure(result)

    return MessageResponse(message=result.message)


@router.post("/verify-reset-otp", response_model=VerifyResetOtpResponse)
async def verify_reset_otp(
    verify_request: VerifyResetOtpRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> VerifyResetOtpResponse:
    """Exchange a reset code for a short-lived reset token."""
    result = await orchestrator.verify_reset_otp(verify_request.email, verify_request.otp)

    if isinstance(result, AuthFailure):
        raise_for_failure(result)

    return VerifyResetOtpResponse(message=result.message, reset_token=result.reset_token)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    reset_request: ResetPasswordRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    """
    Set a new password with a reset token.

    Signs out every existing session of the account.
    """
    result = await orchestrator.reset_password(
        reset_request.reset_token, reset_request.new_password
    )

    if isinstance(result, AuthFailure):
        raise_for_failure(result)

    return MessageResponse(message="Password reset successfully")


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    refresh_request: RefreshTokenRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> TokenResponse:
    """
    Refresh the session.

    Implements token rotation: the presented refresh token stops working once
    a new pair has been issued.
    """
    try:
        result = await orchestrator.refresh_session(refresh_request.refresh_token)
    except Exception as e:
        logger.error(f"Token refresh failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Token refresh failed"
        )

    if isinstance(result, AuthFailure):
        raise_for_failure(result)

    return token_response(result)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    logout_request: LogoutRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    """
    Revoke the stored refresh token.

    Access tokens remain valid until they expire.
    """
    try:
        await orchestrator.logout(logout_request.user_id)
    except Exception as e:
        logger.error(f"Logout failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Logout failed"
        )

    return MessageResponse(message="Logged out successfully")


# Protected endpoints (authentication required)
@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user_profile(
    request: Request,
    _: dict[str, Any] = Depends(JWTBearer()),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> CurrentUserResponse:
    """Get the authenticated user's profile."""
    result = await orchestrator.get_user(request.state.user_id)

    if isinstance(result, AuthFailure):
        raise_for_failure(result)

    return CurrentUserResponse(
        id=result.id,
        email=result.email,
        role=result.role,
        mfa_enabled=result.mfa_enabled,
        mfa_method=result.mfa_method.value,
        totp_configured=result.totp_secret is not None,
    )
