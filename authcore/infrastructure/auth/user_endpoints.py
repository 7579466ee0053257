"""
User administration endpoints.

Listing, provisioning, removal and MFA/password management for accounts.
Every route requires an access token with the ``admin`` role.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import EmailStr, Field

from authcore.domain.entities import MfaMethod, User
from authcore.domain.errors import AuthError, AuthFailure

from .endpoints import CamelModel, MessageResponse, get_orchestrator, raise_for_failure
from .middleware import JWTBearer, RequireRole
from .services.authentication_orchestrator import AuthenticationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(JWTBearer()), Depends(RequireRole("admin"))],
)

NOT_FOUND = {AuthError.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND}


class CreateUserRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    role: str = Field(default="user", min_length=1, max_length=32)
    mfa_enabled: bool = True
    mfa_method: str = MfaMethod.EMAIL.value


class SetMfaEnabledRequest(CamelModel):
    enabled: bool


class SetMfaMethodRequest(CamelModel):
    method: str


class ChangePasswordRequest(CamelModel):
    password: str = Field(..., min_length=1, max_length=128)


class UserResponse(CamelModel):
    """Public view of a user record."""

    id: str
    email: str
    role: str
    mfa_enabled: bool
    mfa_method: str
    totp_configured: bool

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            mfa_enabled=user.mfa_enabled,
            mfa_method=user.mfa_method.value,
            totp_configured=user.totp_secret is not None,
        )


@router.get("", response_model=list[UserResponse])
async def list_users(
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> list[UserResponse]:
    """List every account without credential material."""
    users = await orchestrator.list_users()
    return [UserResponse.from_user(user) for user in users]


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    create_request: CreateUserRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> UserResponse:
    """Create a user account."""
    method = MfaMethod.parse(create_request.mfa_method)
    if method is None:
        raise_for_failure(AuthFailure(AuthError.INVALID_MFA_METHOD))

    try:
        result = await orchestrator.provision_user(
            email=create_request.email,
            password=create_request.password,
            role=create_request.role,
            mfa_enabled=create_request.mfa_enabled,
            mfa_method=method,
        )
    except Exception as e:
        logger.error(f"User creation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="User creation failed"
        )

    if isinstance(result, AuthFailure):
        raise_for_failure(result)

    return UserResponse.from_user(result)


@router.patch("/{user_id}/mfa", response_model=UserResponse)
async def set_mfa_enabled(
    user_id: str,
    mfa_request: SetMfaEnabledRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> UserResponse:
    """Turn MFA on or off for an account."""
    result = await orchestrator.set_mfa_enabled(user_id, mfa_request.enabled)

    if isinstance(result, AuthFailure):
        raise_for_failure(result, NOT_FOUND)

    return UserResponse.from_user(result)


@router.patch("/{user_id}/mfa-method", response_model=UserResponse)
async def set_mfa_method(
    user_id: str,
    method_request: SetMfaMethodRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> UserResponse:
    """Switch an account between email codes and an authenticator app."""
    result = await orchestrator.set_mfa_method(user_id, method_request.method)

    if isinstance(result, AuthFailure):
        raise_for_failure(result, NOT_FOUND)

    return UserResponse.from_user(result)


@router.patch("/{user_id}/password", response_model=MessageResponse)
async def change_password(
    user_id: str,
    password_request: ChangePasswordRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    """
    Overwrite an account's password.

    Existing refresh tokens for the account stop working.
    """
    result = await orchestrator.change_password(user_id, password_request.password)

    if isinstance(result, AuthFailure):
        raise_for_failure(result, NOT_FOUND)

    return MessageResponse(message="Password updated successfully")


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    """Remove an account."""
    result = await orchestrator.delete_user(user_id)

    if isinstance(result, AuthFailure):
        raise_for_failure(result, NOT_FOUND)

    return MessageResponse(message="User deleted successfully")
