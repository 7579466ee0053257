"""
Authentication and authorization middleware for FastAPI.

Bearer token validation, role checks and security headers.
"""

import logging
import secrets
from collections.abc import Callable
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware

from authcore.domain.errors import AuthError, AuthFailure

from .jwt_service import TokenIssuer

logger = logging.getLogger(__name__)


class JWTBearer(HTTPBearer):
    """
    JWT Bearer token authentication.

    Validates access tokens in the Authorization header. The token issuer is
    taken from ``app.state`` unless one is passed explicitly.
    """

    def __init__(self, token_issuer: TokenIssuer | None = None, auto_error: bool = True):
        super().__init__(auto_error=auto_error)
        self.token_issuer = token_issuer

    async def __call__(self, request: Request) -> dict[str, Any] | None:  # type: ignore[override]
        """
        Validate the access token and store the caller on ``request.state``.

        Raises:
            HTTPException: If the token is missing, expired or invalid
        """
        credentials: HTTPAuthorizationCredentials | None = await super().__call__(request)

        if not credentials:
            if self.auto_error:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED, detail="Authorization required"
                )
            return None

        issuer = self.token_issuer or request.app.state.orchestrator.token_issuer
        payload = issuer.verify_access_token(credentials.credentials)

        if isinstance(payload, AuthFailure):
            logger.warning(f"Rejected bearer token: {payload.reason.value}")
            if not self.auto_error:
                return None
            detail = (
                "Token has expired"
                if payload.reason is AuthError.TOKEN_EXPIRED
                else "Invalid token"
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=detail,
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.user_id = payload["sub"]
        request.state.email = payload.get("email")
        request.state.role = payload.get("role", "user")
        return payload


class RequireRole:
    """
    Role requirement dependency.

    Must run after ``JWTBearer`` has populated ``request.state``.
    """

    def __init__(self, *roles: str) -> None:
        self.roles = roles

    async def __call__(self, request: Request) -> bool:
        if not hasattr(request.state, "role"):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated"
            )

        if request.state.role not in self.roles:
            logger.warning(
                f"User {request.state.user_id} with role {request.state.role} denied access"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"One of these roles required: {', '.join(self.roles)}",
            )

        return True


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response  # type: ignore[no-any-return]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Adds a request ID for tracing, reusing the caller's ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = request.headers.get("X-Request-ID") or f"req_{secrets.token_urlsafe(16)}"
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response  # type: ignore[no-any-return]
