"""
Unit tests for authentication middleware.
"""

from datetime import timedelta

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from authcore.domain.entities import User
from authcore.infrastructure.auth.jwt_service import TokenIssuer
from authcore.infrastructure.auth.middleware import (
    JWTBearer,
    RequestIDMiddleware,
    RequireRole,
    SecurityHeadersMiddleware,
)

ACCESS_SECRET = "access-secret-for-tests-0123456789"
REFRESH_SECRET = "refresh-secret-for-tests-0123456789"


@pytest.fixture
def issuer():
    return TokenIssuer(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET)


@pytest.fixture
def client(issuer):
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/whoami", dependencies=[Depends(JWTBearer(issuer))])
    async def whoami(request: Request):
        return {"userId": request.state.user_id, "role": request.state.role}

    @app.get("/admin", dependencies=[Depends(JWTBearer(issuer)), Depends(RequireRole("admin"))])
    async def admin_only():
        return {"ok": True}

    @app.get("/optional")
    async def optional(payload=Depends(JWTBearer(issuer, auto_error=False))):
        return {"authenticated": payload is not None}

    return TestClient(app)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestJWTBearer:
    """Test JWT Bearer authentication."""

    def test_valid_access_token(self, client, issuer):
        user = User(email="user@example.com", password_hash="x")

        response = client.get("/whoami", headers=bearer(issuer.create_access_token(user)))

        assert response.status_code == 200
        assert response.json() == {"userId": user.id, "role": "user"}

    def test_missing_token(self, client):
        response = client.get("/whoami")

        assert response.status_code in (401, 403)

    def test_expired_token(self, client):
        expired_issuer = TokenIssuer(
            access_secret=ACCESS_SECRET,
            refresh_secret=REFRESH_SECRET,
            access_token_ttl=timedelta(seconds=-1),
        )
        user = User(email="user@example.com", password_hash="x")
        token = expired_issuer.create_access_token(user)

        response = client.get("/whoami", headers=bearer(token))

        assert response.status_code == 401
        assert response.json()["detail"] == "Token has expired"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_refresh_token_rejected(self, client, issuer):
        token = issuer.create_refresh_token(User(email="user@example.com", password_hash="x"))

        response = client.get("/whoami", headers=bearer(token))

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    def test_pending_token_rejected(self, client, issuer):
        response = client.get("/whoami", headers=bearer(issuer.create_pending_token("user-1")))

        assert response.status_code == 401

    def test_optional_authentication(self, client, issuer):
        token = issuer.create_access_token(User(email="user@example.com", password_hash="x"))

        assert client.get("/optional").json() == {"authenticated": False}
        assert client.get("/optional", headers=bearer("garbage")).json() == {
            "authenticated": False
        }
        assert client.get("/optional", headers=bearer(token)).json() == {"authenticated": True}


class TestRequireRole:
    """Test role-based access control."""

    def test_allowed_role(self, client, issuer):
        admin = User(email="admin@example.com", password_hash="x", role="admin")

        response = client.get("/admin", headers=bearer(issuer.create_access_token(admin)))

        assert response.status_code == 200

    def test_denied_role(self, client, issuer):
        user = User(email="user@example.com", password_hash="x")

        response = client.get("/admin", headers=bearer(issuer.create_access_token(user)))

        assert response.status_code == 403
        assert response.json()["detail"] == "One of these roles required: admin"


class TestResponseMiddleware:
    def test_security_headers(self, client):
        response = client.get("/optional")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"
        assert "Strict-Transport-Security" not in response.headers

    def test_request_id_generated(self, client):
        first = client.get("/optional").headers["X-Request-ID"]
        second = client.get("/optional").headers["X-Request-ID"]

        assert first.startswith("req_")
        assert first != second
