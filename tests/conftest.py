"""Global pytest configuration and fixtures."""

from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest

from authcore.config import AuthConfig
from authcore.domain.entities import MfaMethod, User
from authcore.infrastructure.auth.password_service import PasswordService
from authcore.infrastructure.auth.services.authentication_orchestrator import (
    AuthenticationOrchestrator,
)
from authcore.infrastructure.repositories.database import create_db_engine, create_session_factory
from authcore.infrastructure.repositories.user_repository import SqlAlchemyCredentialStore

TEST_PASSWORD = "correct-horse-battery"


@pytest.fixture
def auth_config() -> AuthConfig:
    """Fast settings for tests (low bcrypt cost, in-memory database)."""
    return AuthConfig(
        access_token_secret="test-access-secret-0123456789abcdef",
        refresh_token_secret="test-refresh-secret-0123456789abcdef",
        otp_ttl=timedelta(minutes=10),
        bcrypt_rounds=4,
        database_url="sqlite:///:memory:",
    )


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_db_engine("sqlite:///:memory:")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory) -> SqlAlchemyCredentialStore:
    return SqlAlchemyCredentialStore(session_factory)


@pytest.fixture
def notifier() -> AsyncMock:
    """Notifier double recording every code sent."""
    mock = AsyncMock()
    mock.send_otp.return_value = None
    return mock


@pytest.fixture
def password_service() -> PasswordService:
    return PasswordService(rounds=4)


@pytest.fixture
def orchestrator(auth_config, store, notifier) -> AuthenticationOrchestrator:
    return AuthenticationOrchestrator.from_config(auth_config, store, notifier)


@pytest.fixture
def user_factory(
    store, password_service
) -> Callable[..., Awaitable[User]]:
    """Create and persist users; keyword arguments override ``User`` fields."""

    async def create(
        email: str = "admin@example.com", password: str = TEST_PASSWORD, **fields: Any
    ) -> User:
        fields.setdefault("mfa_method", MfaMethod.EMAIL)
        user = User(
            email=email,
            password_hash=password_service.hash_password(password),
            **fields,
        )
        return await store.create(user)

    return create
