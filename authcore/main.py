"""
Application factory for the authentication service.

Wires configuration, persistence, email delivery and the orchestrator into a
FastAPI app.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from authcore.application.interfaces.notifier import INotifier
from authcore.config import AuthConfig
from authcore.infrastructure.auth import endpoints, user_endpoints
from authcore.infrastructure.auth.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from authcore.infrastructure.auth.services.authentication_orchestrator import (
    AuthenticationOrchestrator,
)
from authcore.infrastructure.notifications.email_notifier import build_notifier
from authcore.infrastructure.repositories.database import create_db_engine, create_session_factory
from authcore.infrastructure.repositories.user_repository import SqlAlchemyCredentialStore

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    config: AuthConfig | None = None,
    notifier: INotifier | None = None,
    engine: Engine | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings; loaded from the environment when omitted
        notifier: OTP delivery; SMTP or log output per ``config.smtp`` when omitted
        engine: Database engine; created from ``config.database_url`` when omitted

    Raises:
        ConfigurationError: If required settings are missing or invalid
    """
    config = config or AuthConfig.from_env()
    setup_logging(config.log_level)

    engine = engine or create_db_engine(config.database_url)
    session_factory = create_session_factory(engine)
    store = SqlAlchemyCredentialStore(session_factory)

    if notifier is None:
        notifier = build_notifier(
            config.smtp, otp_ttl_minutes=int(config.otp_ttl.total_seconds() // 60)
        )

    orchestrator = AuthenticationOrchestrator.from_config(config, store, notifier)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(f"Starting authentication service ({config.environment})")
        yield
        logger.info("Shutting down authentication service")
        engine.dispose()

    app = FastAPI(
        title="Authentication API",
        description="Credential and MFA authentication service",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.orchestrator = orchestrator

    # Add middleware
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        max_age=3600,
    )

    app.include_router(endpoints.router)
    app.include_router(user_endpoints.router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def run() -> None:
    """Entry point for the ``authcore-server`` command."""
    import os

    import uvicorn

    uvicorn.run(
        create_app(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )


if __name__ == "__main__":
    run()
