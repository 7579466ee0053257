"""
Database engine and session factory setup.
"""

import logging
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from authcore.infrastructure.auth.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str, **engine_kwargs: Any) -> Engine:
    """
    Create an engine for ``database_url``.

    SQLite connections are shared across threads; in-memory SQLite uses a
    single static connection so every session sees the same database.
    """
    if database_url.startswith("sqlite"):
        engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            engine_kwargs.setdefault("poolclass", StaticPool)
    else:
        engine_kwargs.setdefault("pool_pre_ping", True)

    return create_engine(database_url, **engine_kwargs)


def create_session_factory(engine: Engine, create_tables: bool = True) -> sessionmaker[Session]:
    """Build the session factory and make sure the schema exists."""
    if create_tables:
        Base.metadata.create_all(bind=engine)
        logger.info(f"Database schema ready on {engine.url.render_as_string(hide_password=True)}")

    return sessionmaker(autoflush=False, bind=engine)
