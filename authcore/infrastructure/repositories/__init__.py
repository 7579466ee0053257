"""Persistence for user credentials."""

from .database import create_db_engine, create_session_factory
from .user_repository import SqlAlchemyCredentialStore

__all__ = ["SqlAlchemyCredentialStore", "create_db_engine", "create_session_factory"]
