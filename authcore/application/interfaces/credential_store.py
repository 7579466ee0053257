"""
Credential Store Interface

Defines the contract the authentication core needs from durable user storage.
"""

from abc import abstractmethod
from datetime import datetime
from typing import Any, Protocol

from authcore.domain.entities import User


class ICredentialStore(Protocol):
    """
    User record store.

    Every write is applied atomically per record: a reader never observes a
    partially applied ``update``.
    """

    @abstractmethod
    async def find_by_email(self, email: str) -> User | None:
        """
        Look up a user by email.

        Args:
            email: Email address, normalised by the store before lookup

        Returns:
            The user if found, None otherwise
        """
        ...

    @abstractmethod
    async def find_by_id(self, user_id: str) -> User | None:
        """Look up a user by identifier."""
        ...

    @abstractmethod
    async def update(self, user_id: str, **fields: Any) -> User | None:
        """
        Merge ``fields`` into the user record.

        Args:
            user_id: The user to update
            **fields: Attribute names of ``User`` and their new values

        Returns:
            The updated user, or None if no such user exists

        Raises:
            RepositoryError: If the write fails
        """
        ...

    @abstractmethod
    async def create(self, user: User) -> User:
        """
        Persist a new user.

        Raises:
            DuplicateEmailError: If the email is already registered
        """
        ...

    @abstractmethod
    async def list_users(self) -> list[User]:
        """Return every user, oldest first."""
        ...

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        """
        Remove a user record.

        Returns:
            True if a record was deleted, False if no such user exists
        """
        ...

    @abstractmethod
    async def consume_otp(self, user_id: str, code: str, now: datetime) -> bool:
        """
        Clear the stored OTP only if it still equals ``code`` and has not expired.

        Returns:
            True for exactly one caller per issued code
        """
        ...
