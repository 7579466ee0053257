"""
Infrastructure Exception Definitions

Exceptions that store and notifier implementations may raise. Expected
authentication failures are not exceptions; see ``authcore.domain.errors``.
"""


class RepositoryError(Exception):
    """Base exception for credential store operations."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class DuplicateEmailError(RepositoryError):
    """Raised when creating a user whose email is already registered."""

    def __init__(self, email: str) -> None:
        super().__init__(f"User with email '{email}' already exists")
        self.email = email


class NotificationError(Exception):
    """Raised when a one-time code could not be delivered."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause
