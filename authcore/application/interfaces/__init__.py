"""Contracts between the authentication core and its collaborators."""

from .credential_store import ICredentialStore
from .exceptions import DuplicateEmailError, NotificationError, RepositoryError
from .notifier import INotifier, OtpPurpose

__all__ = [
    "DuplicateEmailError",
    "ICredentialStore",
    "INotifier",
    "NotificationError",
    "OtpPurpose",
    "RepositoryError",
]
