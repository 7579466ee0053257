"""
Domain layer for the authentication core.

Holds the user entity and the failure values every operation returns.
"""

from .entities import MfaMethod, User, normalize_email
from .errors import AuthError, AuthFailure, ConfigurationError

__all__ = [
    "AuthError",
    "AuthFailure",
    "ConfigurationError",
    "MfaMethod",
    "User",
    "normalize_email",
]
