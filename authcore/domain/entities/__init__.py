"""Domain entities."""

from .user import MfaMethod, User, normalize_email

__all__ = ["MfaMethod", "User", "normalize_email"]
