"""One-time code delivery."""

from .email_notifier import LoggingNotifier, SmtpEmailNotifier, build_notifier

__all__ = ["LoggingNotifier", "SmtpEmailNotifier", "build_notifier"]
