"""
Notifier Interface

Contract for delivering one-time codes to users out of band.
"""

from abc import abstractmethod
from enum import Enum
from typing import Protocol


class OtpPurpose(Enum):
    """Why a code is being sent"""

    LOGIN = "login"
    RESET = "reset"


class INotifier(Protocol):
    """One-time code delivery."""

    @abstractmethod
    async def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> None:
        """
        Deliver ``code`` to ``email``.

        Raises:
            NotificationError: If delivery fails. Callers decide whether the
                failure is reported or only logged.
        """
        ...
