"""
Email delivery for one-time codes.

SMTP delivery runs in the default thread pool so the event loop is never
blocked on the mail server. Without SMTP credentials codes are written to the
log instead, which keeps local development usable.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from authcore.application.interfaces.exceptions import NotificationError
from authcore.application.interfaces.notifier import INotifier, OtpPurpose
from authcore.config import SmtpConfig

logger = logging.getLogger(__name__)

SUBJECTS = {
    OtpPurpose.LOGIN: "Your Admin Login Verification Code",
    OtpPurpose.RESET: "Your Password Reset Code",
}

_ACTIONS = {
    OtpPurpose.LOGIN: "admin login",
    OtpPurpose.RESET: "password reset",
}


def compose_otp_message(
    sender: str, recipient: str, code: str, purpose: OtpPurpose, ttl_minutes: int
) -> MIMEMultipart:
    """Build a plain-text + HTML message carrying ``code``."""
    action = _ACTIONS[purpose]

    msg = MIMEMultipart("alternative")
    msg["Subject"] = SUBJECTS[purpose]
    msg["From"] = sender
    msg["To"] = recipient

    text_body = (
        f"Your One-Time Password (OTP) for {action} is: {code}. "
        f"It expires in {ttl_minutes} minutes. "
        "If you didn't request this, please ignore this email."
    )
    html_body = f"""
        <html>
            <body>
                <p>Your One-Time Password (OTP) for {action} is:</p>
                <p style="font-size: 28px; letter-spacing: 6px;"><strong>{code}</strong></p>
                <p>It expires in {ttl_minutes} minutes.</p>
                <hr>
                <p><em>If you didn't request this, please ignore this email.</em></p>
            </body>
        </html>
    """

    msg.attach(MIMEText(text_body, "plain"))
    msg.attach(MIMEText(html_body, "html"))
    return msg


class SmtpEmailNotifier:
    """Sends one-time codes over SMTP."""

    def __init__(self, config: SmtpConfig, otp_ttl_minutes: int = 10):
        if not config.enabled:
            raise ValueError("SMTP host, user and password are required")
        self.config = config
        self.otp_ttl_minutes = otp_ttl_minutes

    async def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> None:
        msg = compose_otp_message(
            self.config.from_address, email, code, purpose, self.otp_ttl_minutes
        )
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._send_email_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send {purpose.value} OTP email: {e}")
            raise NotificationError(f"Could not deliver {purpose.value} code", e)

        logger.info(f"Sent {purpose.value} OTP email")

    def _send_email_sync(self, msg: MIMEMultipart) -> None:
        """Synchronous email sending (called in thread pool)."""
        if self.config.port == 465:
            with smtplib.SMTP_SSL(
                self.config.host, self.config.port, timeout=self.config.timeout
            ) as server:
                server.login(self.config.username, self.config.password)
                server.send_message(msg)
            return

        with smtplib.SMTP(
            self.config.host, self.config.port, timeout=self.config.timeout
        ) as server:
            server.starttls()
            server.login(self.config.username, self.config.password)
            server.send_message(msg)


class LoggingNotifier:
    """Development stand-in that logs codes instead of mailing them."""

    async def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> None:
        logger.warning(f"[MOCK EMAIL] To: {email}, Subject: {SUBJECTS[purpose]}, OTP: {code}")


def build_notifier(config: SmtpConfig, otp_ttl_minutes: int = 10) -> INotifier:
    """SMTP delivery when configured, log output otherwise."""
    if config.enabled:
        logger.info(f"Using SMTP notifier via {config.host}:{config.port}")
        return SmtpEmailNotifier(config, otp_ttl_minutes)

    logger.warning("No SMTP credentials found. Using console logging for emails.")
    return LoggingNotifier()
