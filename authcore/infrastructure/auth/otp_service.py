"""
One-time password utilities.

Numeric codes for email delivery, plus TOTP (RFC 6238) enrollment and
verification compatible with Google Authenticator, Authy and similar apps.
"""

import base64
import io
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime

import pyotp
import qrcode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TotpSecret:
    """A freshly generated shared secret and its enrollment URI."""

    secret: str
    provisioning_uri: str


class OtpGenerator:
    """Generates and checks one-time codes."""

    def __init__(self, issuer: str = "Portfolio DevOps", code_length: int = 6):
        self.issuer = issuer
        self.code_length = code_length

    def generate_numeric_code(self, length: int | None = None) -> str:
        """
        Generate a uniformly random numeric code.

        Args:
            length: Number of digits (defaults to the configured length)

        Returns:
            Zero-padded digit string, e.g. ``"004217"``
        """
        digits = length or self.code_length
        return f"{secrets.randbelow(10**digits):0{digits}d}"

    def generate_totp_secret(self, account_name: str) -> TotpSecret:
        """
        Generate a new TOTP secret for enrollment.

        Args:
            account_name: Shown in the authenticator app, usually the email

        Returns:
            Base32 secret and its ``otpauth://`` provisioning URI
        """
        secret = pyotp.random_base32()
        return TotpSecret(
            secret=secret, provisioning_uri=self.provisioning_uri(secret, account_name)
        )

    def provisioning_uri(self, secret: str, account_name: str) -> str:
        return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=self.issuer)

    def verify_totp(
        self,
        secret: str,
        code: str,
        skew: int = 1,
        for_time: datetime | None = None,
    ) -> bool:
        """
        Verify a TOTP code against the secret.

        Args:
            secret: Base32-encoded TOTP secret
            code: Code entered by the user
            skew: Number of 30-second steps tolerated on each side
            for_time: Reference time (defaults to now)

        Returns:
            True if code is valid, False otherwise
        """
        if not secret or not code:
            return False

        # Authenticator apps often display "123 456"
        code = "".join(code.split())
        if len(code) != self.code_length or not (code.isascii() and code.isdigit()):
            return False

        try:
            return pyotp.TOTP(secret).verify(code, for_time=for_time, valid_window=skew)
        except Exception as e:
            # Corrupt stored secrets (bad base32) must read as a failed check
            logger.error(f"TOTP verification error: {e}")
            return False

    @staticmethod
    def qr_code_data_uri(uri: str) -> str:
        """
        Render ``uri`` as a PNG QR code.

        Returns:
            ``data:image/png;base64,...`` string ready for an ``<img>`` tag
        """
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(uri)
        qr.make(fit=True)

        buffer = io.BytesIO()
        qr.make_image(fill_color="black", back_color="white").save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
        return f"data:image/png;base64,{encoded}"
