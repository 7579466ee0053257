"""
Configuration Management - Loads authentication settings from the environment
"""

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta

from dotenv import load_dotenv

from authcore.domain.errors import ConfigurationError

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str | int, setting: str = "duration") -> timedelta:
    """
    Parse a duration such as ``"15m"``, ``"7d"``, ``"24h"`` or ``"900"``.

    Bare numbers are seconds.
    """
    if isinstance(value, int):
        return timedelta(seconds=value)

    match = _DURATION_RE.match(value)
    if not match:
        raise ConfigurationError(f"Invalid duration for {setting}: {value!r}", setting)

    amount, unit = match.groups()
    seconds = int(amount) * _DURATION_UNITS[unit.lower()]
    if seconds <= 0:
        raise ConfigurationError(f"{setting} must be positive", setting)
    return timedelta(seconds=seconds)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", name)


@dataclass
class SmtpConfig:
    """Outbound mail settings"""

    host: str | None = None
    port: int = 587
    username: str | None = None
    password: str | None = None
    from_address: str = "Portfolio Admin <noreply@portfolio.com>"
    timeout: float = 60.0

    @property
    def enabled(self) -> bool:
        return bool(self.host and self.username and self.password)

    @classmethod
    def from_env(cls) -> "SmtpConfig":
        """Load SMTP settings from environment variables"""
        username = os.getenv("SMTP_USER")
        password = os.getenv("SMTP_PASS")
        host = os.getenv("SMTP_HOST") or ("smtp.gmail.com" if username and password else None)
        return cls(
            host=host,
            port=_int_env("SMTP_PORT", 587),
            username=username,
            password=password,
            from_address=os.getenv("EMAIL_FROM", cls.from_address),
        )


@dataclass
class AuthConfig:
    """Authentication core settings"""

    access_token_secret: str
    refresh_token_secret: str
    otp_ttl: timedelta = timedelta(minutes=10)
    access_token_ttl: timedelta = timedelta(minutes=15)
    refresh_token_ttl: timedelta = timedelta(days=7)
    pending_token_ttl: timedelta = timedelta(minutes=10)
    reset_token_ttl: timedelta = timedelta(minutes=15)
    token_issuer: str = "authcore"
    totp_issuer: str = "Portfolio DevOps"
    otp_length: int = 6
    bcrypt_rounds: int = 12
    password_min_length: int = 8
    database_url: str = "sqlite:///./auth.db"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"
    environment: str = "development"
    smtp: SmtpConfig = field(default_factory=SmtpConfig)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Fail fast on settings that would make every request fail."""
        if not self.access_token_secret:
            raise ConfigurationError("ACCESS_TOKEN_SECRET is required", "ACCESS_TOKEN_SECRET")
        if not self.refresh_token_secret:
            raise ConfigurationError("REFRESH_TOKEN_SECRET is required", "REFRESH_TOKEN_SECRET")
        if self.access_token_secret == self.refresh_token_secret:
            raise ConfigurationError(
                "ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ", "REFRESH_TOKEN_SECRET"
            )
        if not 4 <= self.otp_length <= 10:
            raise ConfigurationError("OTP length must be between 4 and 10", "OTP_LENGTH")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ConfigurationError("BCRYPT_ROUNDS must be between 4 and 31", "BCRYPT_ROUNDS")

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Create configuration from environment variables (and a .env file)."""
        load_dotenv()

        otp_minutes = _int_env("OTP_TTL_MINUTES", 10)
        if otp_minutes <= 0:
            raise ConfigurationError("OTP_TTL_MINUTES must be positive", "OTP_TTL_MINUTES")

        config = cls(
            access_token_secret=os.getenv("ACCESS_TOKEN_SECRET", ""),
            refresh_token_secret=os.getenv("REFRESH_TOKEN_SECRET", ""),
            otp_ttl=timedelta(minutes=otp_minutes),
            access_token_ttl=parse_duration(
                os.getenv("ACCESS_TOKEN_TTL", "15m"), "ACCESS_TOKEN_TTL"
            ),
            refresh_token_ttl=parse_duration(
                os.getenv("REFRESH_TOKEN_TTL", "7d"), "REFRESH_TOKEN_TTL"
            ),
            pending_token_ttl=parse_duration(
                os.getenv("PENDING_TOKEN_TTL", "10m"), "PENDING_TOKEN_TTL"
            ),
            reset_token_ttl=parse_duration(os.getenv("RESET_TOKEN_TTL", "15m"), "RESET_TOKEN_TTL"),
            token_issuer=os.getenv("TOKEN_ISSUER", "authcore"),
            totp_issuer=os.getenv("TOTP_ISSUER", "Portfolio DevOps"),
            bcrypt_rounds=_int_env("BCRYPT_ROUNDS", 12),
            password_min_length=_int_env("PASSWORD_MIN_LENGTH", 8),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./auth.db"),
            cors_origins=[
                origin.strip()
                for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
                if origin.strip()
            ],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            environment=os.getenv("ENVIRONMENT", "development"),
            smtp=SmtpConfig.from_env(),
        )

        if not config.smtp.enabled:
            logger.warning("No SMTP credentials found. OTP emails will only be logged.")

        return config
