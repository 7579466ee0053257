"""
Authentication orchestrator.

Drives the login state machine: password check, email OTP or TOTP second
factor, pending tokens, session issuance with refresh-token rotation, and the
password reset flow. It keeps no state between requests; everything mutable
lives in the credential store.
"""

import hmac
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from authcore.application.interfaces.credential_store import ICredentialStore
from authcore.application.interfaces.exceptions import DuplicateEmailError, RepositoryError
from authcore.application.interfaces.notifier import INotifier, OtpPurpose
from authcore.config import AuthConfig
from authcore.domain.entities import MfaMethod, User
from authcore.domain.errors import AuthError, AuthFailure

from ..jwt_service import TokenIssuer
from ..otp_service import OtpGenerator
from ..password_service import PasswordService
from ..types import (
    LoginOutcome,
    OtpDispatched,
    PasswordResetAuthorization,
    PasswordResetRequested,
    SessionTokenPair,
    TotpEnrollment,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _codes_equal(expected: str, supplied: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


class AuthenticationOrchestrator:
    """
    Credential and MFA authentication service.

    Expected failures are returned as ``AuthFailure`` values. MFA, resend and
    reset verification failures are wrapped in umbrella errors so callers
    cannot tell which check failed; the specific reason stays in ``cause``.
    """

    def __init__(
        self,
        store: ICredentialStore,
        token_issuer: TokenIssuer,
        otp_generator: OtpGenerator,
        password_service: PasswordService,
        notifier: INotifier,
        otp_ttl: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the orchestrator with its collaborators.

        Args:
            store: Durable user records
            token_issuer: Signs and verifies every token kind
            otp_generator: Numeric codes and TOTP checks
            password_service: Hashing and new-password policy
            notifier: Delivers one-time codes by email
            otp_ttl: Lifetime of emailed codes
            clock: Source of the current UTC time
        """
        self.store = store
        self.token_issuer = token_issuer
        self.otp_generator = otp_generator
        self.password_service = password_service
        self.notifier = notifier
        self.otp_ttl = otp_ttl
        self.clock = clock

    @classmethod
    def from_config(
        cls, config: AuthConfig, store: ICredentialStore, notifier: INotifier
    ) -> "AuthenticationOrchestrator":
        return cls(
            store=store,
            token_issuer=TokenIssuer.from_config(config),
            otp_generator=OtpGenerator(issuer=config.totp_issuer, code_length=config.otp_length),
            password_service=PasswordService(
                rounds=config.bcrypt_rounds, min_length=config.password_min_length
            ),
            notifier=notifier,
            otp_ttl=config.otp_ttl,
        )

    # Credentials and login

    async def validate_credentials(self, email: str, password: str) -> User | AuthFailure:
        """
        Check an email/password pair.

        Unknown emails still pay for a bcrypt check, and both failure cases
        return the same ``INVALID_CREDENTIALS`` value.
        """
        user = await self.store.find_by_email(email)

        if user is None:
            self.password_service.dummy_verify(password)
            logger.warning("Login failed: unknown account")
            return AuthFailure(AuthError.INVALID_CREDENTIALS)

        if not self.password_service.verify_password(password, user.password_hash):
            logger.warning(f"Login failed: invalid password for user {user.id}")
            return AuthFailure(AuthError.INVALID_CREDENTIALS)

        return user

    async def login(self, user: User) -> LoginOutcome | SessionTokenPair:
        """
        Start a session for a user whose password has been verified.

        Returns tokens directly when MFA is off; otherwise a fresh pending
        token, after storing and emailing a code for the email method.
        """
        if not user.mfa_enabled:
            return await self.issue_session(user)

        pending_token = self.token_issuer.create_pending_token(user.id)

        if user.mfa_method is MfaMethod.TOTP:
            logger.info(f"TOTP challenge issued for user {user.id}")
            return LoginOutcome(
                mfa_method=MfaMethod.TOTP,
                pending_token=pending_token,
                totp_setup_required=not user.totp_secret,
            )

        code = await self._store_new_otp(user)
        if code is not None:
            # Delivery problems are logged; the login response still goes out
            await self._send_otp(user, code, OtpPurpose.LOGIN)

        logger.info(f"Email OTP challenge issued for user {user.id}")
        return LoginOutcome(mfa_method=MfaMethod.EMAIL, pending_token=pending_token)

    async def authenticate(
        self, email: str, password: str
    ) -> LoginOutcome | SessionTokenPair | AuthFailure:
        """Validate credentials, then run ``login``."""
        user = await self.validate_credentials(email, password)
        if isinstance(user, AuthFailure):
            return user
        return await self.login(user)

    # TOTP enrollment

    async def enroll_totp(
        self, user_id: str, email: str | None = None
    ) -> TotpEnrollment | AuthFailure:
        """
        Generate and store a new authenticator secret.

        Any previous secret is replaced immediately, so apps that scanned the
        old QR code stop producing valid codes.
        """
        user = await self.store.find_by_id(user_id)
        if user is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)

        totp = self.otp_generator.generate_totp_secret(email or user.email)
        if await self.store.update(user.id, totp_secret=totp.secret) is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)

        logger.info(f"TOTP secret (re)generated for user {user.id}")
        return TotpEnrollment(
            secret=totp.secret,
            provisioning_uri=totp.provisioning_uri,
            qr_code=self.otp_generator.qr_code_data_uri(totp.provisioning_uri),
        )

    # MFA verification

    async def verify_mfa(
        self, pending_token: str, code: str, method_hint: str | None = None
    ) -> SessionTokenPair | AuthFailure:
        """
        Complete login with a second factor.

        Every failure, including unexpected errors, is reported as
        ``MFA_VERIFICATION_FAILED``.
        """
        try:
            result = await self._verify_mfa(pending_token, code, method_hint)
        except Exception:
            logger.exception("Unexpected error during MFA verification")
            return AuthFailure(AuthError.MFA_VERIFICATION_FAILED)

        if isinstance(result, AuthFailure):
            logger.warning(f"MFA verification failed: {result.reason.value}")
            return result.wrap(AuthError.MFA_VERIFICATION_FAILED)

        return result

    async def _verify_mfa(
        self, pending_token: str, code: str, method_hint: str | None
    ) -> SessionTokenPair | AuthFailure:
        user = await self._resolve_pending_user(pending_token)
        if isinstance(user, AuthFailure):
            return user

        if method_hint:
            method = MfaMethod.parse(method_hint)
            if method is None:
                return AuthFailure(AuthError.INVALID_OTP, detail=f"unknown method {method_hint!r}")
        else:
            method = user.mfa_method or MfaMethod.EMAIL

        if method is MfaMethod.TOTP:
            failure = self._check_totp(user, code)
        else:
            failure = await self._consume_email_otp(user, code)

        if failure is not None:
            return failure

        return await self.issue_session(user)

    async def _resolve_pending_user(self, pending_token: str) -> User | AuthFailure:
        claims = self.token_issuer.verify_pending_token(pending_token)
        if isinstance(claims, AuthFailure):
            return claims

        user = await self.store.find_by_id(str(claims["sub"]))
        if user is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)
        return user

    async def _consume_email_otp(self, user: User, code: str) -> AuthFailure | None:
        """Check the stored email code and clear it on success (single use)."""
        now = self.clock()

        if not user.has_pending_otp:
            return AuthFailure(AuthError.NO_PENDING_OTP)
        if user.otp_expired(now):
            return AuthFailure(AuthError.OTP_EXPIRED)
        if not code or not _codes_equal(str(user.otp), code):
            return AuthFailure(AuthError.INVALID_OTP)

        # Another request may have used the same code in the meantime
        if not await self.store.consume_otp(user.id, code, now):
            return AuthFailure(AuthError.NO_PENDING_OTP, detail="code already used")

        return None

    def _check_totp(self, user: User, code: str) -> AuthFailure | None:
        if not user.totp_secret:
            return AuthFailure(AuthError.TOTP_NOT_CONFIGURED)
        if not self.otp_generator.verify_totp(user.totp_secret, code, skew=1):
            return AuthFailure(AuthError.INVALID_OTP)
        return None

    # Sessions

    async def issue_session(self, user: User) -> SessionTokenPair:
        """
        Mint an access/refresh pair and record the refresh token hash.

        This is the only place sessions are created, so every issuance also
        rotates the stored refresh token hash.
        """
        access_token = self.token_issuer.create_access_token(user)
        refresh_token = self.token_issuer.create_refresh_token(user)

        await self.update_refresh_token(user.id, refresh_token)

        logger.info(f"Session issued for user {user.id}")
        return SessionTokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.token_issuer.access_token_ttl.total_seconds()),
        )

    async def update_refresh_token(self, user_id: str, refresh_token: str) -> None:
        updated = await self.store.update(
            user_id, refresh_token_hash=TokenIssuer.hash_token(refresh_token)
        )
        if updated is None:
            raise RepositoryError(f"User {user_id} disappeared while issuing a session")

    async def refresh_session(self, refresh_token: str) -> SessionTokenPair | AuthFailure:
        """
        Exchange a refresh token for a new pair.

        Only the most recently issued refresh token is honoured; older ones
        and tokens issued before a logout are rejected.
        """
        claims = self.token_issuer.verify_refresh_token(refresh_token)
        if isinstance(claims, AuthFailure):
            return claims

        user = await self.store.find_by_id(str(claims["sub"]))
        if user is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)

        if not TokenIssuer.token_matches_hash(refresh_token, user.refresh_token_hash):
            logger.warning(f"Stale or revoked refresh token presented for user {user.id}")
            return AuthFailure(AuthError.REFRESH_TOKEN_REVOKED)

        return await self.issue_session(user)

    async def logout(self, user_id: str) -> bool:
        """
        Forget the stored refresh token hash.

        Access tokens already handed out stay valid until they expire.
        """
        updated = await self.store.update(user_id, refresh_token_hash=None)
        if updated is None:
            logger.warning(f"Logout requested for unknown user {user_id}")
            return False

        logger.info(f"User {user_id} logged out")
        return True

    # OTP delivery

    async def resend_otp(self, pending_token: str) -> OtpDispatched | AuthFailure:
        """Store and send a fresh email code, replacing any previous one."""
        try:
            result = await self._resend_otp(pending_token)
        except Exception:
            logger.exception("Unexpected error while resending OTP")
            return AuthFailure(AuthError.OTP_RESEND_FAILED)

        if isinstance(result, AuthFailure):
            logger.warning(f"OTP resend failed: {result.reason.value}")
            return result.wrap(AuthError.OTP_RESEND_FAILED)

        return result

    async def _resend_otp(self, pending_token: str) -> OtpDispatched | AuthFailure:
        user = await self._resolve_pending_user(pending_token)
        if isinstance(user, AuthFailure):
            return user

        if user.mfa_method is not MfaMethod.EMAIL:
            return AuthFailure(AuthError.RESEND_NOT_AVAILABLE)

        code = await self._store_new_otp(user)
        if code is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)

        if not await self._send_otp(user, code, OtpPurpose.LOGIN):
            return AuthFailure(AuthError.OTP_DELIVERY_FAILED)

        return OtpDispatched()

    async def _store_new_otp(self, user: User) -> str | None:
        """Overwrite the user's code; returns None if the user no longer exists."""
        code = self.otp_generator.generate_numeric_code()
        expires = self.clock() + self.otp_ttl

        if await self.store.update(user.id, otp=code, otp_expires=expires) is None:
            logger.warning(f"Could not store OTP: user {user.id} not found")
            return None
        return code

    async def _send_otp(self, user: User, code: str, purpose: OtpPurpose) -> bool:
        try:
            await self.notifier.send_otp(user.email, code, purpose)
        except Exception:
            logger.exception(f"Failed to deliver {purpose.value} OTP to user {user.id}")
            return False
        return True

    # Password reset

    async def forgot_password(self, email: str) -> PasswordResetRequested | AuthFailure:
        """
        Email a reset code.

        The result is the same whether or not the email is registered; only a
        delivery failure for a real account is reported.
        """
        user = await self.store.find_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return PasswordResetRequested()

        code = await self._store_new_otp(user)
        if code is None:
            return PasswordResetRequested()

        if not await self._send_otp(user, code, OtpPurpose.RESET):
            return AuthFailure(AuthError.OTP_DELIVERY_FAILED)

        logger.info(f"Password reset code issued for user {user.id}")
        return PasswordResetRequested()

    async def verify_reset_otp(
        self, email: str, otp: str
    ) -> PasswordResetAuthorization | AuthFailure:
        """Trade a valid reset code for a short-lived reset token."""
        try:
            result = await self._verify_reset_otp(email, otp)
        except Exception:
            logger.exception("Unexpected error during reset OTP verification")
            return AuthFailure(AuthError.RESET_VERIFICATION_FAILED)

        if isinstance(result, AuthFailure):
            logger.warning(f"Reset OTP verification failed: {result.reason.value}")
            return result.wrap(AuthError.RESET_VERIFICATION_FAILED)

        return result

    async def _verify_reset_otp(
        self, email: str, otp: str
    ) -> PasswordResetAuthorization | AuthFailure:
        user = await self.store.find_by_email(email)
        if user is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)

        failure = await self._consume_email_otp(user, otp)
        if failure is not None:
            return failure

        reset_token = self.token_issuer.create_reset_token(
            user, PasswordService.fingerprint(user.password_hash)
        )
        return PasswordResetAuthorization(reset_token=reset_token)

    async def reset_password(self, reset_token: str, new_password: str) -> bool | AuthFailure:
        """
        Set a new password using a reset token.

        The token is bound to the password it was issued against, so it cannot
        be replayed after a successful reset. Outstanding refresh tokens are
        revoked.
        """
        is_valid, errors = self.password_service.validate_password(new_password)
        if not is_valid:
            return AuthFailure(AuthError.WEAK_PASSWORD, detail="; ".join(errors))

        try:
            result = await self._reset_password(reset_token, new_password)
        except Exception:
            logger.exception("Unexpected error during password reset")
            return AuthFailure(AuthError.PASSWORD_RESET_FAILED)

        if isinstance(result, AuthFailure):
            logger.warning(f"Password reset failed: {result.reason.value}")
            return result.wrap(AuthError.PASSWORD_RESET_FAILED)

        return result

    async def _reset_password(self, reset_token: str, new_password: str) -> bool | AuthFailure:
        claims = self.token_issuer.verify_reset_token(reset_token)
        if isinstance(claims, AuthFailure):
            return claims

        user = await self.store.find_by_id(str(claims["sub"]))
        if user is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)

        fingerprint = PasswordService.fingerprint(user.password_hash)
        if not _codes_equal(fingerprint, str(claims.get("pwd", ""))):
            return AuthFailure(AuthError.INVALID_TOKEN, detail="password changed since token issue")

        updated = await self.store.update(
            user.id,
            password_hash=self.password_service.hash_password(new_password),
            refresh_token_hash=None,
        )
        if updated is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)

        logger.info(f"Password reset for user {user.id}")
        return True

    # User administration

    async def get_user(self, user_id: str) -> User | AuthFailure:
        user = await self.store.find_by_id(user_id)
        return user if user is not None else AuthFailure(AuthError.USER_NOT_FOUND)

    async def list_users(self) -> list[User]:
        return await self.store.list_users()

    async def delete_user(self, user_id: str) -> bool | AuthFailure:
        if not await self.store.delete(user_id):
            return AuthFailure(AuthError.USER_NOT_FOUND)

        logger.info(f"Deleted user {user_id}")
        return True

    async def provision_user(
        self,
        email: str,
        password: str,
        role: str = "user",
        mfa_enabled: bool = True,
        mfa_method: MfaMethod = MfaMethod.EMAIL,
    ) -> User | AuthFailure:
        """Create a user with a hashed password."""
        is_valid, errors = self.password_service.validate_password(password)
        if not is_valid:
            return AuthFailure(AuthError.WEAK_PASSWORD, detail="; ".join(errors))

        user = User(
            email=email,
            password_hash=self.password_service.hash_password(password),
            role=role,
            mfa_enabled=mfa_enabled,
            mfa_method=mfa_method,
        )
        try:
            return await self.store.create(user)
        except DuplicateEmailError:
            logger.warning("Attempt to register an existing email")
            return AuthFailure(AuthError.EMAIL_ALREADY_REGISTERED)

    async def set_mfa_enabled(self, user_id: str, enabled: bool) -> User | AuthFailure:
        user = await self.store.update(user_id, mfa_enabled=enabled)
        if user is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)

        logger.info(f"MFA {'enabled' if enabled else 'disabled'} for user {user_id}")
        return user

    async def set_mfa_method(self, user_id: str, method: str | MfaMethod) -> User | AuthFailure:
        parsed = MfaMethod.parse(method)
        if parsed is None:
            return AuthFailure(AuthError.INVALID_MFA_METHOD, detail=str(method))

        user = await self.store.update(user_id, mfa_method=parsed)
        if user is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)

        logger.info(f"MFA method set to {parsed.value} for user {user_id}")
        return user

    async def change_password(self, user_id: str, new_password: str) -> bool | AuthFailure:
        """Administrative password overwrite; revokes refresh tokens."""
        is_valid, errors = self.password_service.validate_password(new_password)
        if not is_valid:
            return AuthFailure(AuthError.WEAK_PASSWORD, detail="; ".join(errors))

        updated = await self.store.update(
            user_id,
            password_hash=self.password_service.hash_password(new_password),
            refresh_token_hash=None,
        )
        if updated is None:
            return AuthFailure(AuthError.USER_NOT_FOUND)

        logger.info(f"Password changed for user {user_id}")
        return True
