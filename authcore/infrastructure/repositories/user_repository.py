"""
SQLAlchemy implementation of the credential store.

Each call runs in its own session and transaction. Writes are single UPDATE
statements keyed by id, so concurrent requests never see a half-applied
change to a user record.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from authcore.application.interfaces.exceptions import DuplicateEmailError, RepositoryError
from authcore.domain.entities import MfaMethod, User, normalize_email
from authcore.infrastructure.auth.models import UserRecord

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "email",
        "password_hash",
        "role",
        "refresh_token_hash",
        "mfa_enabled",
        "mfa_method",
        "totp_secret",
        "otp",
        "otp_expires",
    }
)


def _to_db_datetime(value: datetime | None) -> datetime | None:
    """Store timestamps as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _from_db_datetime(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class SqlAlchemyCredentialStore:
    """Credential store backed by the ``users`` table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    async def find_by_email(self, email: str) -> User | None:
        try:
            with self._session_factory() as session:
                record = session.execute(
                    select(UserRecord).where(UserRecord.email == normalize_email(email))
                ).scalar_one_or_none()
                return self._to_entity(record) if record else None
        except SQLAlchemyError as e:
            raise RepositoryError("Failed to look up user by email", e)

    async def find_by_id(self, user_id: str) -> User | None:
        try:
            with self._session_factory() as session:
                record = session.get(UserRecord, str(user_id))
                return self._to_entity(record) if record else None
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to look up user {user_id}", e)

    async def update(self, user_id: str, **fields: Any) -> User | None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")
        if ("otp" in fields) != ("otp_expires" in fields):
            raise ValueError("otp and otp_expires must be updated together")
        if "otp" in fields and (fields["otp"] is None) != (fields["otp_expires"] is None):
            raise ValueError("otp and otp_expires must both be set or both be cleared")

        values = {name: self._to_column(name, value) for name, value in fields.items()}
        values["updated_at"] = _to_db_datetime(datetime.now(UTC))

        try:
            with self._session_factory.begin() as session:
                result = session.execute(
                    sa_update(UserRecord)
                    .where(UserRecord.id == str(user_id))
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    return None
                record = session.get(UserRecord, str(user_id))
                return self._to_entity(record) if record else None
        except IntegrityError as e:
            if "email" in fields:
                raise DuplicateEmailError(normalize_email(fields["email"]))
            raise RepositoryError(f"Failed to update user {user_id}", e)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to update user {user_id}", e)

    async def create(self, user: User) -> User:
        record = UserRecord(
            id=user.id,
            email=normalize_email(user.email),
            password_hash=user.password_hash,
            role=user.role,
            refresh_token_hash=user.refresh_token_hash,
            mfa_enabled=user.mfa_enabled,
            mfa_method=user.mfa_method.value,
            totp_secret=user.totp_secret,
            otp=user.otp,
            otp_expires=_to_db_datetime(user.otp_expires),
            created_at=_to_db_datetime(user.created_at),
            updated_at=_to_db_datetime(user.updated_at),
        )
        try:
            with self._session_factory.begin() as session:
                session.add(record)
                session.flush()
                created = self._to_entity(record)
        except IntegrityError:
            raise DuplicateEmailError(record.email)
        except SQLAlchemyError as e:
            raise RepositoryError("Failed to create user", e)

        logger.info(f"Created user {created.id}")
        return created

    async def list_users(self) -> list[User]:
        try:
            with self._session_factory() as session:
                records = session.execute(
                    select(UserRecord).order_by(UserRecord.created_at, UserRecord.email)
                ).scalars()
                return [self._to_entity(record) for record in records]
        except SQLAlchemyError as e:
            raise RepositoryError("Failed to list users", e)

    async def delete(self, user_id: str) -> bool:
        try:
            with self._session_factory.begin() as session:
                result = session.execute(
                    sa_delete(UserRecord)
                    .where(UserRecord.id == str(user_id))
                    .execution_options(synchronize_session=False)
                )
                return bool(result.rowcount == 1)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to delete user {user_id}", e)

    async def consume_otp(self, user_id: str, code: str, now: datetime) -> bool:
        """
        Compare-and-clear the stored OTP.

        The WHERE clause re-checks code and expiry, so when two requests race
        with the same valid code only one statement matches a row.
        """
        try:
            with self._session_factory.begin() as session:
                result = session.execute(
                    sa_update(UserRecord)
                    .where(
                        UserRecord.id == str(user_id),
                        UserRecord.otp == code,
                        UserRecord.otp_expires >= _to_db_datetime(now),
                    )
                    .values(
                        otp=None,
                        otp_expires=None,
                        updated_at=_to_db_datetime(datetime.now(UTC)),
                    )
                    .execution_options(synchronize_session=False)
                )
                return bool(result.rowcount == 1)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to consume OTP for user {user_id}", e)

    @staticmethod
    def _to_column(name: str, value: Any) -> Any:
        if name == "email" and value is not None:
            return normalize_email(value)
        if name == "mfa_method":
            method = MfaMethod.parse(value)
            if method is None:
                raise ValueError(f"Unknown MFA method: {value!r}")
            return method.value
        if name == "otp_expires":
            return _to_db_datetime(value)
        return value

    @staticmethod
    def _to_entity(record: UserRecord) -> User:
        return User(
            id=str(record.id),
            email=str(record.email),
            password_hash=str(record.password_hash),
            role=str(record.role or "user"),
            refresh_token_hash=record.refresh_token_hash,
            mfa_enabled=bool(record.mfa_enabled),
            mfa_method=MfaMethod.parse(record.mfa_method) or MfaMethod.EMAIL,
            totp_secret=record.totp_secret,
            otp=record.otp,
            otp_expires=_from_db_datetime(record.otp_expires),
            created_at=_from_db_datetime(record.created_at) or datetime.now(UTC),
            updated_at=_from_db_datetime(record.updated_at) or datetime.now(UTC),
        )
