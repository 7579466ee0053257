"""
Tests for the SQLAlchemy credential store.

Uses an in-memory SQLite database shared through a static pool; the OTP race
test runs real threads against a file-backed database.
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from authcore.application.interfaces.exceptions import DuplicateEmailError, RepositoryError
from authcore.domain.entities import MfaMethod, User
from authcore.infrastructure.repositories.database import create_db_engine, create_session_factory
from authcore.infrastructure.repositories.user_repository import SqlAlchemyCredentialStore


def make_user(email="admin@example.com", **fields) -> User:
    return User(email=email, password_hash="$2b$04$hash", **fields)


class TestCreateAndFind:
    @pytest.mark.asyncio
    async def test_create_and_find_by_id(self, store):
        created = await store.create(make_user(role="admin"))

        found = await store.find_by_id(created.id)

        assert found is not None
        assert found.id == created.id
        assert found.email == "admin@example.com"
        assert found.role == "admin"
        assert found.mfa_enabled is True
        assert found.mfa_method is MfaMethod.EMAIL
        assert found.otp is None
        assert found.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_find_by_email_is_case_insensitive(self, store):
        await store.create(make_user("Admin@Example.com"))

        found = await store.find_by_email("  ADMIN@example.COM ")

        assert found is not None
        assert found.email == "admin@example.com"

    @pytest.mark.asyncio
    async def test_find_missing(self, store):
        assert await store.find_by_email("nobody@example.com") is None
        assert await store.find_by_id("missing-id") is None

    @pytest.mark.asyncio
    async def test_duplicate_email(self, store):
        await store.create(make_user("admin@example.com"))

        with pytest.raises(DuplicateEmailError):
            await store.create(make_user("ADMIN@example.com"))


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_fields(self, store):
        user = await store.create(make_user())

        updated = await store.update(
            user.id, mfa_method=MfaMethod.TOTP, totp_secret="JBSWY3DPEHPK3PXP", mfa_enabled=False
        )

        assert updated is not None
        assert updated.mfa_method is MfaMethod.TOTP
        assert updated.totp_secret == "JBSWY3DPEHPK3PXP"
        assert updated.mfa_enabled is False
        assert updated.updated_at >= user.updated_at

    @pytest.mark.asyncio
    async def test_mfa_method_accepts_string(self, store):
        user = await store.create(make_user())

        updated = await store.update(user.id, mfa_method="totp")

        assert updated.mfa_method is MfaMethod.TOTP

    @pytest.mark.asyncio
    async def test_unknown_mfa_method(self, store):
        user = await store.create(make_user())

        with pytest.raises(ValueError):
            await store.update(user.id, mfa_method="sms")

    @pytest.mark.asyncio
    async def test_update_missing_user(self, store):
        assert await store.update("missing-id", role="admin") is None

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, store):
        user = await store.create(make_user())

        with pytest.raises(ValueError, match="Unknown user fields"):
            await store.update(user.id, is_superuser=True)

    @pytest.mark.asyncio
    async def test_otp_fields_must_move_together(self, store):
        user = await store.create(make_user())

        with pytest.raises(ValueError):
            await store.update(user.id, otp="123456")
        with pytest.raises(ValueError):
            await store.update(user.id, otp="123456", otp_expires=None)

    @pytest.mark.asyncio
    async def test_otp_round_trip_keeps_utc(self, store):
        user = await store.create(make_user())
        expires = datetime.now(UTC) + timedelta(minutes=10)

        updated = await store.update(user.id, otp="123456", otp_expires=expires)

        assert updated.otp == "123456"
        assert updated.otp_expires.tzinfo is not None
        assert abs(updated.otp_expires - expires) < timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_email_change_to_existing_email(self, store):
        await store.create(make_user("first@example.com"))
        second = await store.create(make_user("second@example.com"))

        with pytest.raises(DuplicateEmailError):
            await store.update(second.id, email="FIRST@example.com")


class TestListAndDelete:
    @pytest.mark.asyncio
    async def test_list_users(self, store):
        await store.create(make_user("a@example.com"))
        await store.create(make_user("b@example.com", role="admin"))

        users = await store.list_users()

        assert sorted(user.email for user in users) == ["a@example.com", "b@example.com"]

    @pytest.mark.asyncio
    async def test_list_empty(self, store):
        assert await store.list_users() == []

    @pytest.mark.asyncio
    async def test_delete(self, store):
        user = await store.create(make_user())

        assert await store.delete(user.id) is True
        assert await store.find_by_id(user.id) is None
        assert await store.delete(user.id) is False

    @pytest.mark.asyncio
    async def test_deleted_email_can_be_registered_again(self, store):
        user = await store.create(make_user())
        await store.delete(user.id)

        recreated = await store.create(make_user())

        assert recreated.id != user.id


class TestConsumeOtp:
    @pytest.fixture
    def now(self):
        return datetime.now(UTC)

    @pytest.mark.asyncio
    async def test_consume_clears_code(self, store, now):
        user = await store.create(make_user())
        await store.update(user.id, otp="123456", otp_expires=now + timedelta(minutes=10))

        assert await store.consume_otp(user.id, "123456", now) is True

        refreshed = await store.find_by_id(user.id)
        assert refreshed.otp is None
        assert refreshed.otp_expires is None

    @pytest.mark.asyncio
    async def test_consume_is_single_use(self, store, now):
        user = await store.create(make_user())
        await store.update(user.id, otp="123456", otp_expires=now + timedelta(minutes=10))

        assert await store.consume_otp(user.id, "123456", now) is True
        assert await store.consume_otp(user.id, "123456", now) is False

    def test_concurrent_consumers_only_one_wins(self, tmp_path, now):
        engine = create_db_engine(
            f"sqlite:///{tmp_path / 'auth.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        try:
            store = SqlAlchemyCredentialStore(create_session_factory(engine))
            user = asyncio.run(store.create(make_user()))
            asyncio.run(
                store.update(user.id, otp="123456", otp_expires=now + timedelta(minutes=10))
            )
            start = threading.Barrier(5)

            def consume() -> bool:
                start.wait()
                return asyncio.run(store.consume_otp(user.id, "123456", now))

            with ThreadPoolExecutor(max_workers=5) as pool:
                results = list(pool.map(lambda _: consume(), range(5)))

            assert results.count(True) == 1
            assert asyncio.run(store.find_by_id(user.id)).otp is None
        finally:
            engine.dispose()

    @pytest.mark.asyncio
    async def test_wrong_code_leaves_otp(self, store, now):
        user = await store.create(make_user())
        await store.update(user.id, otp="123456", otp_expires=now + timedelta(minutes=10))

        assert await store.consume_otp(user.id, "654321", now) is False
        assert (await store.find_by_id(user.id)).otp == "123456"

    @pytest.mark.asyncio
    async def test_expired_code_not_consumed(self, store, now):
        user = await store.create(make_user())
        await store.update(user.id, otp="123456", otp_expires=now - timedelta(seconds=1))

        assert await store.consume_otp(user.id, "123456", now) is False


class TestErrors:
    @pytest.mark.asyncio
    async def test_database_errors_wrapped(self):
        def broken_factory():
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        store = SqlAlchemyCredentialStore(broken_factory)

        with pytest.raises(RepositoryError):
            await store.find_by_id("user-1")
