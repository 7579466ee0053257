"""Tests for password hashing and new-password policy."""

import pytest

from authcore.infrastructure.auth.password_service import (
    PasswordHasher,
    PasswordService,
    PasswordValidator,
)


class TestPasswordHasher:
    @pytest.fixture
    def hasher(self):
        return PasswordHasher(rounds=4)

    def test_hash_and_verify(self, hasher):
        password_hash = hasher.hash("correct-horse-battery")

        assert password_hash.startswith("$2")
        assert hasher.verify("correct-horse-battery", password_hash)
        assert not hasher.verify("wrong-password", password_hash)

    def test_hashes_are_salted(self, hasher):
        assert hasher.hash("same-password") != hasher.hash("same-password")

    def test_verify_against_garbage_hash(self, hasher):
        assert not hasher.verify("password", "not-a-bcrypt-hash")


class TestPasswordValidator:
    @pytest.fixture
    def validator(self):
        return PasswordValidator(min_length=8)

    def test_valid_password(self, validator):
        assert validator.validate("correct-horse-battery") == (True, [])

    def test_too_short(self, validator):
        is_valid, errors = validator.validate("short")

        assert not is_valid
        assert "at least 8 characters" in errors[0]

    def test_too_long_for_bcrypt(self, validator):
        is_valid, errors = validator.validate("x" * 73)

        assert not is_valid
        assert any("72 bytes" in error for error in errors)

    def test_surrounding_whitespace(self, validator):
        is_valid, _ = validator.validate(" padded-password ")
        assert not is_valid

    def test_common_password(self, validator):
        is_valid, errors = validator.validate("Password123")

        assert not is_valid
        assert "Password is too common" in errors


class TestPasswordService:
    @pytest.fixture
    def service(self):
        return PasswordService(rounds=4)

    def test_round_trip(self, service):
        password_hash = service.hash_password("correct-horse-battery")

        assert service.verify_password("correct-horse-battery", password_hash)
        assert not service.verify_password("correct-horse-batter", password_hash)

    def test_dummy_verify_runs_bcrypt_once_per_call(self, service):
        service.dummy_verify("anything")
        first = service._dummy_hash
        service.dummy_verify("anything else")

        assert service._dummy_hash is first

    def test_fingerprint_changes_with_hash(self, service):
        first = service.hash_password("correct-horse-battery")
        second = service.hash_password("correct-horse-battery")

        assert len(PasswordService.fingerprint(first)) == 16
        assert PasswordService.fingerprint(first) == PasswordService.fingerprint(first)
        assert PasswordService.fingerprint(first) != PasswordService.fingerprint(second)
