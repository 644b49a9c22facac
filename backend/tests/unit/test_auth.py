"""Unit tests for JWT tokens, password hashing and the password policy

Tests cover:
- Token claims for tenant users and platform operators
- Expired and tampered tokens
- Argon2id hashing with the server-side pepper
- Policy checks (length, common passwords, weak patterns, personal data)
"""

import time
from uuid import uuid4

import jwt
import pytest

from auth.jwt import create_access_token, decode_token
from auth.password import hash_password, needs_rehash, verify_password
from auth.password_policy import PasswordValidationError, check_password_strength, validate_password

SECRET = "unit-test-secret-key-256-bits-minimum-length-required-for-security"


@pytest.fixture(autouse=True)
def jwt_env(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", SECRET)
    monkeypatch.setenv("JWT_EXPIRY_MINUTES", "60")


class TestAccessToken:
    def test_tenant_user_claims(self):
        user_id, tenant_id = uuid4(), uuid4()

        payload = decode_token(create_access_token(user_id=user_id, tenant_id=tenant_id, email="ada@acme.com"))

        assert payload["sub"] == str(user_id)
        assert payload["tenant_id"] == str(tenant_id)
        assert payload["email"] == "ada@acme.com"
        assert payload["exp"] - payload["iat"] == 3600

    def test_platform_operator_has_no_tenant(self):
        payload = decode_token(create_access_token(user_id=uuid4(), tenant_id=None, email="ops@platform.com"))

        assert payload["tenant_id"] is None

    def test_expiry_from_environment(self, monkeypatch):
        monkeypatch.setenv("JWT_EXPIRY_MINUTES", "5")

        payload = decode_token(create_access_token(user_id=uuid4(), tenant_id=uuid4(), email="a@acme.com"))

        assert payload["exp"] - payload["iat"] == 300

    def test_expired_token(self):
        now = int(time.time())
        token = jwt.encode({"sub": str(uuid4()), "iat": now - 120, "exp": now - 60}, SECRET, algorithm="HS256")

        with pytest.raises(jwt.ExpiredSignatureError, match="Token has expired"):
            decode_token(token)

    def test_tampered_payload(self):
        token = create_access_token(user_id=uuid4(), tenant_id=uuid4(), email="a@acme.com")
        header, _, signature = token.split(".")
        forged = jwt.encode({"sub": str(uuid4())}, "other-secret-key-with-plenty-of-length-00000", algorithm="HS256")

        with pytest.raises(jwt.InvalidTokenError):
            decode_token(f"{header}.{forged.split('.')[1]}.{signature}")

    def test_garbage_token(self):
        with pytest.raises(jwt.InvalidTokenError):
            decode_token("not-a-token")


class TestPasswordHashing:
    def test_hash_and_verify(self, monkeypatch):
        monkeypatch.setenv("PASSWORD_PEPPER", "pepper-one")

        hashed = hash_password("Harbor-Lantern-2026!")

        assert hashed.startswith("$argon2id$")
        assert verify_password("Harbor-Lantern-2026!", hashed) is True
        assert verify_password("harbor-lantern-2026!", hashed) is False

    def test_salted(self, monkeypatch):
        monkeypatch.setenv("PASSWORD_PEPPER", "pepper-one")

        assert hash_password("Harbor-Lantern-2026!") != hash_password("Harbor-Lantern-2026!")

    def test_pepper_change_invalidates_hash(self, monkeypatch):
        monkeypatch.setenv("PASSWORD_PEPPER", "pepper-one")
        hashed = hash_password("Harbor-Lantern-2026!")

        monkeypatch.setenv("PASSWORD_PEPPER", "pepper-two")

        assert verify_password("Harbor-Lantern-2026!", hashed) is False

    @pytest.mark.parametrize("bad_hash", ["", "not-a-valid-hash", "$argon2id$invalid"])
    def test_invalid_hashes(self, bad_hash):
        assert verify_password("Harbor-Lantern-2026!", bad_hash) is False

    def test_empty_password(self):
        assert verify_password("", "$argon2id$whatever") is False
        with pytest.raises(ValueError, match="cannot be empty"):
            hash_password("")

    def test_needs_rehash(self):
        assert needs_rehash(hash_password("Harbor-Lantern-2026!")) is False
        assert needs_rehash("garbage") is True


class TestPasswordPolicy:
    def test_strong_password(self):
        assert validate_password("Harbor-Lantern-2026!") == []

    @pytest.mark.parametrize(
        "password, message",
        [
            ("Short1!", "at least 12 characters"),
            ("passwordpassword", "too common"),
            ("aaaaaaaaaaaaaa", "weak pattern"),
            ("123123123123", "weak pattern"),
        ],
    )
    def test_rejected(self, password, message):
        errors = validate_password(password)

        assert any(message in error for error in errors)

    def test_personal_data_rejected(self):
        errors = validate_password("grace-hopper-2026!", user_context=["grace@acme.com", "Grace Hopper", "Acme"])

        assert errors == ["Password cannot contain your name, email, or tenant name"]

    def test_check_raises_with_all_errors(self):
        with pytest.raises(PasswordValidationError) as exc_info:
            check_password_strength("password")

        assert exc_info.value.message == "Password does not meet security requirements"
        assert len(exc_info.value.errors) == 2
