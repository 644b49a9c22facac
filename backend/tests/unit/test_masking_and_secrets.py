"""Unit tests for sensitive value masking and secret encryption"""

import pytest

from infrastructure.secret_box import SecretBox
from observability.masking import LogMaskingService, mask_value


class TestMasking:
    def test_mask_value(self):
        assert mask_value("s3cr3t-value") == "s3********ue"
        assert mask_value("abcd") == "****"
        assert mask_value("") == "***"

    def test_nested_keys_are_masked(self):
        masked = LogMaskingService().mask({
            "email": "ada@acme.com",
            "credentials": {"user_password": "hunter2hunter2", "api_key": "key_1234567"},
            "items": [{"token": "tok_abcdef"}],
        })
        assert masked["email"] == "ada@acme.com"
        assert masked["credentials"]["user_password"] == "hu**********r2"
        assert masked["credentials"]["api_key"] == "ke*******67"
        assert masked["items"][0]["token"] == "to******ef"

    def test_input_not_mutated(self):
        data = {"password": "correct-horse"}
        LogMaskingService().mask(data)
        assert data["password"] == "correct-horse"


class TestSecretBox:
    def test_round_trip_with_context(self):
        box = SecretBox(pepper="unit-test-pepper")
        stored = box.encrypt("whsec_123", context="webhook:tenant-a")
        assert "whsec_123" not in stored
        assert box.decrypt(stored, context="webhook:tenant-a") == "whsec_123"

    def test_wrong_context_rejected(self):
        box = SecretBox(pepper="unit-test-pepper")
        stored = box.encrypt("whsec_123", context="webhook:tenant-a")
        with pytest.raises(ValueError):
            box.decrypt(stored, context="webhook:tenant-b")

    def test_other_key_rejected(self):
        stored = SecretBox(pepper="pepper-one").encrypt("whsec_123")
        with pytest.raises(ValueError):
            SecretBox(pepper="pepper-two").decrypt(stored)

    def test_malformed_payload(self):
        with pytest.raises(ValueError):
            SecretBox(pepper="unit-test-pepper").decrypt("not-json")
