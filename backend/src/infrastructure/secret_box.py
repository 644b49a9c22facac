"""At-rest encryption for tenant secrets using AES-256-GCM.

Webhook signing secrets and per-tenant ZKBioTime passwords are stored
encrypted. The key is derived from PASSWORD_PEPPER with HKDF, so the
database alone never reveals them.

Stored format (JSON string):
    {"v": 1, "n": "<b64 nonce>", "c": "<b64 ciphertext>", "ctx": "webhook:<id>"}
"""

import base64
import json
import os
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from config import settings


@dataclass
class EncryptedSecret:
    """Encrypted secret container.

    Attributes:
        version: Encryption format version
        nonce: Base64-encoded 96-bit nonce
        ciphertext: Base64-encoded ciphertext with GCM tag
        context: Associated data the secret is bound to
    """
    version: int
    nonce: str
    ciphertext: str
    context: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({"v": self.version, "n": self.nonce, "c": self.ciphertext, "ctx": self.context})

    @classmethod
    def from_json(cls, data: str) -> "EncryptedSecret":
        parsed = json.loads(data)
        return cls(version=parsed["v"], nonce=parsed["n"], ciphertext=parsed["c"], context=parsed.get("ctx"))


class SecretBox:
    """Encrypts short string secrets bound to a context string.

    Example:
        box = SecretBox()
        stored = box.encrypt("whsec_123", context=f"webhook:{webhook.tenant_id}")
        box.decrypt(stored, context=f"webhook:{webhook.tenant_id}")  # "whsec_123"
    """

    HKDF_INFO = b"bizflow-secret-encryption-v1"

    def __init__(self, pepper: Optional[str] = None):
        key_material = pepper or os.getenv("PASSWORD_PEPPER") or settings.PASSWORD_PEPPER
        if not key_material:
            raise ValueError("PASSWORD_PEPPER environment variable is not set")
        self._key = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=self.HKDF_INFO,
        ).derive(key_material.encode())

    def encrypt(self, plaintext: str, context: Optional[str] = None) -> str:
        nonce = os.urandom(12)
        associated_data = context.encode() if context else None
        ciphertext = AESGCM(self._key).encrypt(nonce, plaintext.encode(), associated_data)
        return EncryptedSecret(
            version=1,
            nonce=base64.b64encode(nonce).decode(),
            ciphertext=base64.b64encode(ciphertext).decode(),
            context=context,
        ).to_json()

    def decrypt(self, stored: str, context: Optional[str] = None) -> str:
        """Decrypt a value produced by encrypt().

        Raises:
            ValueError: If the payload is malformed, tampered with, or was
                bound to a different context
        """
        try:
            encrypted = EncryptedSecret.from_json(stored)
        except (ValueError, KeyError, TypeError) as e:
            raise ValueError(f"Malformed encrypted secret: {e}")

        if encrypted.version != 1:
            raise ValueError(f"Unsupported encryption version: {encrypted.version}")
        if context is not None and encrypted.context != context:
            raise ValueError("Encrypted secret is bound to a different context")

        associated_data = encrypted.context.encode() if encrypted.context else None
        try:
            plaintext = AESGCM(self._key).decrypt(
                base64.b64decode(encrypted.nonce),
                base64.b64decode(encrypted.ciphertext),
                associated_data,
            )
        except InvalidTag:
            raise ValueError("Decryption failed - invalid key or tampered data")
        return plaintext.decode()


_box: Optional[SecretBox] = None


def get_secret_box() -> SecretBox:
    global _box
    if _box is None:
        _box = SecretBox()
    return _box


def encrypt_secret(plaintext: str, context: Optional[str] = None) -> str:
    return get_secret_box().encrypt(plaintext, context)


def decrypt_secret(stored: str, context: Optional[str] = None) -> str:
    return get_secret_box().decrypt(stored, context)
