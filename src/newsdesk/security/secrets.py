from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

MASTER_KEY_ENV = "NEWSDESK_MASTER_KEY"
KEY_ID_ENV = "NEWSDESK_KEY_ID"

DEFAULT_KEY_ID = "v1"
HKDF_INFO = b"newsdesk:provider-keys:v1"
MASTER_KEY_BYTES = 32
NONCE_BYTES = 12


@dataclass(frozen=True)
class SecretBox:
    key_id: str
    aesgcm: AESGCM

    def seal(self, plaintext: str, aad: bytes) -> str:
        nonce = os.urandom(NONCE_BYTES)
        sealed = nonce + self.aesgcm.encrypt(nonce, plaintext.encode("utf-8"), aad)
        return base64.urlsafe_b64encode(sealed).decode("ascii")

    def open(self, blob_b64: str, aad: bytes) -> str:
        data = _b64decode(blob_b64)
        return self.aesgcm.decrypt(data[:NONCE_BYTES], data[NONCE_BYTES:], aad).decode("utf-8")


def has_master_key() -> bool:
    return bool(os.environ.get(MASTER_KEY_ENV, "").strip())


def load_secret_box() -> SecretBox:
    """Derive the provider-key cipher from ``NEWSDESK_MASTER_KEY`` (32 bytes, base64url)."""
    encoded = os.environ.get(MASTER_KEY_ENV, "").strip()
    if not encoded:
        raise ValueError(f"Master key is not set. Set {MASTER_KEY_ENV}.")
    try:
        master = _b64decode(encoded)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Master key is not valid base64url") from exc
    if len(master) != MASTER_KEY_BYTES:
        raise ValueError(f"Master key must be {MASTER_KEY_BYTES} bytes (base64url encoded)")
    derived = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=HKDF_INFO).derive(master)
    return SecretBox(
        key_id=os.environ.get(KEY_ID_ENV) or DEFAULT_KEY_ID,
        aesgcm=AESGCM(derived),
    )


def encrypt_secret(plaintext: str, aad: bytes) -> tuple[str, str]:
    box = load_secret_box()
    return box.key_id, box.seal(plaintext, aad)


def decrypt_secret(blob_b64: str, aad: bytes) -> str:
    return load_secret_box().open(blob_b64, aad)


def _b64decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
