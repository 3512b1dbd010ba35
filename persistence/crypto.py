import os
import base64
from typing import Optional

import structlog
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = structlog.get_logger(__name__)


class CryptoUtils:
    """AES-256-GCM with a versioned, base64 payload: b"v1" + nonce + ciphertext."""

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError(
                f"ENCRYPTION_KEY must decode to 32 bytes for AES-256. Got {len(key)} bytes."
            )
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_b64(cls, key_b64: Optional[str]) -> "CryptoUtils":
        if not key_b64:
            # sessions are in-memory only, so a per-process key loses nothing
            logger.warning("encryption_key_missing", detail="using an ephemeral session key")
            return cls(AESGCM.generate_key(bit_length=256))
        return cls(base64.b64decode(key_b64))

    @staticmethod
    def should_encrypt(key: str, encrypt_keys: set[str]) -> bool:
        return key in encrypt_keys

    def encrypt_bytes(self, plaintext: bytes, aad: bytes) -> str:
        nonce = os.urandom(12)
        ct = self._aesgcm.encrypt(nonce, plaintext, aad)
        payload = b"v1" + nonce + ct
        return base64.b64encode(payload).decode("utf-8")

    def decrypt_bytes(self, payload_b64: str, aad: bytes) -> bytes:
        raw = base64.b64decode(payload_b64.encode("utf-8"))
        if raw[:2] != b"v1":
            raise ValueError("Not encrypted with expected format/version header")
        nonce = raw[2:14]
        ct = raw[14:]
        return self._aesgcm.decrypt(nonce, ct, aad)
