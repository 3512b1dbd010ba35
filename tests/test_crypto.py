# tests/test_crypto.py

import base64

import pytest
from cryptography.exceptions import InvalidTag

from persistence.crypto import CryptoUtils


def test_encrypt_decrypt_roundtrip(crypto):
    aad = b"thread|ns|channel_values|step1"
    plaintext = b"123456789012"

    ct = crypto.encrypt_bytes(plaintext, aad)
    out = crypto.decrypt_bytes(ct, aad)

    assert out == plaintext
    assert b"123456789012" not in base64.b64decode(ct)


def test_decrypt_fails_with_wrong_aad(crypto):
    aad = b"correct"
    ct = crypto.encrypt_bytes(b"secret", aad)

    with pytest.raises(InvalidTag):
        crypto.decrypt_bytes(ct, b"wrong")


def test_ciphertext_tamper_fails(crypto):
    aad = b"aad"
    raw = bytearray(base64.b64decode(crypto.encrypt_bytes(b"secret", aad)))
    raw[-1] ^= 0x01
    tampered = base64.b64encode(bytes(raw)).decode("utf-8")

    with pytest.raises(InvalidTag):
        crypto.decrypt_bytes(tampered, aad)


def test_unversioned_payload_is_rejected(crypto):
    payload = base64.b64encode(b"v0" + b"\x00" * 40).decode("utf-8")

    with pytest.raises(ValueError):
        crypto.decrypt_bytes(payload, b"aad")


def test_key_must_be_32_bytes():
    with pytest.raises(ValueError):
        CryptoUtils(b"short")


def test_missing_key_falls_back_to_ephemeral_key():
    a = CryptoUtils.from_b64(None)
    b = CryptoUtils.from_b64(None)
    ct = a.encrypt_bytes(b"otp", b"aad")

    assert a.decrypt_bytes(ct, b"aad") == b"otp"
    with pytest.raises(InvalidTag):
        b.decrypt_bytes(ct, b"aad")
