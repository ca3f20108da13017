"""Tests for backend/evavault/utils/crypto.py."""

from __future__ import annotations

import os

import pytest
from cryptography.exceptions import InvalidTag

from evavault.utils.crypto import (
    IV_LENGTH,
    KEY_LENGTH,
    SALT_LENGTH,
    TAG_LENGTH,
    aes_gcm_decrypt,
    aes_gcm_encrypt,
    b64decode,
    b64encode,
    derive_key_argon2id,
    derive_key_pbkdf2,
    random_bytes,
    sha256_hash,
    wipe,
)


class TestPbkdf2:
    def test_deterministic(self) -> None:
        salt = os.urandom(SALT_LENGTH)
        assert derive_key_pbkdf2("pass", salt, 100_000) == derive_key_pbkdf2("pass", salt, 100_000)

    def test_different_salt(self) -> None:
        k1 = derive_key_pbkdf2("pass", os.urandom(SALT_LENGTH), 100_000)
        k2 = derive_key_pbkdf2("pass", os.urandom(SALT_LENGTH), 100_000)
        assert k1 != k2

    def test_length_and_type(self) -> None:
        key = derive_key_pbkdf2("pass", os.urandom(SALT_LENGTH), 100_000)
        assert isinstance(key, bytearray)
        assert len(key) == KEY_LENGTH

    def test_rfc7914_vector(self) -> None:
        """PBKDF2-HMAC-SHA256 test vector (RFC 7914 §11, first 32 bytes)."""
        key = derive_key_pbkdf2("passwd", b"salt", 1)
        assert key.hex() == (
            "55ac046e56e3089fec1691c22544b605f94185216dde0465e68b9d57c20dacbc"
        )


class TestArgon2id:
    def test_deterministic_and_length(self) -> None:
        salt = os.urandom(SALT_LENGTH)
        k1 = derive_key_argon2id("pass", salt)
        k2 = derive_key_argon2id("pass", salt)
        assert k1 == k2
        assert len(k1) == KEY_LENGTH

    def test_differs_from_pbkdf2(self) -> None:
        salt = os.urandom(SALT_LENGTH)
        assert derive_key_argon2id("pass", salt) != derive_key_pbkdf2("pass", salt, 100_000)


class TestAesGcm:
    def test_roundtrip(self) -> None:
        key = os.urandom(KEY_LENGTH)
        iv = random_bytes(IV_LENGTH)
        ct = aes_gcm_encrypt(key, iv, b"hot flash at 3am")
        assert len(ct) == len(b"hot flash at 3am") + TAG_LENGTH
        assert aes_gcm_decrypt(key, iv, ct) == b"hot flash at 3am"

    def test_accepts_bytearray_key(self) -> None:
        key = bytearray(os.urandom(KEY_LENGTH))
        iv = random_bytes(IV_LENGTH)
        assert aes_gcm_decrypt(key, iv, aes_gcm_encrypt(key, iv, b"x")) == b"x"

    def test_tampered_tag(self) -> None:
        key = os.urandom(KEY_LENGTH)
        iv = random_bytes(IV_LENGTH)
        ct = bytearray(aes_gcm_encrypt(key, iv, b"data"))
        ct[-1] ^= 0x01
        with pytest.raises(InvalidTag):
            aes_gcm_decrypt(key, iv, bytes(ct))

    def test_wrong_iv(self) -> None:
        key = os.urandom(KEY_LENGTH)
        ct = aes_gcm_encrypt(key, random_bytes(IV_LENGTH), b"data")
        with pytest.raises(InvalidTag):
            aes_gcm_decrypt(key, random_bytes(IV_LENGTH), ct)


class TestWipe:
    def test_zeroes_buffer(self) -> None:
        buf = bytearray(b"\x01\x02\x03\x04")
        wipe(buf)
        assert buf == bytearray(4)


class TestBase64:
    def test_roundtrip(self) -> None:
        data = os.urandom(33)
        assert b64decode(b64encode(data)) == data

    def test_rejects_invalid(self) -> None:
        with pytest.raises(ValueError):
            b64decode("not base64!!")

    def test_rejects_non_ascii(self) -> None:
        with pytest.raises(ValueError):
            b64decode("ключ")


def test_sha256_known_vector() -> None:
    expected = "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
    assert sha256_hash(b"hello") == expected
