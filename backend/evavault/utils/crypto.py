"""Low-level cryptographic primitives for Eva.

Pure functions with no domain knowledge.
Derived keys are returned as ``bytearray`` so callers can wipe them.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

KEY_LENGTH = 32  # AES-256
IV_LENGTH = 12
SALT_LENGTH = 16
TAG_LENGTH = 16  # 128-bit GCM tag, appended to the ciphertext


def random_bytes(n: int) -> bytes:
    """Return ``n`` cryptographically secure random bytes."""
    return os.urandom(n)


def derive_key_pbkdf2(passphrase: str, salt: bytes, iterations: int) -> bytearray:
    """Derive a 256-bit key with PBKDF2-HMAC-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return bytearray(kdf.derive(passphrase.encode("utf-8")))


def derive_key_argon2id(passphrase: str, salt: bytes) -> bytearray:
    """Derive a 256-bit key with Argon2id.

    Parameters match OWASP recommendations for Argon2id:
    time_cost=3, memory_cost=64 MiB, parallelism=1.
    """
    return bytearray(
        hash_secret_raw(
            secret=passphrase.encode("utf-8"),
            salt=salt,
            time_cost=3,
            memory_cost=65536,
            parallelism=1,
            hash_len=KEY_LENGTH,
            type=Type.ID,
        )
    )


def wipe(buffer: bytearray) -> None:
    """Overwrite a key buffer with zeros in place."""
    for i in range(len(buffer)):
        buffer[i] = 0


def aes_gcm_encrypt(key: bytes | bytearray, iv: bytes, plaintext: bytes) -> bytes:
    """Encrypt with AES-256-GCM. Returns ciphertext || 16-byte tag."""
    return AESGCM(key).encrypt(iv, plaintext, None)


def aes_gcm_decrypt(key: bytes | bytearray, iv: bytes, data: bytes) -> bytes:
    """Decrypt ciphertext || tag produced by aes_gcm_encrypt.

    Raises cryptography.exceptions.InvalidTag on tampered data or wrong key.
    """
    return AESGCM(key).decrypt(iv, data, None)


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    """Strict standard-alphabet base64 decode. Raises ValueError on bad input."""
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError("Invalid base64 data") from exc


def sha256_hash(data: bytes) -> str:
    """Compute SHA-256 hash. Returns hex-encoded digest."""
    return hashlib.sha256(data).hexdigest()
