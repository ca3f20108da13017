"""Passphrase-based envelope encryption for medical records.

Each envelope is self-contained: it carries the random salt used to derive
the key from the user's passphrase and the random IV used for AES-256-GCM.
No key material is ever stored; losing the passphrase loses the data.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from argon2.exceptions import HashingError
from cryptography.exceptions import InvalidTag

from evavault.config import MIN_PBKDF2_ITERATIONS, KdfAlgorithm, Settings
from evavault.utils.crypto import (
    IV_LENGTH,
    SALT_LENGTH,
    aes_gcm_decrypt,
    aes_gcm_encrypt,
    b64decode,
    b64encode,
    derive_key_argon2id,
    derive_key_pbkdf2,
    random_bytes,
    wipe,
)

logger = logging.getLogger(__name__)

DataType = Literal["medical", "personal", "anonymous"]
DATA_TYPES: frozenset[str] = frozenset({"medical", "personal", "anonymous"})

WRAPPER_VERSION = "1.0"
DEFAULT_KDF: KdfAlgorithm = "pbkdf2-sha256"
SUPPORTED_KDFS: frozenset[str] = frozenset({"pbkdf2-sha256", "argon2id"})

_MS_PER_DAY = 24 * 60 * 60 * 1000


class EncryptionError(Exception):
    """Raised when a payload cannot be encrypted."""


class PayloadSerializationError(EncryptionError):
    """Raised when a payload cannot be serialized to JSON before encryption."""


class DecryptionError(Exception):
    """Raised when an envelope cannot be decrypted.

    Wrong passphrase, corruption and tampering all raise this with the same
    message.
    """


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


@dataclass(frozen=True, slots=True)
class EncryptedEnvelope:
    """Immutable container for one passphrase-encrypted payload."""

    ciphertext: str  # base64(AES-GCM ciphertext || tag)
    iv: str  # base64, 12 bytes decoded
    salt: str  # base64, 16 bytes decoded
    timestamp: int  # epoch ms
    data_type: DataType
    kdf: KdfAlgorithm = DEFAULT_KDF

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "data": self.ciphertext,
            "iv": self.iv,
            "salt": self.salt,
            "timestamp": self.timestamp,
            "dataType": self.data_type,
        }
        if self.kdf != DEFAULT_KDF:
            data["kdf"] = self.kdf
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EncryptedEnvelope:
        """Build an envelope from its stored shape.

        Raises DecryptionError if the mapping is not a well-formed envelope.
        """
        if not isinstance(data, Mapping):
            raise DecryptionError("Malformed envelope")
        try:
            ciphertext = data["data"]
            iv = data["iv"]
            salt = data["salt"]
            timestamp = data["timestamp"]
            data_type = data["dataType"]
        except KeyError as exc:
            raise DecryptionError("Malformed envelope") from exc
        kdf = data.get("kdf", DEFAULT_KDF)
        if not all(isinstance(v, str) for v in (ciphertext, iv, salt, data_type, kdf)):
            raise DecryptionError("Malformed envelope")
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise DecryptionError("Malformed envelope")
        return cls(
            ciphertext=ciphertext,
            iv=iv,
            salt=salt,
            timestamp=timestamp,
            data_type=data_type,  # type: ignore[arg-type]
            kdf=kdf,  # type: ignore[arg-type]
        )

    @classmethod
    def from_json(cls, text: str) -> EncryptedEnvelope:
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise DecryptionError("Malformed envelope") from exc
        return cls.from_dict(data)


@dataclass(frozen=True, slots=True)
class DecryptedRecord:
    """The decrypted wrapper of an envelope."""

    payload: Any
    timestamp: int
    data_type: str | None
    version: str | None
    stale: bool


class MedicalDataCipher:
    """Derive keys from passphrases and seal/open JSON payloads.

    Holds only configuration, never a key or passphrase, so one instance
    can be shared by any number of concurrent callers.
    """

    __slots__ = ("_kdf", "_iterations", "_stale_after_ms")

    def __init__(
        self,
        kdf: KdfAlgorithm = DEFAULT_KDF,
        iterations: int = MIN_PBKDF2_ITERATIONS,
        staleness_days: int = 30,
    ) -> None:
        if kdf not in SUPPORTED_KDFS:
            raise ValueError(f"Unsupported key derivation function: {kdf!r}")
        if iterations < MIN_PBKDF2_ITERATIONS:
            raise ValueError(
                f"PBKDF2 iterations must be at least {MIN_PBKDF2_ITERATIONS}"
            )
        self._kdf = kdf
        self._iterations = iterations
        self._stale_after_ms = staleness_days * _MS_PER_DAY

    @classmethod
    def from_settings(cls, settings: Settings) -> MedicalDataCipher:
        return cls(
            kdf=settings.kdf_algorithm,
            iterations=settings.pbkdf2_iterations,
            staleness_days=settings.staleness_warning_days,
        )

    def derive_key(
        self, passphrase: str, salt: bytes, kdf: KdfAlgorithm | None = None
    ) -> bytearray:
        """Derive the 256-bit AES key for *passphrase* and *salt*.

        Same passphrase and salt always give the same key. The caller owns
        the returned buffer and should wipe() it when done.
        """
        if (kdf or self._kdf) == "argon2id":
            return derive_key_argon2id(passphrase, salt)
        return derive_key_pbkdf2(passphrase, salt, self._iterations)

    def encrypt(
        self, payload: Any, passphrase: str, data_type: DataType = "medical"
    ) -> EncryptedEnvelope:
        """Encrypt *payload* under a key derived from *passphrase*.

        Raises PayloadSerializationError if the payload is not JSON-serializable
        and EncryptionError if the cipher fails.
        """
        if data_type not in DATA_TYPES:
            raise ValueError(f"Unknown data type: {data_type!r}")

        timestamp = _now_ms()
        wrapper = {
            "payload": payload,
            "timestamp": timestamp,
            "dataType": data_type,
            "version": WRAPPER_VERSION,
        }
        try:
            plaintext = json.dumps(
                wrapper, ensure_ascii=False, allow_nan=False
            ).encode("utf-8")
        except (TypeError, ValueError, RecursionError) as exc:
            raise PayloadSerializationError(
                f"Payload is not JSON-serializable: {type(exc).__name__}"
            ) from exc

        salt = random_bytes(SALT_LENGTH)
        iv = random_bytes(IV_LENGTH)
        try:
            key = self.derive_key(passphrase, salt)
            try:
                ciphertext = aes_gcm_encrypt(key, iv, plaintext)
            finally:
                wipe(key)
        except Exception as exc:
            logger.error("Encryption of %s payload failed", data_type, exc_info=True)
            raise EncryptionError("Failed to encrypt sensitive data") from exc

        return EncryptedEnvelope(
            ciphertext=b64encode(ciphertext),
            iv=b64encode(iv),
            salt=b64encode(salt),
            timestamp=timestamp,
            data_type=data_type,
            kdf=self._kdf,
        )

    def open_envelope(
        self, envelope: EncryptedEnvelope, passphrase: str
    ) -> DecryptedRecord:
        """Decrypt *envelope* and return the full wrapper.

        Raises DecryptionError on any failure, without saying which part failed.
        """
        if envelope.kdf not in SUPPORTED_KDFS:
            raise DecryptionError("Failed to decrypt data")
        try:
            salt = b64decode(envelope.salt)
            iv = b64decode(envelope.iv)
            ciphertext = b64decode(envelope.ciphertext)
        except ValueError as exc:
            raise DecryptionError("Failed to decrypt data") from exc
        if len(salt) != SALT_LENGTH or len(iv) != IV_LENGTH:
            raise DecryptionError("Failed to decrypt data")

        try:
            key = self.derive_key(passphrase, salt, envelope.kdf)
        except (UnicodeError, ValueError, HashingError) as exc:
            raise DecryptionError("Failed to decrypt data") from exc
        try:
            plaintext = aes_gcm_decrypt(key, iv, ciphertext)
        except (InvalidTag, ValueError) as exc:
            raise DecryptionError("Failed to decrypt data") from exc
        finally:
            wipe(key)

        try:
            wrapper = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise DecryptionError("Failed to decrypt data") from exc
        if (
            not isinstance(wrapper, dict)
            or "payload" not in wrapper
            or not isinstance(wrapper.get("timestamp"), int)
        ):
            raise DecryptionError("Encrypted data is corrupted")

        age_ms = _now_ms() - wrapper["timestamp"]
        stale = age_ms > self._stale_after_ms
        if stale:
            logger.warning(
                "Decrypted %s data is %d days old; re-authentication recommended",
                wrapper.get("dataType", "unknown"),
                age_ms // _MS_PER_DAY,
            )
        return DecryptedRecord(
            payload=wrapper["payload"],
            timestamp=wrapper["timestamp"],
            data_type=wrapper.get("dataType"),
            version=wrapper.get("version"),
            stale=stale,
        )

    def decrypt(self, envelope: EncryptedEnvelope, passphrase: str) -> Any:
        """Decrypt *envelope* and return the original payload."""
        return self.open_envelope(envelope, passphrase).payload
