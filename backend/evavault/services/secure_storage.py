"""Encrypted local storage for medical and personal data.

One slot per sensitivity class. Each save overwrites the previous envelope
for that class; there is no history. Concurrent saves to the same slot are
last-write-wins.

Failure contract: save() returns False and load() returns None instead of
raising. A load that fails to decrypt purges the slot (unless configured
otherwise), so a wrong passphrase and a corrupted envelope both look like
"no data" to the caller and the data cannot be recovered afterwards.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from evavault.config import Settings
from evavault.services.encryption import (
    DecryptionError,
    EncryptedEnvelope,
    EncryptionError,
    MedicalDataCipher,
)
from evavault.services.kv_store import KeyValueStore, StorageError
from evavault.services.validation import ValidationError, validate_payload

logger = logging.getLogger(__name__)

SlotType = Literal["medical", "personal"]

DEFAULT_SLOT_KEYS: dict[str, str] = {
    "medical": "eva_medical_data_encrypted",
    "personal": "eva_personal_data_encrypted",
}


class SecureStore:
    """Validate, encrypt and persist payloads in a key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        cipher: MedicalDataCipher,
        *,
        slot_keys: dict[str, str] | None = None,
        purge_on_decrypt_failure: bool = True,
    ) -> None:
        self._store = store
        self._cipher = cipher
        self._slot_keys = dict(slot_keys or DEFAULT_SLOT_KEYS)
        self._purge_on_decrypt_failure = purge_on_decrypt_failure

    @classmethod
    def from_settings(
        cls, store: KeyValueStore, cipher: MedicalDataCipher, settings: Settings
    ) -> SecureStore:
        return cls(
            store,
            cipher,
            slot_keys={
                "medical": settings.medical_slot_key,
                "personal": settings.personal_slot_key,
            },
            purge_on_decrypt_failure=settings.purge_on_decrypt_failure,
        )

    def slot_key(self, data_type: SlotType) -> str:
        try:
            return self._slot_keys[data_type]
        except KeyError:
            raise ValueError(f"No storage slot for data type {data_type!r}") from None

    def save(self, payload: Any, passphrase: str, data_type: SlotType = "medical") -> bool:
        """Encrypt *payload* and upsert it into the slot for *data_type*.

        Returns True only if the write was read back unchanged.
        """
        key = self.slot_key(data_type)
        try:
            validate_payload(payload)
        except ValidationError as exc:
            logger.warning("Rejected %s payload: %s", data_type, exc)
            return False

        try:
            envelope = self._cipher.encrypt(payload, passphrase, data_type)
        except EncryptionError as exc:
            logger.error("Failed to encrypt %s payload: %s", data_type, exc)
            return False

        serialized = envelope.to_json()
        try:
            self._store.set(key, serialized)
            stored = self._store.get(key)
        except StorageError:
            logger.error("Failed to write %s slot", data_type, exc_info=True)
            return False
        if stored != serialized:
            logger.error("Read-back of %s slot did not match the written envelope", data_type)
            return False

        logger.info(
            "Saved encrypted %s data (timestamp=%d, size=%d)",
            data_type,
            envelope.timestamp,
            len(serialized),
        )
        return True

    def load(self, passphrase: str, data_type: SlotType = "medical") -> Any | None:
        """Decrypt and return the payload in the slot for *data_type*.

        Returns None if the slot is empty, unreadable or fails to decrypt.
        """
        key = self.slot_key(data_type)
        try:
            stored = self._store.get(key)
        except StorageError:
            logger.error("Failed to read %s slot", data_type, exc_info=True)
            return None
        if stored is None:
            return None

        try:
            envelope = EncryptedEnvelope.from_json(stored)
            return self._cipher.decrypt(envelope, passphrase)
        except DecryptionError:
            if self._purge_on_decrypt_failure:
                logger.warning("Could not decrypt %s slot; purging it", data_type)
                self.clear(data_type)
            else:
                logger.warning("Could not decrypt %s slot; data preserved", data_type)
            return None

    def clear(self, data_type: SlotType | None = None) -> None:
        """Delete the slot for *data_type*, or every slot when omitted."""
        types = [data_type] if data_type is not None else list(self._slot_keys)
        cleared = []
        for t in types:
            key = self.slot_key(t)
            try:
                self._store.delete(key)
            except StorageError:
                logger.error("Failed to clear %s slot", t, exc_info=True)
                continue
            cleared.append(t)
        if cleared:
            logger.info("Cleared secure storage slots: %s", ", ".join(cleared))

    def has_data(self, data_type: SlotType = "medical") -> bool:
        try:
            return self._store.get(self.slot_key(data_type)) is not None
        except StorageError:
            return False
