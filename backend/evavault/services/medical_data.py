"""Per-user secure medical data service.

Combines schema validation, local encrypted storage and the remote records
API. Construct one instance per signed-in user; call destroy() on sign-out
to drop the passphrase from memory.

Key derivation is deliberately slow, so every crypto or storage step runs
in a worker thread to keep the event loop responsive.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from evavault.services.encryption import (
    DecryptionError,
    EncryptionError,
    MedicalDataCipher,
)
from evavault.services.records_client import (
    MedicalRecordsClient,
    RecordsApiError,
    envelope_from_record,
)
from evavault.services.secure_storage import SecureStore
from evavault.services.validation import SecureValidator, SymptomEntry
from evavault.utils.crypto import sha256_hash

logger = logging.getLogger(__name__)

_SELF_TEST_PAYLOAD = {"test": "validation"}


def generate_data_hash(data: Any) -> str:
    """SHA-256 over the canonical JSON form of *data* (sorted keys, compact)."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return sha256_hash(canonical.encode("utf-8"))


class SecureMedicalDataService:
    """Validated, encrypted persistence of one user's medical records."""

    def __init__(
        self,
        secure_store: SecureStore,
        cipher: MedicalDataCipher,
        records_client: MedicalRecordsClient,
        *,
        retention_days: int = 365,
        query_limit: int = 100,
    ) -> None:
        self._store = secure_store
        self._cipher = cipher
        self._records = records_client
        self._retention = timedelta(days=retention_days)
        self._query_limit = query_limit
        self._user_id: str | None = None
        self._passphrase: str | None = None

    @property
    def user_id(self) -> str | None:
        return self._user_id

    def _is_authenticated(self) -> bool:
        if self._user_id is None or self._passphrase is None:
            logger.warning("Medical data service used before initialize()")
            return False
        return True

    async def initialize(self, user_id: str, passphrase: str) -> bool:
        """Bind the service to a user and verify an encrypt/decrypt round trip."""
        try:
            envelope = await asyncio.to_thread(
                self._cipher.encrypt, _SELF_TEST_PAYLOAD, passphrase, "personal"
            )
            decrypted = await asyncio.to_thread(self._cipher.decrypt, envelope, passphrase)
        except (EncryptionError, DecryptionError):
            logger.error("Encryption self-test failed", exc_info=True)
            return False
        if decrypted != _SELF_TEST_PAYLOAD:
            logger.error("Encryption self-test returned a different payload")
            return False

        self._user_id = user_id
        self._passphrase = passphrase
        logger.info("Secure medical data service initialized for user %s", user_id)
        return True

    async def save_symptoms(self, entry: Any) -> bool:
        """Validate a symptom entry, store it locally and upload an encrypted copy."""
        if not self._is_authenticated():
            return False

        result = SecureValidator.validate(SymptomEntry, entry)
        if not result.success or result.data is None:
            logger.warning("Symptom entry rejected: %s", "; ".join(result.errors))
            return False
        data = result.data.model_dump(mode="json", by_alias=True, exclude_none=True)

        saved = await asyncio.to_thread(self._store.save, data, self._passphrase, "medical")
        if not saved:
            return False

        try:
            envelope = await asyncio.to_thread(
                self._cipher.encrypt, data, self._passphrase, "medical"
            )
            await self._records.save_record(
                self._user_id,
                "symptoms",
                envelope,
                data_hash=generate_data_hash(data),
                expires_at=datetime.now(timezone.utc) + self._retention,
            )
        except (EncryptionError, RecordsApiError):
            logger.error("Failed to upload encrypted symptom entry", exc_info=True)
            return False
        logger.info("Symptom entry saved for user %s", self._user_id)
        return True

    async def get_symptoms(self) -> list[dict] | None:
        """Return decrypted symptom entries, newest first.

        Remote records that fail to decrypt or whose hash does not match are
        skipped. Falls back to the local slot when the API has nothing.
        """
        if not self._is_authenticated():
            return None

        try:
            records = await self._records.list_records(
                self._user_id, "symptoms", limit=self._query_limit
            )
        except RecordsApiError:
            logger.warning("Records API unavailable, using local data", exc_info=True)
            records = []

        if records:
            symptoms: list[dict] = []
            for record in records:
                try:
                    envelope = envelope_from_record(record)
                    decrypted = await asyncio.to_thread(
                        self._cipher.decrypt, envelope, self._passphrase
                    )
                except DecryptionError:
                    logger.error("Failed to decrypt medical record %s", record.get("id"))
                    continue
                if generate_data_hash(decrypted) != record.get("data_hash"):
                    logger.warning("Corrupted medical record detected: %s", record.get("id"))
                    continue
                if not isinstance(decrypted, dict):
                    logger.warning("Medical record %s is not a symptom entry", record.get("id"))
                    continue
                symptoms.append(
                    {**decrypted, "id": record.get("id"), "created_at": record.get("created_at")}
                )
            return symptoms

        local = await asyncio.to_thread(self._store.load, self._passphrase, "medical")
        return [local] if local else []

    async def clear_all_medical_data(self) -> bool:
        """Delete the user's remote records and every local slot."""
        if not self._is_authenticated():
            return False

        try:
            deleted = await self._records.delete_records(self._user_id)
        except RecordsApiError:
            logger.error("Failed to delete remote medical records", exc_info=True)
            await asyncio.to_thread(self._store.clear)
            return False
        await asyncio.to_thread(self._store.clear)
        logger.info("Deleted %d remote record(s) and local medical data", deleted)
        return True

    async def export_medical_data(self) -> bytes | None:
        """Export the user's decrypted data as JSON (GDPR data portability)."""
        if not self._is_authenticated():
            return None

        symptoms = await self.get_symptoms()
        export = {
            "exportDate": datetime.now(timezone.utc).isoformat(),
            "userId": self._user_id,
            "data": {"symptoms": symptoms or []},
            "metadata": {
                "encryption": "AES-256-GCM",
                "compliance": "GDPR",
                "version": "1.0",
            },
        }
        try:
            await self._records.log_access(self._user_id, "export", "all_medical", "success")
        except RecordsApiError:
            logger.warning("Failed to record export in access log", exc_info=True)
        return json.dumps(export, indent=2, ensure_ascii=False).encode("utf-8")

    def destroy(self) -> None:
        """Forget the signed-in user and passphrase."""
        self._user_id = None
        self._passphrase = None
        logger.info("Secure medical data service cleared")
