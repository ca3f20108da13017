from __future__ import annotations

from evavault.models.medical_record import EncryptedMedicalRecord, MedicalDataAccessLog  # noqa: F401
from evavault.models.slot import StorageSlot  # noqa: F401
