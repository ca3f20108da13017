"""Client-encrypted medical records and their access audit log.

The server only ever stores ciphertext plus the public encryption metadata
(IV, salt, algorithm, KDF) and a SHA-256 hash of the canonical plaintext that
clients use to detect corrupted records after decryption.

Datetimes are timezone-aware UTC everywhere. SQLite keeps no offset, so
values are converted to UTC before they are written and tagged as UTC again
when read back.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field as PydanticField, field_validator
from sqlalchemy import CheckConstraint, Column, DateTime
from sqlmodel import Field, SQLModel

from evavault.config import KdfAlgorithm

AccessLevel = Literal["private", "shared"]
AccessType = Literal["read", "write", "delete", "export"]
AccessResult = Literal["success", "failure"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EncryptedMedicalRecord(SQLModel, table=True):
    __tablename__ = "encrypted_medical_data"
    __table_args__ = (
        CheckConstraint(
            "access_level IN ('private', 'shared')", name="ck_medical_data_access_level"
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    user_id: str = Field(index=True)
    data_type: str = Field(index=True)  # "symptoms", "medications", ...
    encrypted_content: str  # base64 ciphertext+tag
    iv: str
    salt: str
    algorithm: str = Field(default="AES-GCM")
    kdf: str = Field(default="pbkdf2-sha256")
    encrypted_at: int  # envelope timestamp, epoch ms
    data_hash: str
    access_level: str = Field(default="private")
    expires_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class MedicalDataAccessLog(SQLModel, table=True):
    __tablename__ = "medical_data_access_log"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    user_id: str = Field(index=True)
    access_type: str
    data_type: str
    access_result: str
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


# --- Pydantic schemas for request/response validation ---


class MedicalRecordCreate(BaseModel):
    user_id: str = PydanticField(min_length=1, max_length=128)
    data_type: str = PydanticField(min_length=1, max_length=64)
    encrypted_content: str = PydanticField(min_length=1)
    iv: str = PydanticField(min_length=1, max_length=64)
    salt: str = PydanticField(min_length=1, max_length=64)
    algorithm: str = "AES-GCM"
    kdf: KdfAlgorithm = "pbkdf2-sha256"
    encrypted_at: int
    data_hash: str = PydanticField(pattern=r"^[0-9a-f]{64}$")
    expires_at: datetime | None = None
    access_level: AccessLevel = "private"

    @field_validator("expires_at")
    @classmethod
    def _expires_at_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class MedicalRecordRead(BaseModel):
    id: str
    user_id: str
    data_type: str
    encrypted_content: str
    iv: str
    salt: str
    algorithm: str
    kdf: str
    encrypted_at: int
    data_hash: str
    access_level: str
    expires_at: datetime | None
    created_at: datetime

    @field_validator("expires_at", "created_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class AccessLogCreate(BaseModel):
    user_id: str = PydanticField(min_length=1, max_length=128)
    access_type: AccessType
    data_type: str = PydanticField(min_length=1, max_length=64)
    access_result: AccessResult


class AccessLogRead(BaseModel):
    id: str
    user_id: str
    access_type: str
    data_type: str
    access_result: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class DeleteResponse(BaseModel):
    deleted: int
