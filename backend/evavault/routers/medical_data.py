"""Encrypted medical records API.

POST   /api/medical-data             store a client-encrypted record
GET    /api/medical-data             list a user's records (newest first)
DELETE /api/medical-data             delete all of a user's records
POST   /api/medical-data/access-log  append an access audit entry

The server never receives passphrases or plaintext.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlmodel import Session, col, select

from evavault.config import get_settings
from evavault.db import get_session
from evavault.dependencies import require_api_token
from evavault.models.medical_record import (
    AccessLogCreate,
    AccessLogRead,
    DeleteResponse,
    EncryptedMedicalRecord,
    MedicalDataAccessLog,
    MedicalRecordCreate,
    MedicalRecordRead,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/medical-data", tags=["medical-data"])


def _to_read(record: EncryptedMedicalRecord) -> MedicalRecordRead:
    return MedicalRecordRead.model_validate(record, from_attributes=True)


@router.post("", status_code=201)
def create_record(
    body: MedicalRecordCreate,
    session: Session = Depends(get_session),
    _token: str = Depends(require_api_token),
) -> MedicalRecordRead:
    record = EncryptedMedicalRecord(**body.model_dump())
    session.add(record)
    session.commit()
    session.refresh(record)
    logger.info(
        "Stored encrypted %s record %s (%d bytes)",
        record.data_type,
        record.id,
        len(record.encrypted_content),
    )
    return _to_read(record)


@router.get("")
def list_records(
    user_id: str = Query(min_length=1),
    data_type: str | None = None,
    limit: int = Query(default=100, ge=1),
    session: Session = Depends(get_session),
    _token: str = Depends(require_api_token),
) -> list[MedicalRecordRead]:
    limit = min(limit, get_settings().records_query_limit)
    now = datetime.now(timezone.utc)
    stmt = select(EncryptedMedicalRecord).where(
        EncryptedMedicalRecord.user_id == user_id,
        or_(
            col(EncryptedMedicalRecord.expires_at).is_(None),
            col(EncryptedMedicalRecord.expires_at) > now,
        ),
    )
    if data_type is not None:
        stmt = stmt.where(EncryptedMedicalRecord.data_type == data_type)
    stmt = stmt.order_by(
        col(EncryptedMedicalRecord.created_at).desc(),
        col(EncryptedMedicalRecord.encrypted_at).desc(),
    ).limit(limit)
    return [_to_read(r) for r in session.exec(stmt).all()]


@router.delete("")
def delete_records(
    user_id: str = Query(min_length=1),
    session: Session = Depends(get_session),
    _token: str = Depends(require_api_token),
) -> DeleteResponse:
    records = session.exec(
        select(EncryptedMedicalRecord).where(EncryptedMedicalRecord.user_id == user_id)
    ).all()
    for record in records:
        session.delete(record)
    session.commit()
    deleted = len(records)
    logger.info("Deleted %d encrypted record(s) for user %s", deleted, user_id)
    return DeleteResponse(deleted=deleted)


@router.post("/access-log", status_code=201)
def log_access(
    body: AccessLogCreate,
    session: Session = Depends(get_session),
    _token: str = Depends(require_api_token),
) -> AccessLogRead:
    entry = MedicalDataAccessLog(**body.model_dump())
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return AccessLogRead.model_validate(entry, from_attributes=True)
