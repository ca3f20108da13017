from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class StorageSlot(SQLModel, table=True):
    """One key-value slot of the local secure store.

    ``value`` is the envelope JSON, stored verbatim.
    """

    __tablename__ = "secure_slots"

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
