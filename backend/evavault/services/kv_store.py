"""Key-value stores backing SecureStore.

Values are opaque strings written and read back verbatim. Any backend
failure surfaces as StorageError.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from evavault.models.slot import StorageSlot


class StorageError(Exception):
    """Raised when the underlying key-value store cannot read, write or delete."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class InMemoryKeyValueStore:
    """Process-local dict store, the equivalent of browser localStorage."""

    def __init__(self, max_bytes: int | None = None) -> None:
        self._items: dict[str, str] = {}
        self._max_bytes = max_bytes

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        if self._max_bytes is not None:
            used = sum(len(v) for k, v in self._items.items() if k != key)
            if used + len(value) > self._max_bytes:
                raise StorageError(f"Storage quota exceeded writing {key!r}")
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._items)


class SqlKeyValueStore:
    """Key-value store persisted in the ``secure_slots`` table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, key: str) -> str | None:
        try:
            with Session(self._engine) as session:
                slot = session.get(StorageSlot, key)
                return slot.value if slot is not None else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read slot {key!r}") from exc

    def set(self, key: str, value: str) -> None:
        try:
            with Session(self._engine) as session:
                slot = session.get(StorageSlot, key)
                if slot is None:
                    slot = StorageSlot(key=key, value=value)
                else:
                    slot.value = value
                    slot.updated_at = datetime.now(timezone.utc)
                session.add(slot)
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to write slot {key!r}") from exc

    def delete(self, key: str) -> None:
        try:
            with Session(self._engine) as session:
                slot = session.get(StorageSlot, key)
                if slot is not None:
                    session.delete(slot)
                    session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to delete slot {key!r}") from exc

    def keys(self) -> list[str]:
        try:
            with Session(self._engine) as session:
                return sorted(session.exec(select(StorageSlot.key)).all())
        except SQLAlchemyError as exc:
            raise StorageError("Failed to list slots") from exc
