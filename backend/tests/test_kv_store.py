"""Tests for the key-value stores backing SecureStore."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from evavault.services.kv_store import InMemoryKeyValueStore, SqlKeyValueStore, StorageError


@pytest.fixture(params=["memory", "sql"])
def store(request, kv_store, sql_kv_store):
    return kv_store if request.param == "memory" else sql_kv_store


class TestKeyValueContract:
    def test_missing_key_returns_none(self, store) -> None:
        assert store.get("nope") is None

    def test_set_then_get(self, store) -> None:
        store.set("k", '{"data": "abc"}')
        assert store.get("k") == '{"data": "abc"}'

    def test_set_overwrites(self, store) -> None:
        store.set("k", "one")
        store.set("k", "two")
        assert store.get("k") == "two"
        assert store.keys() == ["k"]

    def test_delete_is_idempotent(self, store) -> None:
        store.set("k", "v")
        store.delete("k")
        store.delete("k")
        assert store.get("k") is None

    def test_keys_sorted(self, store) -> None:
        store.set("b", "2")
        store.set("a", "1")
        assert store.keys() == ["a", "b"]


class TestInMemoryQuota:
    def test_quota_exceeded_raises(self) -> None:
        store = InMemoryKeyValueStore(max_bytes=10)
        store.set("a", "12345")
        with pytest.raises(StorageError, match="quota"):
            store.set("b", "123456")
        assert store.get("b") is None

    def test_overwrite_counts_only_new_value(self) -> None:
        store = InMemoryKeyValueStore(max_bytes=10)
        store.set("a", "1234567890")
        store.set("a", "0987654321")
        assert store.get("a") == "0987654321"


class TestSqlStoreFailures:
    def test_read_failure_wrapped(self, sql_kv_store: SqlKeyValueStore) -> None:
        with patch(
            "evavault.services.kv_store.Session.get",
            side_effect=OperationalError("SELECT", {}, Exception("disk I/O error")),
        ):
            with pytest.raises(StorageError):
                sql_kv_store.get("k")

    def test_write_failure_wrapped(self, sql_kv_store: SqlKeyValueStore) -> None:
        with patch(
            "evavault.services.kv_store.Session.commit",
            side_effect=OperationalError("INSERT", {}, Exception("database is full")),
        ):
            with pytest.raises(StorageError):
                sql_kv_store.set("k", "v")
        assert sql_kv_store.get("k") is None
