from __future__ import annotations

import os
import tempfile

# Set test environment BEFORE importing evavault modules.
# evavault.db creates the engine at module level using get_settings().db_url,
# so we must override the env vars before any evavault imports.
_test_tmp = tempfile.mkdtemp(prefix="evavault-test-")
os.environ.setdefault("DATA_DIR", os.path.join(_test_tmp, "data"))
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("API_TOKEN", "test-api-token-for-integration-tests")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from evavault.config import get_settings
from evavault.db import get_session
from evavault.main import app as fastapi_app
from evavault.services.encryption import MedicalDataCipher
from evavault.services.kv_store import InMemoryKeyValueStore, SqlKeyValueStore
from evavault.services.medical_data import SecureMedicalDataService
from evavault.services.records_client import MedicalRecordsClient
from evavault.services.secure_storage import SecureStore


# ── Database fixtures ─────────────────────────────────────────────────


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite engine for testing.

    Uses StaticPool so every connection shares the same in-memory database.
    Recreates tables per test for full isolation.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    """Provide a fresh session per test."""
    with Session(engine) as session:
        yield session


# ── HTTP client fixtures ──────────────────────────────────────────────


@pytest.fixture(name="api_token")
def api_token_fixture() -> str:
    return get_settings().api_token


@pytest.fixture(name="db_override")
def db_override_fixture(session):
    """Route every request's DB session to the per-test in-memory database."""

    def _get_session_override():
        yield session

    fastapi_app.dependency_overrides[get_session] = _get_session_override
    yield
    fastapi_app.dependency_overrides.clear()


@pytest.fixture(name="client")
def client_fixture(db_override, api_token):
    """FastAPI TestClient authenticated with the API token."""
    with TestClient(fastapi_app) as client:
        client.headers["Authorization"] = f"Bearer {api_token}"
        yield client


@pytest.fixture(name="client_no_auth")
def client_no_auth_fixture(db_override):
    """TestClient with DB override but no token, for testing auth failures."""
    with TestClient(fastapi_app) as tc:
        yield tc


@pytest.fixture(name="records_client")
def records_client_fixture(db_override, api_token) -> MedicalRecordsClient:
    """Async records client wired to the app in-process via ASGITransport."""
    http = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=fastapi_app),
        base_url="http://testserver",
    )
    return MedicalRecordsClient(http, api_token)


# ── Encryption fixtures ───────────────────────────────────────────────


@pytest.fixture(name="passphrase")
def passphrase_fixture() -> str:
    return "correct-horse-battery-staple"


@pytest.fixture(name="cipher")
def cipher_fixture() -> MedicalDataCipher:
    """Cipher at the minimum allowed PBKDF2 work factor."""
    return MedicalDataCipher()


# ── Storage fixtures ──────────────────────────────────────────────────


@pytest.fixture(name="kv_store")
def kv_store_fixture() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture(name="sql_kv_store")
def sql_kv_store_fixture(engine) -> SqlKeyValueStore:
    return SqlKeyValueStore(engine)


@pytest.fixture(name="secure_store")
def secure_store_fixture(kv_store, cipher) -> SecureStore:
    return SecureStore(kv_store, cipher)


@pytest.fixture(name="medical_data_service")
def medical_data_service_fixture(
    secure_store, cipher, records_client
) -> SecureMedicalDataService:
    return SecureMedicalDataService(secure_store, cipher, records_client)
