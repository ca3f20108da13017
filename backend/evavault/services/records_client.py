"""HTTP client for the encrypted medical records API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx

from evavault.config import Settings
from evavault.services.encryption import DEFAULT_KDF, EncryptedEnvelope


class RecordsApiError(Exception):
    """Raised when the records API is unreachable or returns an error status."""


class MedicalRecordsClient:
    """Thin wrapper over an injected ``httpx.AsyncClient``.

    The client's ``base_url`` must point at the records backend.
    """

    def __init__(self, client: httpx.AsyncClient, api_token: str) -> None:
        self._client = client
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Accept": "application/json",
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> MedicalRecordsClient:
        client = httpx.AsyncClient(
            base_url=settings.records_api_url,
            timeout=settings.records_api_timeout_seconds,
        )
        return cls(client, settings.api_token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, headers=self._headers, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RecordsApiError(
                f"{method} {path} failed with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RecordsApiError(f"{method} {path} failed: {type(exc).__name__}") from exc
        return resp

    async def save_record(
        self,
        user_id: str,
        data_type: str,
        envelope: EncryptedEnvelope,
        data_hash: str,
        expires_at: datetime | None = None,
        access_level: str = "private",
    ) -> dict:
        body = {
            "user_id": user_id,
            "data_type": data_type,
            "encrypted_content": envelope.ciphertext,
            "iv": envelope.iv,
            "salt": envelope.salt,
            "algorithm": "AES-GCM",
            "kdf": envelope.kdf,
            "encrypted_at": envelope.timestamp,
            "data_hash": data_hash,
            "expires_at": expires_at.isoformat() if expires_at else None,
            "access_level": access_level,
        }
        resp = await self._request("POST", "/api/medical-data", json=body)
        return resp.json()

    async def list_records(
        self, user_id: str, data_type: str | None = None, limit: int = 100
    ) -> list[dict]:
        params: dict[str, str | int] = {"user_id": user_id, "limit": limit}
        if data_type is not None:
            params["data_type"] = data_type
        resp = await self._request("GET", "/api/medical-data", params=params)
        return resp.json()

    async def delete_records(self, user_id: str) -> int:
        resp = await self._request("DELETE", "/api/medical-data", params={"user_id": user_id})
        return resp.json()["deleted"]

    async def log_access(
        self, user_id: str, access_type: str, data_type: str, access_result: str
    ) -> None:
        await self._request(
            "POST",
            "/api/medical-data/access-log",
            json={
                "user_id": user_id,
                "access_type": access_type,
                "data_type": data_type,
                "access_result": access_result,
            },
        )


def envelope_from_record(record: dict) -> EncryptedEnvelope:
    """Rebuild the envelope of a stored medical record.

    Records only hold medical data, so the envelope's data type is fixed.
    """
    return EncryptedEnvelope.from_dict(
        {
            "data": record.get("encrypted_content"),
            "iv": record.get("iv"),
            "salt": record.get("salt"),
            "timestamp": record.get("encrypted_at"),
            "dataType": "medical",
            "kdf": record.get("kdf", DEFAULT_KDF),
        }
    )
