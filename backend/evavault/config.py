from __future__ import annotations

import warnings
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# PBKDF2-SHA256 floor for envelopes readable by every Eva client
MIN_PBKDF2_ITERATIONS = 100_000

KdfAlgorithm = Literal["pbkdf2-sha256", "argon2id"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    domain: str = "localhost"
    api_token: str = ""  # Bearer token for the encrypted records API
    allow_insecure_api: bool = False

    @model_validator(mode="after")
    def _check_api_token(self) -> Settings:
        self.api_token = self.api_token.strip()
        if not self.api_token:
            if self.allow_insecure_api:
                warnings.warn(
                    "API_TOKEN is empty but ALLOW_INSECURE_API is set; "
                    "the records API accepts any bearer token. Development only.",
                    stacklevel=2,
                )
            else:
                raise ValueError(
                    "API_TOKEN is not set. Without it anyone can read or delete "
                    "encrypted medical records. Set API_TOKEN in .env or set "
                    "ALLOW_INSECURE_API=1 for development."
                )
        return self

    data_dir: Path = Path("./data")
    db_url: str = "sqlite:///./data/evavault.db"

    # Key derivation
    kdf_algorithm: KdfAlgorithm = "pbkdf2-sha256"
    pbkdf2_iterations: int = MIN_PBKDF2_ITERATIONS

    @field_validator("pbkdf2_iterations")
    @classmethod
    def _check_iterations(cls, value: int) -> int:
        if value < MIN_PBKDF2_ITERATIONS:
            raise ValueError(
                f"PBKDF2_ITERATIONS must be at least {MIN_PBKDF2_ITERATIONS}, got {value}"
            )
        return value

    # Envelopes older than this log a staleness warning on decrypt (advisory only)
    staleness_warning_days: int = 30

    # Local secure storage
    purge_on_decrypt_failure: bool = True
    medical_slot_key: str = "eva_medical_data_encrypted"
    personal_slot_key: str = "eva_personal_data_encrypted"

    # Encrypted records API
    record_retention_days: int = 365
    records_query_limit: int = 100
    records_api_url: str = "http://localhost:8000"
    records_api_timeout_seconds: float = 10.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
