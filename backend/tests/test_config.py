"""Tests for backend/evavault/config.py: Settings validation."""
from __future__ import annotations

import os
from unittest.mock import patch

import pytest


class TestApiTokenValidation:
    """Verify API_TOKEN enforcement in Settings."""

    def test_empty_api_token_raises_without_escape_hatch(self):
        """Settings() must raise ValueError when API_TOKEN is empty
        and ALLOW_INSECURE_API is not set."""
        from evavault.config import Settings

        env = {"API_TOKEN": "", "ALLOW_INSECURE_API": "0"}
        with patch.dict(os.environ, env, clear=False):
            with pytest.raises(ValueError, match="API_TOKEN is not set"):
                Settings(_env_file=None)

    def test_whitespace_api_token_raises(self):
        from evavault.config import Settings

        env = {"API_TOKEN": "   ", "ALLOW_INSECURE_API": "0"}
        with patch.dict(os.environ, env, clear=False):
            with pytest.raises(ValueError, match="API_TOKEN is not set"):
                Settings(_env_file=None)

    def test_allow_insecure_api_suppresses_error(self):
        """ALLOW_INSECURE_API=1 downgrades the error to a warning."""
        from evavault.config import Settings

        env = {"API_TOKEN": "", "ALLOW_INSECURE_API": "1"}
        with patch.dict(os.environ, env, clear=False):
            with pytest.warns(UserWarning, match="ALLOW_INSECURE_API"):
                s = Settings(_env_file=None)
            assert s.api_token == ""
            assert s.allow_insecure_api is True

    def test_api_token_whitespace_is_stripped(self):
        from evavault.config import Settings

        with patch.dict(os.environ, {"API_TOKEN": "  my-token  "}, clear=False):
            s = Settings(_env_file=None)
            assert s.api_token == "my-token"


class TestCryptoSettings:
    def test_defaults(self):
        from evavault.config import MIN_PBKDF2_ITERATIONS, Settings

        s = Settings(_env_file=None)
        assert s.kdf_algorithm == "pbkdf2-sha256"
        assert s.pbkdf2_iterations == MIN_PBKDF2_ITERATIONS
        assert s.purge_on_decrypt_failure is True
        assert s.medical_slot_key == "eva_medical_data_encrypted"
        assert s.personal_slot_key == "eva_personal_data_encrypted"

    def test_iterations_below_floor_rejected(self):
        from evavault.config import Settings

        with patch.dict(os.environ, {"PBKDF2_ITERATIONS": "10000"}, clear=False):
            with pytest.raises(ValueError, match="PBKDF2_ITERATIONS must be at least"):
                Settings(_env_file=None)

    def test_iterations_above_floor_accepted(self):
        from evavault.config import Settings

        with patch.dict(os.environ, {"PBKDF2_ITERATIONS": "600000"}, clear=False):
            assert Settings(_env_file=None).pbkdf2_iterations == 600_000

    def test_argon2id_selectable(self):
        from evavault.config import Settings

        with patch.dict(os.environ, {"KDF_ALGORITHM": "argon2id"}, clear=False):
            assert Settings(_env_file=None).kdf_algorithm == "argon2id"

    def test_unknown_kdf_rejected(self):
        from evavault.config import Settings

        with patch.dict(os.environ, {"KDF_ALGORITHM": "scrypt"}, clear=False):
            with pytest.raises(ValueError):
                Settings(_env_file=None)

    def test_purge_policy_from_env(self):
        from evavault.config import Settings

        with patch.dict(os.environ, {"PURGE_ON_DECRYPT_FAILURE": "false"}, clear=False):
            assert Settings(_env_file=None).purge_on_decrypt_failure is False
