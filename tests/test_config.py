"""Tests for securepass.config."""

import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from securepass.config import PBKDF2_ITERATIONS, BackendKind, Settings


def test_defaults(tmp_path):
    settings = Settings.from_env({"XDG_DATA_HOME": str(tmp_path), "APPDATA": str(tmp_path)})
    assert settings.backend is BackendKind.FILE
    assert settings.log_level == "WARNING"
    assert settings.kdf_iterations == PBKDF2_ITERATIONS
    assert settings.path == tmp_path / "securepass" / "credentials.json"
    assert settings.api_url is None


@pytest.mark.skipif(sys.platform == "win32", reason="XDG layout")
def test_encrypted_default_filename(tmp_path):
    settings = Settings.from_env({"XDG_DATA_HOME": str(tmp_path), "SECUREPASS_BACKEND": "encrypted"})
    assert settings.path == tmp_path / "securepass" / "credentials.spv"


def test_environment_values():
    settings = Settings.from_env(
        {
            "SECUREPASS_BACKEND": "memory",
            "SECUREPASS_PATH": "/data/creds.json",
            "SECUREPASS_API_URL": "http://localhost:4000/api/passwords",
            "SECUREPASS_SESSION_TOKEN": "tok-123",
            "SECUREPASS_LOG_LEVEL": "debug",
            "SECUREPASS_KDF_ITERATIONS": "1000",
        }
    )
    assert settings.backend is BackendKind.MEMORY
    assert settings.path == Path("/data/creds.json")
    assert settings.api_url == "http://localhost:4000/api/passwords"
    assert settings.session_token == "tok-123"
    assert settings.log_level == "DEBUG"
    assert settings.kdf_iterations == 1000


def test_overrides_win_over_environment(tmp_path):
    settings = Settings.from_env(
        {"SECUREPASS_BACKEND": "memory", "SECUREPASS_PATH": "/ignored.json"},
        backend=BackendKind.FILE,
        path=tmp_path / "x.json",
        log_level=None,
    )
    assert settings.backend is BackendKind.FILE
    assert settings.path == tmp_path / "x.json"
    assert settings.log_level == "WARNING"


def test_empty_variables_are_ignored(tmp_path):
    settings = Settings.from_env({"SECUREPASS_BACKEND": "", "XDG_DATA_HOME": str(tmp_path)})
    assert settings.backend is BackendKind.FILE


@pytest.mark.parametrize(
    "env",
    [
        {"SECUREPASS_BACKEND": "localStorage"},
        {"SECUREPASS_LOG_LEVEL": "loud"},
        {"SECUREPASS_KDF_ITERATIONS": "0"},
    ],
)
def test_invalid_values_raise(env):
    with pytest.raises(ValidationError):
        Settings.from_env(env)
