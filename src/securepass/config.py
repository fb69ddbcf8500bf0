"""Runtime settings, resolved from ``SECUREPASS_*`` environment variables.

==========================  ===========================================
SECUREPASS_BACKEND          ``memory``, ``file`` (default) or ``encrypted``
SECUREPASS_PATH             data file; defaults under the user data dir
SECUREPASS_API_URL          base URL of a remote credential service
SECUREPASS_SESSION_TOKEN    token sent to the remote service, if any
SECUREPASS_LOG_LEVEL        logging level name, default ``WARNING``
SECUREPASS_KDF_ITERATIONS   PBKDF2 rounds for the encrypted backend
==========================  ===========================================
"""

from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

_ENV_PREFIX = "SECUREPASS_"

PBKDF2_ITERATIONS = 600_000


class BackendKind(str, Enum):
    MEMORY = "memory"
    FILE = "file"
    ENCRYPTED = "encrypted"


def _default_data_dir(environ: Mapping[str, str]) -> Path:
    if sys.platform == "win32":
        base = Path(environ.get("APPDATA", Path.home()))
    else:
        base = Path(environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / "securepass"


class Settings(BaseModel):
    backend: BackendKind = BackendKind.FILE
    path: Optional[Path] = None
    api_url: Optional[str] = None
    session_token: Optional[str] = None
    log_level: str = "WARNING"
    kdf_iterations: int = Field(default=PBKDF2_ITERATIONS, ge=1)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "Settings":
        """Build settings from *environ* (defaults to ``os.environ``).

        Keyword *overrides* that are not ``None`` win over the environment,
        which is how command-line options are layered on top.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for field in cls.model_fields:
            raw = env.get(_ENV_PREFIX + field.upper())
            if raw:
                values[field] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        settings = cls.model_validate(values)
        if settings.path is None:
            settings.path = _default_data_dir(env) / settings.default_filename()
        return settings

    def default_filename(self) -> str:
        return "credentials.spv" if self.backend is BackendKind.ENCRYPTED else "credentials.json"
