"""Persistence backends.

A backend durably stores the *whole* credential collection as one unit: a
JSON array of plain records. The store reads it once at start-up and
rewrites it after every mutation.

Encrypted file format
---------------------
Offset  Length  Content
0       4       Magic bytes b"SPV1"
4       1       Format version (uint8)
5       2       Salt length in bytes (big-endian uint16)
7       N       Salt
7+N     …       Fernet token (JSON array of records)

The Fernet key is PBKDF2-HMAC-SHA256 over the master password and the salt.
Every write draws a new salt.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import struct
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import PBKDF2_ITERATIONS, BackendKind, Settings
from .errors import BadVaultError, DecryptionError, PersistenceError, SecurePassError

logger = logging.getLogger(__name__)

STORAGE_KEY = "securepass.credentials"
SALT_SIZE = 32

_MAGIC = b"SPV1"
_FORMAT_VERSION = 1


@runtime_checkable
class PersistenceBackend(Protocol):
    """What :class:`~securepass.store.CredentialStore` needs from durable storage."""

    def load(self) -> list[dict[str, Any]]:
        """Return every stored record, or ``[]`` when nothing is stored or reading fails."""

    def save_all(self, records: list[dict[str, Any]]) -> None:
        """Replace the durable copy; raise :class:`PersistenceError` on failure."""

    def clear(self) -> None:
        """Erase the durable copy; raise :class:`PersistenceError` on failure."""


# ---------------------------------------------------------------------------
# In-process key/value backend
# ---------------------------------------------------------------------------


class MemoryBackend:
    """Keeps the serialized collection under one key of a plain dict.

    Pass a shared *items* dict to let several stores see the same data.
    """

    def __init__(self, items: Optional[dict[str, str]] = None, key: str = STORAGE_KEY) -> None:
        self.items = {} if items is None else items
        self.key = key

    def load(self) -> list[dict[str, Any]]:
        raw = self.items.get(self.key)
        if raw is None:
            return []
        try:
            return _decode(raw)
        except (ValueError, PersistenceError) as exc:
            logger.error("Ignoring unreadable data under key %r: %s", self.key, exc)
            return []

    def save_all(self, records: list[dict[str, Any]]) -> None:
        self.items[self.key] = json.dumps(records)

    def clear(self) -> None:
        self.items.pop(self.key, None)


# ---------------------------------------------------------------------------
# File backends
# ---------------------------------------------------------------------------


class _FileBackend(ABC):
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    @abstractmethod
    def read(self) -> list[dict[str, Any]]:
        """Strict read of the file; raises on any problem."""

    @abstractmethod
    def save_all(self, records: list[dict[str, Any]]) -> None: ...

    def load(self) -> list[dict[str, Any]]:
        if not self.exists():
            return []
        try:
            records = self.read()
        except (OSError, ValueError, SecurePassError) as exc:
            logger.error("Could not read %s: %s", self.path, exc)
            return []
        logger.debug("Loaded %d record(s) from %s", len(records), self.path)
        return records

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Could not remove {self.path}: {exc}") from exc

    def _write(self, data: bytes) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)

            # Atomic write via temp file
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(self.path)

            # Owner read/write only
            os.chmod(self.path, 0o600)
        except OSError as exc:
            raise PersistenceError(f"Could not write {self.path}: {exc}") from exc


class JsonFileBackend(_FileBackend):
    """Plain JSON array on disk. Passwords are stored as given."""

    def read(self) -> list[dict[str, Any]]:
        return _decode(self.path.read_text(encoding="utf-8"))

    def save_all(self, records: list[dict[str, Any]]) -> None:
        self._write(json.dumps(records, indent=2).encode("utf-8"))


class EncryptedFileBackend(_FileBackend):
    """JSON array sealed with a key derived from a master password."""

    def __init__(
        self, path: Path, master_password: str, iterations: int = PBKDF2_ITERATIONS
    ) -> None:
        super().__init__(path)
        self._master_password = master_password
        self._iterations = iterations
        # Key for the salt last read or written; a re-read of the same file
        # skips the PBKDF2 rounds.
        self._salt: Optional[bytes] = None
        self._fernet: Optional[Fernet] = None

    def read(self) -> list[dict[str, Any]]:
        """Strict read: raises :class:`BadVaultError` or :class:`DecryptionError`."""
        salt, token = _unpack(self.path.read_bytes())
        try:
            plaintext = self._cipher(salt).decrypt(token)
        except InvalidToken as exc:
            raise DecryptionError(
                "Decryption failed: wrong master password or corrupted vault."
            ) from exc
        return _decode(plaintext.decode("utf-8"))

    def save_all(self, records: list[dict[str, Any]]) -> None:
        salt = os.urandom(SALT_SIZE)
        token = self._cipher(salt).encrypt(json.dumps(records).encode("utf-8"))
        self._write(_pack(salt, token))

    def _cipher(self, salt: bytes) -> Fernet:
        if salt != self._salt or self._fernet is None:
            self._fernet = Fernet(derive_key(self._master_password, salt, self._iterations))
            self._salt = salt
        return self._fernet


# ---------------------------------------------------------------------------
# Start-up wiring
# ---------------------------------------------------------------------------


def backend_from_settings(
    settings: Settings, master_password: Optional[str] = None
) -> PersistenceBackend:
    """Build the one backend this deployment is configured for."""
    if settings.backend is BackendKind.MEMORY:
        return MemoryBackend()
    if settings.path is None:
        raise ValueError("a data file path is required for file backends")
    if settings.backend is BackendKind.FILE:
        return JsonFileBackend(settings.path)
    if master_password is None:
        raise ValueError("the encrypted backend needs a master password")
    return EncryptedFileBackend(settings.path, master_password, settings.kdf_iterations)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def derive_key(master_password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """Derive a urlsafe-base64 Fernet key from *master_password* and *salt*."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)
    return base64.urlsafe_b64encode(kdf.derive(master_password.encode("utf-8")))


def _decode(text: str) -> list[dict[str, Any]]:
    data = json.loads(text)
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise PersistenceError("Stored credentials are not a JSON array of objects.")
    return data


def _pack(salt: bytes, token: bytes) -> bytes:
    return _MAGIC + struct.pack(">BH", _FORMAT_VERSION, len(salt)) + salt + token


def _unpack(data: bytes) -> tuple[bytes, bytes]:
    """Return *(salt, token)* from raw vault bytes."""
    if len(data) < 7 or not data.startswith(_MAGIC):
        raise BadVaultError("Not a valid securepass vault file.")

    fmt_ver, salt_len = struct.unpack_from(">BH", data, len(_MAGIC))
    if fmt_ver != _FORMAT_VERSION:
        raise BadVaultError(f"Unsupported vault format version: {fmt_ver}.")

    offset = len(_MAGIC) + 3
    salt = data[offset : offset + salt_len]
    token = data[offset + salt_len :]
    if len(salt) != salt_len or not token:
        raise BadVaultError("Vault file is truncated or corrupt.")
    return salt, token
