"""securepass — a personal credential store and secure password generator."""

__version__ = "0.1.0"

from .backends import (
    EncryptedFileBackend,
    JsonFileBackend,
    MemoryBackend,
    PersistenceBackend,
    backend_from_settings,
)
from .config import BackendKind, Settings
from .errors import (
    BadVaultError,
    DecryptionError,
    PersistenceError,
    SecurePassError,
    TransportError,
)
from .generator import PasswordPolicy, SecureGenerator, StrengthLevel
from .models import CredentialDraft, CredentialRecord, CredentialUpdate
from .remote import RemoteCredentialStore
from .store import CredentialStore


__all__ = [
    "BackendKind",
    "BadVaultError",
    "CredentialDraft",
    "CredentialRecord",
    "CredentialStore",
    "CredentialUpdate",
    "DecryptionError",
    "EncryptedFileBackend",
    "JsonFileBackend",
    "MemoryBackend",
    "PasswordPolicy",
    "PersistenceBackend",
    "PersistenceError",
    "RemoteCredentialStore",
    "SecureGenerator",
    "SecurePassError",
    "Settings",
    "StrengthLevel",
    "TransportError",
    "backend_from_settings",
]
