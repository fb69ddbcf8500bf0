"""Exception hierarchy for securepass.

Lookups that miss (update, delete, get_by_id on an unknown id) are not
errors: they return ``None`` or ``False``.
"""

from __future__ import annotations

from typing import Optional


class SecurePassError(Exception):
    """Base class for every securepass error."""


class PersistenceError(SecurePassError):
    """A persistence backend could not read, write or erase its durable copy."""


class BadVaultError(PersistenceError):
    """Raised when an encrypted vault file is unreadable or corrupt."""


class DecryptionError(SecurePassError, ValueError):
    """Wrong master password or tampered ciphertext."""


class TransportError(SecurePassError):
    """The remote credential service failed or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
