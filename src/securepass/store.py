"""The credential store: the authoritative in-memory collection.

The store reads its backend exactly once, on construction. Every mutation is
applied in memory first and then the *entire* collection is written back.
Whatever a backend raises while loading, writing or clearing is logged and
recorded on the store but never raised: the
in-memory copy stays authoritative for the rest of the process and the
durable copy may lag behind until a later flush succeeds.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping, Optional, Union

from pydantic import ValidationError

from .backends import PersistenceBackend
from .errors import PersistenceError
from .models import CredentialDraft, CredentialRecord, CredentialUpdate

logger = logging.getLogger(__name__)


class CredentialStore:
    """Owns the credential collection and flushes it through a backend."""

    def __init__(self, backend: PersistenceBackend) -> None:
        self.backend = backend
        self.last_error: Optional[Exception] = None
        self.dirty = False
        self._records: list[CredentialRecord] = []
        self._load()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all(self) -> list[CredentialRecord]:
        """Return copies of every record, in insertion order."""
        return [r.model_copy() for r in self._records]

    def get_by_id(self, record_id: str) -> Optional[CredentialRecord]:
        record = self._find(record_id)
        return record.model_copy() if record else None

    def search(self, term: str) -> list[CredentialRecord]:
        """Case-insensitive substring search over website and username.

        A blank *term* returns everything.
        """
        if not term.strip():
            return self.get_all()
        return [r.model_copy() for r in self._records if r.matches(term)]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CredentialRecord]:
        return iter(self.get_all())

    def __contains__(self, record_id: object) -> bool:
        return any(r.id == record_id for r in self._records)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, draft: Union[CredentialDraft, Mapping[str, Any]]) -> CredentialRecord:
        if not isinstance(draft, CredentialDraft):
            draft = CredentialDraft.model_validate(draft)
        record = CredentialRecord.create(
            website=draft.website,
            username=draft.username,
            password=draft.password,
            notes=draft.notes,
        )
        self._records.append(record)
        logger.info("Added credential %s", record.id)
        self.flush()
        return record.model_copy()

    def update(
        self, record_id: str, changes: Union[CredentialUpdate, Mapping[str, Any]]
    ) -> Optional[CredentialRecord]:
        """Apply a partial edit; returns ``None`` when *record_id* is unknown."""
        record = self._find(record_id)
        if record is None:
            logger.debug("Update skipped, no credential %s", record_id)
            return None
        record.update(changes)
        logger.info("Updated credential %s", record_id)
        self.flush()
        return record.model_copy()

    def delete(self, record_id: str) -> bool:
        remaining = [r for r in self._records if r.id != record_id]
        removed = len(self._records) - len(remaining)
        if not removed:
            return False
        if removed > 1:
            logger.warning("Removed %d credentials sharing id %s", removed, record_id)
        self._records = remaining
        logger.info("Deleted credential %s", record_id)
        self.flush()
        return True

    def clear_all(self) -> None:
        """Drop every record here and erase the durable copy. Irreversible."""
        self._records = []
        try:
            self.backend.clear()
        except Exception as exc:
            self._failed("clear", exc)
        else:
            self._succeeded()
        logger.info("Cleared all credentials")

    def flush(self) -> bool:
        """Write the whole collection to the backend.

        Returns ``False`` (and keeps :attr:`dirty` set) when the backend fails.
        """
        try:
            self.backend.save_all([r.serialize() for r in self._records])
        except Exception as exc:
            self._failed("save", exc)
            return False
        self._succeeded()
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self) -> None:
        try:
            items = self.backend.load()
        except Exception as exc:
            self.last_error = exc
            logger.error("Could not load credentials, starting empty: %s", exc, exc_info=exc)
            items = []
        for item in items:
            try:
                self._records.append(CredentialRecord.deserialize(item))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed stored credential %s: %d error(s)",
                    item.get("id", "<no id>"),
                    exc.error_count(),
                )
        logger.debug("Store initialised with %d credential(s)", len(self._records))

    def _find(self, record_id: str) -> Optional[CredentialRecord]:
        return next((r for r in self._records if r.id == record_id), None)

    def _failed(self, operation: str, exc: Exception) -> None:
        self.last_error = exc
        self.dirty = True
        # Backends report expected failures as PersistenceError; anything else gets a traceback.
        logger.error(
            "Persistence %s failed, keeping in-memory state: %s",
            operation,
            exc,
            exc_info=None if isinstance(exc, PersistenceError) else exc,
        )

    def _succeeded(self) -> None:
        self.last_error = None
        self.dirty = False
