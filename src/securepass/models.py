"""Domain models for securepass."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return _to_millis(datetime.now(timezone.utc))


def _to_millis(moment: datetime) -> datetime:
    # Stored timestamps carry millisecond precision.
    return moment.replace(microsecond=moment.microsecond // 1000 * 1000)


def _new_id() -> str:
    return str(uuid.uuid4())


class _CamelModel(BaseModel):
    # Wire format uses camelCase (createdAt / updatedAt); Python code uses snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CredentialDraft(_CamelModel):
    """Content of a credential that does not exist yet (no id, no timestamps)."""

    model_config = ConfigDict(extra="forbid")

    website: str
    username: str
    password: str
    notes: Optional[str] = None


class CredentialUpdate(_CamelModel):
    """A partial edit. Only fields that were explicitly given are applied."""

    model_config = ConfigDict(extra="forbid")

    website: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("website", "username", "password")
    @classmethod
    def _not_none(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value

    def changes(self) -> dict[str, Any]:
        """Return only the fields present in this edit."""
        return self.model_dump(exclude_unset=True)


class CredentialRecord(_CamelModel):
    """A single stored website / username / password entry."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=_new_id, frozen=True)
    website: str
    username: str
    password: str
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow, frozen=True)
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are taken to be UTC; others are converted to it."""
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return _to_millis(value.astimezone(timezone.utc))

    @field_serializer("created_at", "updated_at", when_used="json")
    def _iso_millis(self, value: datetime) -> str:
        # e.g. 2024-01-01T10:00:00.000Z
        return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    @model_validator(mode="after")
    def _never_updated(self) -> "CredentialRecord":
        if self.updated_at is None:
            self.updated_at = self.created_at
        return self

    @classmethod
    def create(
        cls,
        website: str,
        username: str,
        password: str,
        notes: Optional[str] = None,
        id: Optional[str] = None,
    ) -> "CredentialRecord":
        """Build a brand-new record; both timestamps share one clock read."""
        now = _utcnow()
        return cls(
            id=id or _new_id(),
            website=website,
            username=username,
            password=password,
            notes=notes,
            created_at=now,
            updated_at=now,
        )

    def update(self, changes: Union[CredentialUpdate, Mapping[str, Any]]) -> None:
        """Apply a partial edit and refresh *updated_at*.

        Keys absent from *changes* are left alone; an empty string is a value
        and overwrites. The timestamp advances even when nothing changed.
        """
        if not isinstance(changes, CredentialUpdate):
            changes = CredentialUpdate.model_validate(changes)
        for name, value in changes.changes().items():
            setattr(self, name, value)
        self.touch()

    def touch(self) -> None:
        """Update *updated_at* to now, never moving it backwards."""
        now = _utcnow()
        self.updated_at = now if now > self.updated_at else self.updated_at

    def serialize(self) -> dict[str, Any]:
        """Plain JSON-ready snapshot with ISO-8601 timestamps."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def deserialize(cls, data: Mapping[str, Any]) -> "CredentialRecord":
        """Rebuild a record, keeping id and both timestamps verbatim."""
        return cls.model_validate(dict(data))

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on website or username."""
        needle = term.casefold()
        return needle in self.website.casefold() or needle in self.username.casefold()
