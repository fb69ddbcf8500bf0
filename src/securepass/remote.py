"""Asynchronous client for a credential service reached over HTTP.

Offers the same operations as :class:`~securepass.store.CredentialStore`,
mapped one-to-one onto requests against ``base_url``::

    get_all    GET     {base}
    add        POST    {base}
    get_by_id  GET     {base}/{id}
    update     PUT     {base}/{id}      -> {"count": n}, then GET {base}/{id}
    delete     DELETE  {base}/{id}      -> {"success": bool}
    search     GET     {base}, filtered locally

Network failures and unexpected statuses raise :class:`TransportError`.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

import httpx

from .errors import TransportError
from .models import CredentialDraft, CredentialRecord, CredentialUpdate

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class RemoteCredentialStore:
    """Credential store whose authoritative copy lives behind an HTTP API."""

    def __init__(
        self,
        base_url: str,
        session_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if session_token:
            headers["X-Session-Token"] = session_token
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            headers=headers, timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> "RemoteCredentialStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get_all(self) -> list[CredentialRecord]:
        data = await self._request("GET", "")
        if not isinstance(data, list):
            raise TransportError("Expected a JSON array of credentials.")
        return [self._record(item) for item in data]

    async def get_by_id(self, record_id: str) -> Optional[CredentialRecord]:
        data = await self._request("GET", f"/{record_id}", allow_missing=True)
        return None if data is None else self._record(data)

    async def add(self, draft: Union[CredentialDraft, Mapping[str, Any]]) -> CredentialRecord:
        if not isinstance(draft, CredentialDraft):
            draft = CredentialDraft.model_validate(draft)
        data = await self._request("POST", "", json=draft.model_dump())
        return self._record(data)

    async def update(
        self, record_id: str, changes: Union[CredentialUpdate, Mapping[str, Any]]
    ) -> Optional[CredentialRecord]:
        if not isinstance(changes, CredentialUpdate):
            changes = CredentialUpdate.model_validate(changes)
        result = await self._request("PUT", f"/{record_id}", json=changes.changes())
        if not isinstance(result, dict) or not result.get("count"):
            return None
        return await self.get_by_id(record_id)

    async def delete(self, record_id: str) -> bool:
        result = await self._request("DELETE", f"/{record_id}", allow_missing=True)
        return isinstance(result, dict) and bool(result.get("success"))

    async def search(self, term: str) -> list[CredentialRecord]:
        records = await self.get_all()
        if not term.strip():
            return records
        return [r for r in records if r.matches(term)]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(
        self, method: str, path: str, *, json: Any = None, allow_missing: bool = False
    ) -> Any:
        url = self.base_url + path
        try:
            response = await self._client.request(method, url, json=json)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if response.status_code == 404 and allow_missing:
            return None
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("%s %s returned HTTP %d", method, url, response.status_code)
            raise TransportError(
                f"API request failed: {response.status_code}", status_code=response.status_code
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {url} returned invalid JSON") from exc

    @staticmethod
    def _record(data: Any) -> CredentialRecord:
        try:
            return CredentialRecord.deserialize(data)
        except (TypeError, ValueError) as exc:
            raise TransportError("Server returned a malformed credential.") from exc
