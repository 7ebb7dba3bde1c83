"""HTTP client for the hosted itinerary database.

The server speaks the PostgREST dialect: every table is exposed under
``/rest/v1/<table>``, rows are filtered with ``column=eq.value`` query
parameters and errors come back as JSON objects carrying ``message``,
``details``, ``hint`` and ``code``. This module keeps those details away from
the rest of the application; callers only see dictionaries and
:class:`RemoteStoreError`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from settings import TabiSettings

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"


class RemoteStoreError(RuntimeError):
    """Raised for any failed request to the hosted database."""

    def __init__(
        self,
        message: str,
        *,
        details: Optional[str] = None,
        hint: Optional[str] = None,
        code: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.hint = hint
        self.code = code
        self.status = status


class RecordNotFoundError(RemoteStoreError):
    """Raised when a single-row lookup matches nothing."""


def format_error_message(error: BaseException) -> str:
    """Render ``error`` as a single line suitable for a notification."""

    if isinstance(error, RemoteStoreError):
        message = (error.message or "").strip() or "Unknown error"
        sections = [message]
        details = (error.details or "").strip()
        hint = (error.hint or "").strip()
        code = (error.code or "").strip()
        if details and details != message:
            sections.append(f"Details: {details}")
        if hint:
            sections.append(f"Hint: {hint}")
        if code:
            sections.append(f"Code: {code}")
        return " · ".join(sections)
    text = str(error).strip()
    return text or "Something went wrong"


def _error_from_response(response: httpx.Response) -> RemoteStoreError:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, Mapping):
        return RemoteStoreError(
            str(body.get("message") or body.get("error") or f"HTTP {response.status_code}"),
            details=body.get("details"),
            hint=body.get("hint"),
            code=str(body["code"]) if body.get("code") is not None else None,
            status=response.status_code,
        )
    text = response.text.strip() or response.reason_phrase
    return RemoteStoreError(f"HTTP {response.status_code}: {text}", status=response.status_code)


class RemoteStore:
    """Minimal insert/update/delete/select surface over PostgREST."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        access_token: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {
            "apikey": anon_key,
            "Authorization": f"Bearer {access_token or anon_key}",
            "Content-Type": "application/json",
        }
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + REST_PREFIX,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: TabiSettings, *, transport: Optional[httpx.BaseTransport] = None
    ) -> "RemoteStore":
        settings.require_configured()
        return cls(
            settings.supabase_url,
            settings.anon_key,
            access_token=settings.access_token,
            timeout=float(settings.request_timeout_seconds),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def insert(self, table: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert ``record`` and return the stored row with its server id."""

        rows = self._request(
            "POST",
            f"/{table}",
            json=dict(record),
            headers={"Prefer": "return=representation"},
        )
        if isinstance(rows, list) and rows:
            return dict(rows[0])
        if isinstance(rows, Mapping):
            return dict(rows)
        raise RemoteStoreError(f"Insert into {table} returned no row")

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> None:
        if not fields:
            return
        self._request(
            "PATCH",
            f"/{table}",
            params={"id": f"eq.{record_id}"},
            json=dict(fields),
            headers={"Prefer": "return=minimal"},
        )

    def delete(self, table: str, record_id: str) -> None:
        self._request(
            "DELETE",
            f"/{table}",
            params={"id": f"eq.{record_id}"},
            headers={"Prefer": "return=minimal"},
        )

    def select(
        self,
        table: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order: Sequence[str] = (),
        columns: str = "*",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return rows of ``table`` matching every equality in ``filters``.

        ``order`` entries use PostgREST syntax, e.g. ``"date.asc"`` or
        ``"start_time.asc.nullslast"``. A list or tuple filter value becomes an
        ``in.(...)`` clause.
        """

        params: Dict[str, str] = {"select": columns}
        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                params[column] = "in.(" + ",".join(str(entry) for entry in value) + ")"
            else:
                params[column] = f"eq.{value}"
        if order:
            params["order"] = ",".join(order)
        if limit is not None:
            params["limit"] = str(int(limit))
        rows = self._request("GET", f"/{table}", params=params)
        if not isinstance(rows, list):
            raise RemoteStoreError(f"Unexpected response when reading {table}")
        return [dict(row) for row in rows]

    def get(self, table: str, record_id: str) -> Dict[str, Any]:
        rows = self.select(table, filters={"id": record_id}, limit=1)
        if not rows:
            raise RecordNotFoundError(f"{table} row {record_id} not found", status=404)
        return rows[0]

    def ping(self) -> bool:
        """Return ``True`` when the server answers at all."""

        try:
            self._client.get("/", timeout=5.0)
        except httpx.HTTPError:
            return False
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise RemoteStoreError(f"Request to {url} timed out") from exc
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"Network error contacting the server: {exc}") from exc

        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.debug("%s %s failed: %s", method, url, format_error_message(error))
            raise error
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteStoreError(f"Server returned invalid JSON for {method} {url}") from exc


__all__ = [
    "RecordNotFoundError",
    "RemoteStore",
    "RemoteStoreError",
    "format_error_message",
]
