"""HTTP client for the record service.

Every failure surfaces as an exception: a transport error or a non-success
status is never read as an empty result.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import requests

from config import HEALTH_CHECK_TIMEOUT, REMOTE_REQUEST_TIMEOUT

from .errors import RecordConflictError, RemoteStoreError
from .filters import FilterLike, Table, coerce_filter
from .local_store import RecordInput

logger = logging.getLogger(__name__)


class RemoteRecordStore:
    """Talks JSON to ``<base_url>/api/*``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = REMOTE_REQUEST_TIMEOUT,
        health_timeout: float = HEALTH_CHECK_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.health_timeout = health_timeout
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------
    def select(self, table: Union[Table, str], filters: FilterLike = None) -> List[Dict[str, Any]]:
        rows = self._post("select", table, filters=coerce_filter(filters).to_payload())
        if not isinstance(rows, list):
            raise RemoteStoreError(f"select {table}: expected a list, got {type(rows).__name__}")
        return rows

    def select_single(self, table: Union[Table, str], filters: FilterLike = None) -> Optional[Dict[str, Any]]:
        row = self._post("selectSingle", table, filters=coerce_filter(filters).to_payload())
        if row is not None and not isinstance(row, dict):
            raise RemoteStoreError(f"selectSingle {table}: expected an object, got {type(row).__name__}")
        return row

    def insert(self, table: Union[Table, str], data: RecordInput) -> List[Dict[str, Any]]:
        records = [dict(data)] if isinstance(data, Mapping) else [dict(item) for item in data]
        self._post("insert", table, data=records)
        return records

    def update(self, table: Union[Table, str], filters: FilterLike, fields: Mapping[str, Any]) -> int:
        body = self._post(
            "update", table, filters=coerce_filter(filters).equality_only().to_payload(), updates=dict(fields)
        )
        return _changes(body, "update")

    def delete(self, table: Union[Table, str], filters: FilterLike) -> int:
        body = self._post("delete", table, filters=coerce_filter(filters).equality_only().to_payload())
        return _changes(body, "delete")

    def count(self, table: Union[Table, str], filters: FilterLike = None) -> int:
        body = self._post("count", table, filters=coerce_filter(filters).equality_only().to_payload())
        if isinstance(body, bool) or not isinstance(body, int):
            raise RemoteStoreError(f"count {table}: expected an integer, got {body!r}")
        return body

    # ------------------------------------------------------------------
    # Service probes
    # ------------------------------------------------------------------
    def health(self) -> bool:
        try:
            response = self._session.get(f"{self.base_url}/api/health", timeout=self.health_timeout)
        except requests.RequestException as exc:
            logger.debug("Health check against %s failed: %s", self.base_url, exc)
            return False
        return response.ok

    def info(self) -> Dict[str, Any]:
        return self._request("GET", "info")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _post(self, action: str, table: Union[Table, str], **payload: Any) -> Any:
        body = {"table": Table.parse(table).value}
        body.update(payload)
        return self._request("POST", action, json=body)

    def _request(self, method: str, action: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}/api/{action}"
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise RemoteStoreError(f"{action}: cannot reach {self.base_url}: {exc}") from exc

        if response.status_code == 409:
            raise RecordConflictError(
                str((kwargs.get("json") or {}).get("table", "")), message=_error_message(response)
            )
        if not response.ok:
            raise RemoteStoreError(
                f"{action}: HTTP {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteStoreError(
                f"{action}: malformed response body", status_code=response.status_code
            ) from exc


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or "unknown error"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return str(body)


def _changes(body: Any, action: str) -> int:
    if not isinstance(body, dict) or not isinstance(body.get("changes"), int):
        raise RemoteStoreError(f"{action}: expected {{success, changes}}, got {body!r}")
    return body["changes"]
