"""Single access point over the remote record service and the local store.

With an endpoint configured, every call goes to the service first; a
``RemoteStoreError`` is logged and the identical call is re-issued against the
local store. A uniqueness conflict is a definitive answer from whichever store
raised it and is not retried elsewhere.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, TypeVar, Union

import config
from logging_config import storage_logger

from .errors import RecordConflictError, RemoteStoreError, StoreError, StoreUnavailableError
from .filters import FilterLike, Table
from .local_store import LocalRecordStore, RecordInput
from .records import with_identity
from .remote_store import RemoteRecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreSource(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class Served(Generic[T]):
    """Result of a routed call, tagged with the store that answered it."""

    value: T
    source: StoreSource
    fallback_error: Optional[RemoteStoreError] = None

    @property
    def fell_back(self) -> bool:
        return self.fallback_error is not None


def with_fallback(
    primary: Optional[Callable[[], T]],
    secondary: Callable[[], T],
    *,
    operation: str = "call",
    table: str = "",
) -> Served[T]:
    """Run ``primary`` (remote) and fall back to ``secondary`` (local) on RemoteStoreError."""
    remote_error: Optional[RemoteStoreError] = None
    if primary is not None:
        try:
            return Served(primary(), StoreSource.REMOTE)
        except RemoteStoreError as exc:
            remote_error = exc
            storage_logger.log_fallback(operation, table, exc)

    try:
        value = secondary()
    except RecordConflictError:
        raise
    except StoreError as exc:
        if remote_error is None:
            raise
        storage_logger.log_error(operation, exc)
        raise StoreUnavailableError(operation, remote_error, exc) from exc
    return Served(value, StoreSource.LOCAL, remote_error)


class DualModeStore:
    """Routes the record operations to the service when one is configured."""

    def __init__(
        self,
        local: Optional[LocalRecordStore] = None,
        endpoint: Optional[str] = None,
        *,
        endpoint_path: Optional[str] = None,
        remote_factory: Callable[[str], RemoteRecordStore] = RemoteRecordStore,
    ) -> None:
        self.local = local if local is not None else LocalRecordStore()
        self.endpoint_path = Path(endpoint_path) if endpoint_path else None
        self._remote_factory = remote_factory
        self._remote: Optional[RemoteRecordStore] = None
        self._lock = threading.Lock()
        self.set_endpoint(endpoint, persist=False)

    # ------------------------------------------------------------------
    # Mode management
    # ------------------------------------------------------------------
    @property
    def endpoint(self) -> Optional[str]:
        remote = self._remote
        return remote.base_url if remote is not None else None

    @property
    def remote(self) -> Optional[RemoteRecordStore]:
        return self._remote

    def is_remote_mode(self) -> bool:
        return self._remote is not None

    def set_endpoint(self, url: Optional[str], *, persist: bool = True) -> None:
        """Switch to the service at ``url``, or to local mode when empty.

        With ``persist`` the choice is written to ``endpoint_path`` (when set) so
        the next ``build_store`` starts in the same mode.
        """
        url = (url or "").strip().rstrip("/") or None
        with self._lock:
            self._remote = self._remote_factory(url) if url else None
            if persist and self.endpoint_path is not None:
                save_endpoint(self.endpoint_path, url)
        storage_logger.log_mode_change(url)

    def check_health(self) -> bool:
        remote = self._remote
        return remote.health() if remote is not None else False

    def server_info(self) -> Optional[Dict[str, Any]]:
        remote = self._remote
        return remote.info() if remote is not None else None

    # ------------------------------------------------------------------
    # Routed operations
    # ------------------------------------------------------------------
    def call(self, operation: str, table: Union[Table, str], *args: Any) -> Served[Any]:
        table = Table.parse(table)
        if operation == "insert":
            args = (_stamp(args[0]),) + tuple(args[1:])
        remote = self._remote
        primary = None
        if remote is not None:
            def primary():
                return getattr(remote, operation)(table, *args)
        return with_fallback(
            primary,
            lambda: getattr(self.local, operation)(table, *args),
            operation=operation,
            table=table.value,
        )

    def select(self, table: Union[Table, str], filters: FilterLike = None) -> List[Dict[str, Any]]:
        return self.call("select", table, filters).value

    def select_single(self, table: Union[Table, str], filters: FilterLike = None) -> Optional[Dict[str, Any]]:
        return self.call("select_single", table, filters).value

    def insert(self, table: Union[Table, str], data: RecordInput) -> List[Dict[str, Any]]:
        return self.call("insert", table, data).value

    def update(self, table: Union[Table, str], filters: FilterLike, fields: Mapping[str, Any]) -> int:
        return self.call("update", table, filters, fields).value

    def delete(self, table: Union[Table, str], filters: FilterLike) -> int:
        return self.call("delete", table, filters).value

    def count(self, table: Union[Table, str], filters: FilterLike = None) -> int:
        return self.call("count", table, filters).value


def _stamp(data: RecordInput) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
    if isinstance(data, Mapping):
        return with_identity(data)
    return [with_identity(item) for item in data]


def save_endpoint(path: Union[str, Path], url: Optional[str]) -> None:
    """Write the chosen endpoint; ``None`` records local mode."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".server_url.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump({"server_url": url}, handle)
            os.replace(tmp_name, path)
        except OSError:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
    except OSError as exc:
        logger.warning("Cannot save record service endpoint to %s: %s", path, exc)


def load_endpoint(path: Union[str, Path]) -> Optional[Dict[str, Optional[str]]]:
    """The saved ``{"server_url": ...}`` choice, or None when nothing usable is saved."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            saved = json.load(handle)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable endpoint file %s: %s", path, exc)
        return None
    url = saved.get("server_url", "") if isinstance(saved, dict) else ""
    if url is not None and not (isinstance(url, str) and url.strip()):
        logger.warning("Ignoring malformed endpoint file %s", path)
        return None
    return {"server_url": url}


def build_store(
    endpoint: Optional[str] = None,
    local_path: Optional[str] = None,
    *,
    endpoint_path: Optional[str] = None,
    remote_factory: Callable[[str], RemoteRecordStore] = RemoteRecordStore,
) -> DualModeStore:
    """Create the process store, probing the service once.

    The endpoint is the explicit argument, else the one saved by the last
    ``set_endpoint``, else ``RECORD_SERVER_URL``. An unhealthy service starts the
    process in local mode without forgetting the saved choice.
    """
    local_path = config.LOCAL_STORE_PATH if local_path is None else local_path
    endpoint_path = config.SERVER_URL_PATH if endpoint_path is None else endpoint_path
    if endpoint is None:
        saved = load_endpoint(endpoint_path) if endpoint_path else None
        endpoint = saved["server_url"] if saved is not None else config.RECORD_SERVER_URL

    store = DualModeStore(
        LocalRecordStore(local_path or None),
        endpoint,
        endpoint_path=endpoint_path or None,
        remote_factory=remote_factory,
    )
    if store.is_remote_mode() and not store.check_health():
        logger.warning("Record service at %s is not healthy, starting in local mode", store.endpoint)
        store.set_endpoint(None, persist=False)
    return store
