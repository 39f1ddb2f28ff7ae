"""On-device record store: one in-memory document collection per table.

Queries use a secondary index for the first equality constraint when one
exists for that field, then filter the remaining constraints linearly, then
order, then limit. A missing index degrades to a full-table scan with a
warning; it never fails the query.

When constructed with a path the store is durable: it loads a JSON snapshot
on start and rewrites it atomically after every mutation.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from logging_config import storage_logger

from .errors import InvalidRecordError, RecordConflictError, StoreError
from .filters import FilterLike, QueryFilter, Table, coerce_filter

RecordInput = Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]

_SNAPSHOT_VERSION = 1


def _index_key(value: Any) -> Any:
    """Hashable stand-in for an indexed field value."""
    if isinstance(value, list):
        return ("__list__",) + tuple(_index_key(item) for item in value)
    if isinstance(value, dict):
        return ("__dict__", json.dumps(value, sort_keys=True, default=str))
    return value


class LocalRecordStore:
    """Thread-safe per-table document store with secondary indexes."""

    def __init__(self, path: Optional[Union[str, Path]] = None, *, logger: Optional[logging.Logger] = None) -> None:
        self._path = Path(path) if path else None
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._tables: Dict[Table, Dict[str, Dict[str, Any]]] = {table: {} for table in Table}
        # table -> field -> value key -> ordered set of ids
        self._indexes: Dict[Table, Dict[str, Dict[Any, Dict[str, None]]]] = {
            table: {field: {} for field in table.indexed_fields} for table in Table
        }
        if self._path is not None and self._path.exists():
            self._load()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------
    def select(self, table: Union[Table, str], filters: FilterLike = None) -> List[Dict[str, Any]]:
        table = Table.parse(table)
        query = coerce_filter(filters)
        with self._lock:
            rows = self._matching(table, query)
            if query.order_by is not None:
                rows = self._ordered(rows, query.order_by.column, query.order_by.ascending)
            if query.limit is not None:
                rows = rows[: query.limit]
            return [copy.deepcopy(row) for row in rows]

    def select_single(self, table: Union[Table, str], filters: FilterLike = None) -> Optional[Dict[str, Any]]:
        query = coerce_filter(filters).limited(1)
        rows = self.select(table, query)
        return rows[0] if rows else None

    def count(self, table: Union[Table, str], filters: FilterLike = None) -> int:
        table = Table.parse(table)
        query = coerce_filter(filters).equality_only()
        with self._lock:
            return len(self._matching(table, query))

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------
    def insert(self, table: Union[Table, str], data: RecordInput) -> List[Dict[str, Any]]:
        """Upsert one or many records; an existing id is fully replaced."""
        table = Table.parse(table)
        items = [data] if isinstance(data, Mapping) else list(data)

        pending: Dict[str, Dict[str, Any]] = {}
        for item in items:
            if not isinstance(item, Mapping):
                raise InvalidRecordError(f"{table.value}: record must be a mapping")
            record_id = item.get("id")
            if not isinstance(record_id, str) or not record_id:
                raise InvalidRecordError(f"{table.value}: record is missing an 'id'")
            pending.pop(record_id, None)
            pending[record_id] = copy.deepcopy(dict(item))

        with self._lock:
            self._check_unique(table, list(pending.values()), replaced_ids=set(pending))
            collection = self._tables[table]
            for record_id, record in pending.items():
                previous = collection.get(record_id)
                if previous is not None:
                    self._unindex(table, previous)
                collection[record_id] = record
                self._index(table, record)
            self._persist()
            return [copy.deepcopy(record) for record in pending.values()]

    def update(self, table: Union[Table, str], filters: FilterLike, fields: Mapping[str, Any]) -> int:
        """Apply ``fields`` to every record matching the equality constraints."""
        table = Table.parse(table)
        query = coerce_filter(filters).equality_only()
        if not isinstance(fields, Mapping):
            raise InvalidRecordError(f"{table.value}: updates must be a mapping")
        changes = copy.deepcopy(dict(fields))

        with self._lock:
            targets = self._matching(table, query)
            if "id" in changes and any(row["id"] != changes["id"] for row in targets):
                raise InvalidRecordError(f"{table.value}: 'id' cannot be updated")
            if not targets or not changes:
                return 0
            updated = [{**row, **changes} for row in targets]
            self._check_unique(table, updated, replaced_ids={row["id"] for row in targets})
            collection = self._tables[table]
            for old, new in zip(targets, updated):
                self._unindex(table, old)
                collection[new["id"]] = new
                self._index(table, new)
            self._persist()
            return len(updated)

    def delete(self, table: Union[Table, str], filters: FilterLike) -> int:
        table = Table.parse(table)
        query = coerce_filter(filters).equality_only()
        with self._lock:
            targets = self._matching(table, query)
            collection = self._tables[table]
            for row in targets:
                self._unindex(table, row)
                collection.pop(row["id"], None)
            if targets:
                self._persist()
            return len(targets)

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    def _matching(self, table: Table, query: QueryFilter) -> List[Dict[str, Any]]:
        collection = self._tables[table]
        if not query.eq:
            return list(collection.values())

        first_field, first_value = next(iter(query.eq.items()))
        if first_field == "id":
            row = collection.get(first_value) if isinstance(first_value, str) else None
            candidates: Iterable[Dict[str, Any]] = [row] if row is not None else []
        elif first_field in self._indexes[table]:
            try:
                ids = self._indexes[table][first_field].get(_index_key(first_value), {})
            except TypeError:
                ids = {}
            candidates = [collection[record_id] for record_id in ids]
        else:
            storage_logger.log_missing_index(table.value, first_field)
            candidates = collection.values()

        return [row for row in candidates if query.matches(row)]

    @staticmethod
    def _ordered(rows: List[Dict[str, Any]], column: str, ascending: bool) -> List[Dict[str, Any]]:
        # Missing/None sort first ascending and last descending, as in SQLite
        def sort_key(row):
            value = row.get(column)
            return (0,) if value is None else (1, value)

        try:
            return sorted(rows, key=sort_key, reverse=not ascending)
        except TypeError:
            def text_key(row):
                value = row.get(column)
                return (0,) if value is None else (1, str(value))

            return sorted(rows, key=text_key, reverse=not ascending)

    # ------------------------------------------------------------------
    # Index + constraint maintenance (callers hold the lock)
    # ------------------------------------------------------------------
    def _index(self, table: Table, record: Mapping[str, Any]) -> None:
        for field, entries in self._indexes[table].items():
            if field not in record:
                continue
            try:
                entries.setdefault(_index_key(record[field]), {})[record["id"]] = None
            except TypeError:
                self._logger.debug("Unindexable value for %s.%s", table.value, field)

    def _unindex(self, table: Table, record: Mapping[str, Any]) -> None:
        for field, entries in self._indexes[table].items():
            if field not in record:
                continue
            try:
                key = _index_key(record[field])
                bucket = entries.get(key)
            except TypeError:
                continue
            if bucket is not None:
                bucket.pop(record["id"], None)
                if not bucket:
                    entries.pop(key, None)

    def _check_unique(self, table: Table, records: List[Dict[str, Any]], *, replaced_ids: set) -> None:
        for fields in table.unique_keys:
            seen: Dict[tuple, str] = {}
            for record in records:
                values = tuple(record.get(field) for field in fields)
                # NULL never collides, as in SQL
                if any(value is None for value in values):
                    continue
                other = seen.get(values)
                if other is not None and other != record["id"]:
                    raise RecordConflictError(table.value, fields, values)
                seen[values] = record["id"]

                existing = self._matching(table, QueryFilter(eq=dict(zip(fields, values))))
                for row in existing:
                    if row["id"] != record["id"] and row["id"] not in replaced_ids:
                        raise RecordConflictError(table.value, fields, values)

    # ------------------------------------------------------------------
    # Durability
    # ------------------------------------------------------------------
    def _persist(self) -> None:
        if self._path is None:
            return
        snapshot = {
            "version": _SNAPSHOT_VERSION,
            "tables": {table.value: list(rows.values()) for table, rows in self._tables.items()},
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".local_store.", dir=str(self._path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot, handle, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise StoreError(f"Cannot write local store snapshot {self._path}: {exc}") from exc

    def _load(self) -> None:
        try:
            with open(self._path, "r", encoding="utf-8") as handle:
                snapshot = json.load(handle)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Cannot read local store snapshot {self._path}: {exc}") from exc

        tables = snapshot.get("tables") if isinstance(snapshot, dict) else None
        if not isinstance(tables, dict):
            raise StoreError(f"Malformed local store snapshot {self._path}")

        loaded = 0
        for name, rows in tables.items():
            try:
                table = Table.parse(name)
            except ValueError:
                self._logger.warning("Skipping unknown table %r in %s", name, self._path)
                continue
            for row in rows or []:
                if isinstance(row, dict) and row.get("id"):
                    self._tables[table][row["id"]] = row
                    self._index(table, row)
                    loaded += 1
        self._logger.info("Loaded %d local records from %s", loaded, self._path)
