"""Filter protocol shared by the local store, the remote client and the record service.

A filter is a set of ANDed equality constraints, an optional ordering and an
optional result limit. Its wire shape is::

    {"eq": {field: value, ...}, "orderBy": {"column": str, "ascending": bool}, "limit": int}

Every key is optional; an empty filter is a full scan.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .errors import InvalidFilterError, UnknownTableError


class Table(str, Enum):
    """Closed set of record tables."""

    USERS = "users"
    USER_ROLES = "userRoles"
    STUDENTS = "students"
    CLASSES = "classes"
    SESSIONS = "sessions"
    ATTENDANCE = "attendance"
    CLASS_STUDENTS = "classStudents"

    @classmethod
    def parse(cls, value: Union["Table", str]) -> "Table":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownTableError(value) from None

    @property
    def sql_name(self) -> str:
        """Table name inside the record service database."""
        return _SQL_NAMES.get(self, self.value)

    @property
    def indexed_fields(self) -> Tuple[str, ...]:
        return _INDEXES[self]

    @property
    def unique_keys(self) -> Tuple[Tuple[str, ...], ...]:
        return _UNIQUE_KEYS.get(self, ())


_SQL_NAMES = {
    Table.USER_ROLES: "user_roles",
    Table.CLASS_STUDENTS: "class_students",
}

# Secondary indexes of the on-device store ("id" is always the primary key)
_INDEXES: Dict[Table, Tuple[str, ...]] = {
    Table.USERS: ("email",),
    Table.USER_ROLES: ("user_id", "role"),
    Table.STUDENTS: ("user_id", "usn", "email"),
    Table.CLASSES: ("created_by",),
    Table.SESSIONS: ("class_id", "created_by", "start_at", "status"),
    Table.ATTENDANCE: ("session_id", "student_id", "timestamp"),
    Table.CLASS_STUDENTS: ("class_id", "student_id"),
}

_UNIQUE_KEYS: Dict[Table, Tuple[Tuple[str, ...], ...]] = {
    Table.USERS: (("email",),),
    Table.ATTENDANCE: (("session_id", "student_id"),),
    Table.CLASS_STUDENTS: (("class_id", "student_id"),),
}


@dataclass(frozen=True)
class OrderBy:
    column: str
    ascending: bool = True

    def to_payload(self) -> Dict[str, Any]:
        return {"column": self.column, "ascending": self.ascending}


@dataclass(frozen=True)
class QueryFilter:
    """Equality constraints + optional ordering + optional limit."""

    eq: Mapping[str, Any] = field(default_factory=dict)
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if not isinstance(self.eq, Mapping):
            raise InvalidFilterError("'eq' must be a mapping of field -> value")
        for key in self.eq:
            _check_field_name(key)
        if self.order_by is not None:
            _check_field_name(self.order_by.column)
        if self.limit is not None:
            if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 1:
                raise InvalidFilterError(f"'limit' must be a positive integer, got {self.limit!r}")
        # Frozen dataclass: store a private copy of the constraints
        object.__setattr__(self, "eq", dict(self.eq))

    @classmethod
    def where(cls, **eq: Any) -> "QueryFilter":
        return cls(eq=eq)

    def ordered(self, column: str, ascending: bool = True) -> "QueryFilter":
        return QueryFilter(eq=self.eq, order_by=OrderBy(column, ascending), limit=self.limit)

    def limited(self, limit: Optional[int]) -> "QueryFilter":
        return QueryFilter(eq=self.eq, order_by=self.order_by, limit=limit)

    def equality_only(self) -> "QueryFilter":
        return QueryFilter(eq=self.eq)

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(field_name in record and record[field_name] == value for field_name, value in self.eq.items())

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.eq:
            payload["eq"] = dict(self.eq)
        if self.order_by is not None:
            payload["orderBy"] = self.order_by.to_payload()
        if self.limit is not None:
            payload["limit"] = self.limit
        return payload

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "QueryFilter":
        if payload is None:
            return cls()
        if not isinstance(payload, Mapping):
            raise InvalidFilterError("filters must be an object")

        eq = payload.get("eq") or {}
        if not isinstance(eq, Mapping):
            raise InvalidFilterError("'eq' must be an object")

        order_by = None
        raw_order = payload.get("orderBy")
        if raw_order is not None:
            if not isinstance(raw_order, Mapping) or not raw_order.get("column"):
                raise InvalidFilterError("'orderBy' must be an object with a 'column'")
            ascending = raw_order.get("ascending", True)
            if not isinstance(ascending, bool):
                raise InvalidFilterError("'orderBy.ascending' must be a boolean")
            order_by = OrderBy(str(raw_order["column"]), ascending)

        limit = payload.get("limit")
        if limit is not None and not isinstance(limit, bool):
            try:
                limit = int(limit)
            except (TypeError, ValueError):
                raise InvalidFilterError(f"'limit' must be an integer, got {limit!r}") from None
        # 0/None mean "no limit" on the wire
        return cls(eq=eq, order_by=order_by, limit=limit or None)


FilterLike = Union[QueryFilter, Mapping[str, Any], None]


def coerce_filter(value: FilterLike) -> QueryFilter:
    """Accept a QueryFilter, a wire payload or None."""
    if isinstance(value, QueryFilter):
        return value
    return QueryFilter.from_payload(value)


def _check_field_name(name: Any) -> None:
    if not isinstance(name, str) or not name:
        raise InvalidFilterError(f"Invalid field name: {name!r}")
