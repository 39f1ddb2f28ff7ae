"""Record identity, timestamps and the enumerated field values of the data model."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping

from .errors import InvalidRecordError


class SessionStatus(str, Enum):
    UPCOMING = "upcoming"
    LIVE = "live"
    ENDED = "ended"


class AttendanceMethod(str, Enum):
    FACE = "face"
    MANUAL = "manual"


def new_record_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a 'Z' suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def with_identity(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of ``record`` with a generated ``id``/``created_at`` where missing."""
    if not isinstance(record, Mapping):
        raise InvalidRecordError(f"record must be a mapping, got {type(record).__name__}")
    stamped = dict(record)
    if not stamped.get("id"):
        stamped["id"] = new_record_id()
    if not stamped.get("created_at"):
        stamped["created_at"] = utc_now_iso()
    return stamped
