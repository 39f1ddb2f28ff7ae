"""Session lifecycle: upcoming -> live -> ended."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from core.storage.filters import QueryFilter, Table
from core.storage.records import SessionStatus, utc_now_iso

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a session cannot move to the requested status."""


class SessionNotFoundError(LookupError):
    pass


def get_session(store, session_id: str) -> Dict[str, Any]:
    session = store.select_single(Table.SESSIONS, QueryFilter.where(id=session_id))
    if session is None:
        raise SessionNotFoundError(f"Session {session_id} not found")
    return session


def create_session(
    store,
    class_id: str,
    title: str,
    start_at: str,
    duration_minutes: int,
    created_by: str,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    if not isinstance(duration_minutes, int) or isinstance(duration_minutes, bool) or duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be a positive integer, got {duration_minutes!r}")
    record = {
        "class_id": class_id,
        "title": title,
        "start_at": start_at,
        "duration_minutes": duration_minutes,
        "status": SessionStatus.UPCOMING.value,
        "created_by": created_by,
        "notes": notes,
    }
    created = store.insert(Table.SESSIONS, record)[0]
    logger.info("Session %s created for class %s", created["id"], class_id)
    return created


def go_live(store, session_id: str) -> Dict[str, Any]:
    """Move an upcoming session to live; already-live sessions are returned unchanged."""
    session = get_session(store, session_id)
    status = session.get("status")
    if status == SessionStatus.LIVE.value:
        return session
    if status == SessionStatus.ENDED.value:
        raise InvalidTransitionError(f"Session {session_id} has ended")
    store.update(Table.SESSIONS, QueryFilter.where(id=session_id), {"status": SessionStatus.LIVE.value})
    logger.info("Session %s is live", session_id)
    return {**session, "status": SessionStatus.LIVE.value}


def end_session(store, session_id: str) -> Dict[str, Any]:
    session = get_session(store, session_id)
    if session.get("status") == SessionStatus.ENDED.value:
        raise InvalidTransitionError(f"Session {session_id} has already ended")
    changes = {"status": SessionStatus.ENDED.value, "ended_at": utc_now_iso()}
    store.update(Table.SESSIONS, QueryFilter.where(id=session_id), changes)
    logger.info("Session %s ended", session_id)
    return {**session, **changes}
