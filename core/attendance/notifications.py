"""User-facing notices raised by the capture loop and their cool-downs."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Hashable, Optional


class NoticeKind(str, Enum):
    MARKED = "marked"
    ALREADY_MARKED = "already_marked"
    NOT_RECOGNIZED = "not_recognized"
    NO_MATCH = "no_match"
    ERROR = "error"


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    kind: NoticeKind
    level: NoticeLevel
    message: str
    student_id: Optional[str] = None


Notifier = Callable[[Notification], None]
Clock = Callable[[], float]


class NotificationThrottle:
    """Keyed cool-downs: a key may fire once per ``cooldown`` seconds."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._last: Dict[Hashable, float] = {}
        self._lock = threading.Lock()

    def allow(self, key: Hashable, cooldown: float) -> bool:
        now = self._clock()
        with self._lock:
            last = self._last.get(key)
            if last is not None and now - last < cooldown:
                return False
            self._last[key] = now
            return True

    def reset(self, key: Optional[Hashable] = None) -> None:
        with self._lock:
            if key is None:
                self._last.clear()
            else:
                self._last.pop(key, None)
