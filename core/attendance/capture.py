"""Live attendance capture for one session.

Each ``AttendanceCapture`` owns the state of a single session's capture run:
the set of students already marked (the in-memory guard), notice cool-downs,
the recognized-student display state and the timer loop. Attendance is
written at most once per (session, student):

1. the guard set is checked and the student reserved atomically;
2. the store is asked whether a row already exists;
3. the row is inserted. A storage uniqueness conflict means another writer
   won and is treated as "already marked"; any other failure releases the
   reservation so a later frame can retry.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import config
from core.inference.matcher import EnrolledDescriptor, Match, pick_best, rank_matches, score_table
from core.storage.errors import RecordConflictError, StoreError
from core.storage.filters import QueryFilter, Table
from core.storage.records import AttendanceMethod, SessionStatus, utc_now_iso
from core.vision.camera_manager import CameraError
from core.vision.detection import Detection, FaceDetector, FrameSource
from logging_config import recognition_logger

from .notifications import Clock, NoticeKind, NoticeLevel, Notification, NotificationThrottle, Notifier
from .roster import enrolled_descriptors, load_roster
from .sessions import InvalidTransitionError, SessionNotFoundError, get_session, go_live

logger = logging.getLogger(__name__)


class CaptureError(RuntimeError):
    """Raised when a capture run cannot be loaded or started."""


class TickOutcome(str, Enum):
    SKIPPED = "skipped"
    INACTIVE = "inactive"
    NO_FACE = "no_face"
    NO_DESCRIPTOR = "no_descriptor"
    LOW_DETECTION_SCORE = "low_detection_score"
    NO_ENROLLED = "no_enrolled"
    NOT_RECOGNIZED = "not_recognized"
    MARKED = "marked"
    ALREADY_MARKED = "already_marked"
    FAILED = "failed"
    STALE = "stale"
    UNKNOWN_STUDENT = "unknown_student"


@dataclass(frozen=True)
class RecognizedState:
    student_id: str
    name: Optional[str]
    similarity: float


def _log_notice(notification: Notification) -> None:
    logger.info("[Capture] %s: %s", notification.level.value, notification.message)


class AttendanceCapture:
    """Capture state machine and timer loop for one session."""

    def __init__(
        self,
        store,
        session_id: str,
        *,
        detector: Optional[FaceDetector] = None,
        camera: Optional[FrameSource] = None,
        notifier: Optional[Notifier] = None,
        marked_by: Optional[str] = None,
        device_id: Optional[str] = None,
        clock: Clock = time.monotonic,
        interval: float = config.CAPTURE_INTERVAL_SECONDS,
        min_similarity: float = config.MATCH_MIN_SIMILARITY,
        detection_min_score: float = config.DETECTION_MIN_SCORE,
    ) -> None:
        self._store = store
        self.session_id = session_id
        self._detector = detector
        self._camera = camera
        self._notify_cb = notifier or _log_notice
        self.marked_by = marked_by
        self.device_id = device_id
        self._interval = interval
        self._min_similarity = min_similarity
        self._detection_min_score = detection_min_score
        self._throttle = NotificationThrottle(clock)

        self._lock = threading.RLock()
        self._guard: set[str] = set()
        self._guard_lock = threading.Lock()
        self._inflight = threading.Lock()

        self._session: Optional[Dict[str, Any]] = None
        self._students: Dict[str, Dict[str, Any]] = {}
        self._enrolled: List[EnrolledDescriptor] = []
        self._recognized: Optional[RecognizedState] = None

        self._active = False
        self._generation = 0
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def load(self) -> None:
        """Read the session, its roster and the attendance already recorded."""
        try:
            session = get_session(self._store, self.session_id)
        except SessionNotFoundError as exc:
            raise CaptureError(str(exc)) from exc
        except StoreError as exc:
            raise CaptureError(f"Cannot load session {self.session_id}: {exc}") from exc
        if session.get("status") == SessionStatus.ENDED.value:
            raise CaptureError(f"Session {self.session_id} has ended")

        try:
            students = load_roster(self._store, session.get("class_id"))
            existing = self._store.select(Table.ATTENDANCE, QueryFilter.where(session_id=self.session_id))
        except StoreError as exc:
            raise CaptureError(f"Cannot load roster for session {self.session_id}: {exc}") from exc

        enrolled = enrolled_descriptors(students)
        with self._lock:
            self._session = session
            self._students = {student["id"]: student for student in students}
            self._enrolled = enrolled
        with self._guard_lock:
            self._guard.update(row["student_id"] for row in existing if row.get("student_id"))
        logger.info(
            "[Capture] Session %s loaded: %d students, %d with descriptors, %d already marked",
            self.session_id,
            len(students),
            len(enrolled),
            len(existing),
        )

    @property
    def is_loaded(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return dict(self._session) if self._session else None

    @property
    def recognized(self) -> Optional[RecognizedState]:
        return self._recognized

    @property
    def is_active(self) -> bool:
        return self._active

    def is_marked(self, student_id: str) -> bool:
        with self._guard_lock:
            return student_id in self._guard

    def marked_students(self) -> set[str]:
        with self._guard_lock:
            return set(self._guard)

    # ------------------------------------------------------------------
    # Per-frame transitions
    # ------------------------------------------------------------------
    def process_detections(self, detections: Sequence[Detection], *, generation: Optional[int] = None) -> TickOutcome:
        if self._is_stale(generation):
            return TickOutcome.STALE
        self._require_loaded()

        if not detections:
            self._recognized = None
            return TickOutcome.NO_FACE

        detection = detections[0]
        if detection.descriptor is None:
            logger.debug("[Capture] Face detected without descriptor")
            return TickOutcome.NO_DESCRIPTOR

        if detection.score < self._detection_min_score:
            self._recognized = None
            self._notify_not_recognized(generation)
            return TickOutcome.LOW_DETECTION_SCORE

        enrolled = self._enrolled
        if not enrolled:
            self._recognized = None
            if self._throttle.allow(NoticeKind.NO_MATCH, config.NO_MATCH_NOTICE_COOLDOWN):
                self._emit(
                    Notification(NoticeKind.NO_MATCH, NoticeLevel.WARNING, "No matching student found"),
                    generation,
                )
            return TickOutcome.NO_ENROLLED

        ranked = rank_matches(detection.descriptor, enrolled)
        recognition_logger.log_match_scores(score_table(ranked))
        match = pick_best(ranked, self._min_similarity)
        if match is None:
            self._recognized = None
            self._notify_not_recognized(generation)
            return TickOutcome.NOT_RECOGNIZED

        self._recognized = RecognizedState(match.student_id, match.name, match.similarity)
        recognition_logger.log_face_recognized(match.name or match.student_id, match.similarity, match.student_id)
        return self._mark(match.student_id, AttendanceMethod.FACE, match, generation=generation)

    def mark_manual(self, student_id: str) -> TickOutcome:
        """Mark a student present by hand; same at-most-once guarantee as face marking."""
        self._require_loaded()
        if student_id not in self._students:
            logger.warning("[Capture] Manual mark for %s rejected: not on the roster of %s", student_id, self.session_id)
            self._emit(
                Notification(
                    NoticeKind.ERROR, NoticeLevel.ERROR, f"Student {student_id} is not on this session's roster", student_id
                )
            )
            return TickOutcome.UNKNOWN_STUDENT
        return self._mark(student_id, AttendanceMethod.MANUAL, None, generation=None, throttle_notice=False)

    # ------------------------------------------------------------------
    # Marking
    # ------------------------------------------------------------------
    def _mark(
        self,
        student_id: str,
        method: AttendanceMethod,
        match: Optional[Match],
        *,
        generation: Optional[int],
        throttle_notice: bool = True,
    ) -> TickOutcome:
        name = self._student_name(student_id)
        with self._guard_lock:
            if student_id in self._guard:
                reserved = False
            else:
                self._guard.add(student_id)
                reserved = True
        if not reserved:
            self._notify_already_marked(student_id, name, generation, throttle_notice)
            return TickOutcome.ALREADY_MARKED

        try:
            existing = self._store.select_single(
                Table.ATTENDANCE, QueryFilter.where(session_id=self.session_id, student_id=student_id)
            )
            if existing is not None:
                self._notify_already_marked(student_id, name, generation, throttle_notice)
                return TickOutcome.ALREADY_MARKED
            if self._is_stale(generation):
                self._release(student_id)
                return TickOutcome.STALE

            record = {
                "session_id": self.session_id,
                "student_id": student_id,
                "timestamp": utc_now_iso(),
                "method": method.value,
                "marked_by": self.marked_by,
            }
            if match is not None:
                record["confidence"] = match.similarity
            if self.device_id:
                record["device_id"] = self.device_id
            self._store.insert(Table.ATTENDANCE, record)
        except RecordConflictError:
            self._notify_already_marked(student_id, name, generation, throttle_notice)
            return TickOutcome.ALREADY_MARKED
        except StoreError as exc:
            self._release(student_id)
            recognition_logger.log_recognition_error(f"Failed to mark {student_id}: {exc}")
            self._emit(
                Notification(NoticeKind.ERROR, NoticeLevel.ERROR, f"Failed to mark attendance: {exc}", student_id),
                generation,
            )
            return TickOutcome.FAILED

        recognition_logger.log_attendance_marked(
            name, student_id, method.value, match.similarity if match is not None else None
        )
        self._ensure_live()
        if self._is_stale(generation):
            return TickOutcome.STALE
        self._emit(Notification(NoticeKind.MARKED, NoticeLevel.SUCCESS, f"Marked {name} present", student_id))
        return TickOutcome.MARKED

    def _release(self, student_id: str) -> None:
        with self._guard_lock:
            self._guard.discard(student_id)

    def _ensure_live(self) -> None:
        with self._lock:
            if not self._session or self._session.get("status") != SessionStatus.UPCOMING.value:
                return
            try:
                self._session = go_live(self._store, self.session_id)
            except (StoreError, InvalidTransitionError, SessionNotFoundError) as exc:
                logger.warning("[Capture] Cannot set session %s live: %s", self.session_id, exc)

    # ------------------------------------------------------------------
    # Notices
    # ------------------------------------------------------------------
    def _notify_not_recognized(self, generation: Optional[int]) -> None:
        if self._throttle.allow(NoticeKind.NOT_RECOGNIZED, config.LOW_CONFIDENCE_NOTICE_COOLDOWN):
            self._emit(
                Notification(
                    NoticeKind.NOT_RECOGNIZED, NoticeLevel.WARNING, "Face not recognized. Please move closer."
                ),
                generation,
            )

    def _notify_already_marked(self, student_id: str, name: str, generation: Optional[int], throttle: bool) -> None:
        recognition_logger.log_already_marked(name, student_id)
        if throttle and not self._throttle.allow(
            (NoticeKind.ALREADY_MARKED, student_id), config.ALREADY_MARKED_NOTICE_COOLDOWN
        ):
            return
        self._emit(
            Notification(NoticeKind.ALREADY_MARKED, NoticeLevel.INFO, f"{name} is already marked", student_id),
            generation,
        )

    def _emit(self, notification: Notification, generation: Optional[int] = None) -> None:
        if self._is_stale(generation):
            return
        self._notify_cb(notification)

    # ------------------------------------------------------------------
    # Timer loop
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Acquire the camera and start ticking every ``interval`` seconds."""
        with self._lock:
            if self._active:
                return
            if self._camera is None or self._detector is None:
                raise CaptureError("A camera and a face detector are required to start capture")
            if not self.is_loaded:
                self.load()
            try:
                self._camera.acquire()
            except CameraError as exc:
                self._emit(Notification(NoticeKind.ERROR, NoticeLevel.ERROR, f"Camera unavailable: {exc}"))
                raise CaptureError(f"Cannot start capture: {exc}") from exc

            self._generation += 1
            self._active = True
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(
                target=self._run,
                args=(self._generation, stop_event),
                name=f"capture-{self.session_id}",
                daemon=True,
            )
            self._thread.start()
        logger.info("[Capture] Started for session %s", self.session_id)

    def _run(self, generation: int, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            if generation != self._generation:
                break
            self.tick(generation)

    def tick(self, generation: Optional[int] = None) -> TickOutcome:
        """One frame: read, detect, transition. Skipped while another tick is in flight.

        The run generation is pinned first; a stop() after that point makes the
        result stale.
        """
        if generation is None:
            generation = self._generation
        if not self._active or generation != self._generation:
            return TickOutcome.INACTIVE
        if not self._inflight.acquire(blocking=False):
            return TickOutcome.SKIPPED
        try:
            if self._is_stale(generation):
                return TickOutcome.STALE
            try:
                frame = self._camera.read_frame()
            except CameraError as exc:
                logger.warning("[Capture] Frame read failed: %s", exc)
                return TickOutcome.FAILED
            try:
                detections = self._detector.detect(frame)
            except Exception as exc:
                recognition_logger.log_recognition_error(f"Detector failed: {exc}")
                return TickOutcome.FAILED
            return self.process_detections(detections, generation=generation)
        finally:
            self._inflight.release()

    def stop(self) -> None:
        """Stop ticking and release the camera; in-flight results are ignored."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            self._generation += 1
            stop_event, thread = self._stop_event, self._thread
            self._stop_event = self._thread = None
        if stop_event is not None:
            stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(1.0, self._interval * 4))
        if self._camera is not None:
            self._camera.release()
        self._recognized = None
        logger.info("[Capture] Stopped for session %s", self.session_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _is_stale(self, generation: Optional[int]) -> bool:
        return generation is not None and (not self._active or generation != self._generation)

    def _require_loaded(self) -> None:
        if self._session is None:
            raise CaptureError("Capture is not loaded; call load() first")
        if self._session.get("status") == SessionStatus.ENDED.value:
            raise CaptureError(f"Session {self.session_id} has ended")

    def _student_name(self, student_id: str) -> str:
        student = self._students.get(student_id)
        return str(student.get("name") or student_id) if student else student_id
