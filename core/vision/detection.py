"""Detector-facing types. The face model itself is supplied by the caller."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Sequence, Tuple

Box = Tuple[float, float, float, float]


@dataclass(frozen=True)
class Detection:
    """One detected face: box (x, y, width, height), detector score, optional descriptor."""

    box: Box
    score: float
    descriptor: Optional[Sequence[float]] = None


class FaceDetector(Protocol):
    """Turns a frame into detections, best first."""

    def detect(self, frame: Any) -> List[Detection]:
        ...


class FrameSource(Protocol):
    def acquire(self) -> None: ...

    def read_frame(self) -> Any: ...

    def release(self) -> None: ...
