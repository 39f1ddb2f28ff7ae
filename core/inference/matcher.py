"""Descriptor matching: Euclidean distance mapped onto a [0, 1] similarity.

Descriptors are fixed-length numeric vectors produced by the face model.
Malformed input never raises here; it scores 0.0 and therefore never matches.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from config import MATCH_DISTANCE_THRESHOLD, MATCH_MIN_SIMILARITY

Descriptor = Sequence[float]


@dataclass(frozen=True)
class EnrolledDescriptor:
    student_id: str
    descriptor: Any
    name: Optional[str] = None


@dataclass(frozen=True)
class Match:
    student_id: str
    similarity: float
    name: Optional[str] = None


def as_vector(descriptor: Any) -> Optional[np.ndarray]:
    """1-D finite float64 vector, or None when ``descriptor`` is unusable."""
    if descriptor is None or isinstance(descriptor, (str, bytes)):
        return None
    try:
        vector = np.asarray(descriptor, dtype=np.float64)
    except (TypeError, ValueError):
        return None
    if vector.ndim != 1 or vector.size == 0 or not np.all(np.isfinite(vector)):
        return None
    return vector


def similarity(a: Any, b: Any, *, distance_threshold: float = MATCH_DISTANCE_THRESHOLD) -> float:
    va, vb = as_vector(a), as_vector(b)
    if va is None or vb is None or va.shape != vb.shape:
        return 0.0
    distance = float(np.linalg.norm(va - vb))
    return max(0.0, 1.0 - distance / (2.0 * distance_threshold))


def rank_matches(observed: Any, enrolled: Iterable[EnrolledDescriptor]) -> List[Match]:
    """Every candidate's similarity, best first (stable for ties)."""
    scores = [
        Match(entry.student_id, similarity(observed, entry.descriptor), entry.name)
        for entry in enrolled
    ]
    return sorted(scores, key=lambda match: match.similarity, reverse=True)


def find_best_match(
    observed: Any,
    enrolled: Iterable[EnrolledDescriptor],
    min_similarity: float = MATCH_MIN_SIMILARITY,
) -> Optional[Match]:
    """Highest-scoring enrolled student, if strictly above ``min_similarity``.

    Ties keep the first candidate seen.
    """
    if as_vector(observed) is None:
        return None
    best: Optional[Match] = None
    for entry in enrolled:
        score = similarity(observed, entry.descriptor)
        if best is None or score > best.similarity:
            best = Match(entry.student_id, score, entry.name)
    if best is None or not best.similarity > min_similarity:
        return None
    return best


def pick_best(ranked: Sequence[Match], min_similarity: float = MATCH_MIN_SIMILARITY) -> Optional[Match]:
    """Head of a ``rank_matches`` result when it clears ``min_similarity`` strictly."""
    if not ranked or not ranked[0].similarity > min_similarity:
        return None
    return ranked[0]


def score_table(matches: Sequence[Match]) -> List[Tuple[str, float]]:
    return [(match.student_id, match.similarity) for match in matches]
