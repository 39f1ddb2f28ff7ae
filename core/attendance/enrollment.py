"""Descriptor enrollment from student photos.

The embedding model is an external capability; anything with a
``compute_descriptor(photo_ref)`` method will do.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from core.inference.matcher import as_vector
from core.storage.errors import StoreError
from core.storage.filters import QueryFilter, Table
from core.storage.records import utc_now_iso

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    def compute_descriptor(self, photo_ref: str) -> Optional[Sequence[float]]:
        ...


def _descriptor_fields(descriptor: Optional[Sequence[float]]) -> Dict[str, Any]:
    vector = as_vector(descriptor)
    if vector is None:
        return {"descriptor": None, "descriptor_computed_at": None}
    return {"descriptor": [float(value) for value in vector], "descriptor_computed_at": utc_now_iso()}


def compute_missing_descriptors(store, students: Iterable[Dict[str, Any]], provider: EmbeddingProvider) -> List[str]:
    """Fill in descriptors for students with a photo but none stored.

    Returns the ids of the students that were updated. A failure for one
    student is logged and does not stop the others.
    """
    updated: List[str] = []
    for student in students:
        if not student.get("photo_url") or student.get("descriptor"):
            continue
        try:
            descriptor = provider.compute_descriptor(student["photo_url"])
        except Exception as exc:
            logger.warning("Descriptor computation failed for student %s: %s", student.get("id"), exc)
            continue
        fields = _descriptor_fields(descriptor)
        if fields["descriptor"] is None:
            logger.info("No face found in photo of student %s", student.get("id"))
            continue
        try:
            store.update(Table.STUDENTS, QueryFilter.where(id=student["id"]), fields)
        except StoreError as exc:
            logger.error("Cannot store descriptor for student %s: %s", student.get("id"), exc)
            continue
        student.update(fields)
        updated.append(student["id"])
    if updated:
        logger.info("Computed %d missing descriptors", len(updated))
    return updated


def update_student_photo(store, student_id: str, photo_url: str, provider: EmbeddingProvider) -> Dict[str, Any]:
    """Store a new photo and recompute the descriptor; it is cleared when no face is found."""
    try:
        descriptor = provider.compute_descriptor(photo_url)
    except Exception as exc:
        logger.warning("Descriptor computation failed for student %s: %s", student_id, exc)
        descriptor = None
    changes = {"photo_url": photo_url, **_descriptor_fields(descriptor)}
    if not store.update(Table.STUDENTS, QueryFilter.where(id=student_id), changes):
        raise LookupError(f"Student {student_id} not found")
    return changes
