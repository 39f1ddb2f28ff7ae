"""Class roster: ClassStudent associations and the students behind them."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from core.inference.matcher import EnrolledDescriptor, as_vector
from core.storage.filters import QueryFilter, Table

logger = logging.getLogger(__name__)


def enroll_student(store, class_id: str, student_id: str) -> Dict[str, Any]:
    """Associate a student with a class; enrolling twice returns the existing link."""
    existing = store.select_single(Table.CLASS_STUDENTS, QueryFilter.where(class_id=class_id, student_id=student_id))
    if existing is not None:
        return existing
    link = store.insert(Table.CLASS_STUDENTS, {"class_id": class_id, "student_id": student_id})[0]
    logger.info("Student %s enrolled in class %s", student_id, class_id)
    return link


def remove_student(store, class_id: str, student_id: str) -> bool:
    removed = store.delete(Table.CLASS_STUDENTS, QueryFilter.where(class_id=class_id, student_id=student_id))
    return removed > 0


def load_roster(store, class_id: str) -> List[Dict[str, Any]]:
    """Students of ``class_id``, or every student by name when the class has no links."""
    links = store.select(Table.CLASS_STUDENTS, QueryFilter.where(class_id=class_id))
    if not links:
        logger.info("Class %s has no enrolled students, using all students", class_id)
        return store.select(Table.STUDENTS, QueryFilter().ordered("name"))

    students = []
    for link in links:
        student = store.select_single(Table.STUDENTS, QueryFilter.where(id=link["student_id"]))
        if student is None:
            logger.warning("Class %s links missing student %s", class_id, link["student_id"])
            continue
        students.append(student)
    students.sort(key=lambda student: str(student.get("name") or ""))
    return students


def enrolled_descriptors(students: List[Dict[str, Any]]) -> List[EnrolledDescriptor]:
    """Matcher candidates for the students that carry a usable descriptor."""
    return [
        EnrolledDescriptor(student["id"], student["descriptor"], student.get("name"))
        for student in students
        if as_vector(student.get("descriptor")) is not None
    ]
