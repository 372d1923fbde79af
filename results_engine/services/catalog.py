"""Reference data lookups shared by the result services."""

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from results_engine.core.exceptions import NotFoundError
from results_engine.models.exam import Exam
from results_engine.models.student import SchoolClass, Student
from results_engine.models.subject import Subject
from results_engine.services.eligibility import SubjectProfile

ID_KEYS = ("id", "_id", "subject_id", "subjectId")


def get_student(db: Session, student_id: int) -> Student:
    student = db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student", str(student_id))
    return student


def get_subject(db: Session, subject_id: int) -> Subject:
    subject = db.get(Subject, subject_id)
    if not subject:
        raise NotFoundError("Subject", str(subject_id))
    return subject


def get_exam(db: Session, exam_id: int) -> Exam:
    exam = db.get(Exam, exam_id)
    if not exam:
        raise NotFoundError("Exam", str(exam_id))
    return exam


def get_class(db: Session, class_id: int) -> SchoolClass:
    school_class = db.get(SchoolClass, class_id)
    if not school_class:
        raise NotFoundError("Class", str(class_id))
    return school_class


@dataclass
class SubjectCatalog:
    """Subject lookups by id, code and name (case-insensitive, exact)."""

    by_id: dict[int, SubjectProfile] = field(default_factory=dict)
    by_code: dict[str, SubjectProfile] = field(default_factory=dict)
    by_name: dict[str, SubjectProfile] = field(default_factory=dict)

    @classmethod
    def from_subjects(cls, subjects: list[SubjectProfile]) -> "SubjectCatalog":
        catalog = cls()
        for subject in subjects:
            catalog.by_id[subject.id] = subject
            catalog.by_code[subject.code.strip().lower()] = subject
            catalog.by_name.setdefault(subject.name.strip().lower(), subject)
        return catalog

    def by_label(self, label: str) -> SubjectProfile | None:
        """Code first, then name. Never a partial match."""
        key = label.strip().lower()
        return self.by_code.get(key) or self.by_name.get(key)

    def lookup(self, entry: Any) -> SubjectProfile | None:
        """Resolve one loosely shaped subject reference."""
        if isinstance(entry, bool):
            return None
        if isinstance(entry, int):
            return self.by_id.get(entry)
        if isinstance(entry, str):
            text = entry.strip()
            if text.isdigit():
                return self.by_id.get(int(text))
            return self.by_label(text) if text else None
        if isinstance(entry, dict):
            if entry.get("subject") is not None:
                return self.lookup(entry["subject"])
            for key in ID_KEYS:
                value = entry.get(key)
                if value is None:
                    continue
                if isinstance(value, int) and not isinstance(value, bool):
                    return self.by_id.get(value)
                if isinstance(value, str) and value.strip().isdigit():
                    return self.by_id.get(int(value.strip()))
                return None
            if isinstance(entry.get("code"), str):
                return self.by_code.get(entry["code"].strip().lower())
            if isinstance(entry.get("name"), str):
                return self.by_name.get(entry["name"].strip().lower())
        return None


def load_subject_catalog(db: Session) -> SubjectCatalog:
    subjects = db.execute(select(Subject).order_by(Subject.id)).scalars().all()
    return SubjectCatalog.from_subjects([SubjectProfile.from_model(s) for s in subjects])
