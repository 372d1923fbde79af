"""Subject eligibility for a student.

The resolver only sees canonical, frozen shapes. Loose combination payloads
are normalized once when they are stored (see ``services.combination``), so
this module never has to guess at field names.
"""

from dataclasses import dataclass

from results_engine.core.exceptions import NotEligibleError
from results_engine.models.student import Student
from results_engine.models.subject import (
    CombinationRole,
    Curriculum,
    EducationLevel,
    Subject,
    SubjectCombination,
)


@dataclass(frozen=True)
class SubjectProfile:
    id: int
    code: str
    name: str
    education_level: EducationLevel
    is_compulsory: bool

    @classmethod
    def from_model(cls, subject: Subject) -> "SubjectProfile":
        return cls(
            id=subject.id,
            code=subject.code,
            name=subject.name,
            education_level=subject.education_level,
            is_compulsory=bool(subject.is_compulsory),
        )


@dataclass(frozen=True)
class CanonicalCombination:
    id: int
    code: str
    version: int
    principal_subject_ids: tuple[int, ...]
    subsidiary_subject_ids: tuple[int, ...]

    @classmethod
    def from_model(cls, combination: SubjectCombination) -> "CanonicalCombination":
        return cls(
            id=combination.id,
            code=combination.code,
            version=combination.version,
            principal_subject_ids=tuple(combination.principal_subject_ids),
            subsidiary_subject_ids=tuple(combination.subsidiary_subject_ids),
        )

    def role_of(self, subject_id: int) -> CombinationRole | None:
        if subject_id in self.principal_subject_ids:
            return CombinationRole.PRINCIPAL
        if subject_id in self.subsidiary_subject_ids:
            return CombinationRole.SUBSIDIARY
        return None


@dataclass(frozen=True)
class StudentProfile:
    id: int
    admission_number: str
    curriculum: Curriculum
    class_id: int
    class_subject_ids: frozenset[int]
    combination: CanonicalCombination | None = None

    @classmethod
    def from_model(cls, student: Student) -> "StudentProfile":
        school_class = student.school_class
        combination = student.subject_combination
        return cls(
            id=student.id,
            admission_number=student.admission_number,
            curriculum=student.education_level,
            class_id=student.class_id,
            class_subject_ids=frozenset(s.id for s in school_class.subjects) if school_class else frozenset(),
            combination=CanonicalCombination.from_model(combination) if combination else None,
        )


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: str
    # A-Level only; None for O-Level subjects
    default_is_principal: bool | None = None
    role: CombinationRole | None = None
    combination_version: int | None = None


class CombinationEligibilityResolver:
    """Decides whether a student may hold a result in a subject."""

    def resolve(self, student: StudentProfile, subject: SubjectProfile) -> Eligibility:
        if not subject.education_level.offered_for(student.curriculum):
            return Eligibility(
                eligible=False,
                reason=f"{subject.code} is not offered at {student.curriculum.value}",
            )
        if student.curriculum == Curriculum.A_LEVEL:
            return self._resolve_a_level(student, subject)
        return self._resolve_o_level(student, subject)

    def require(self, student: StudentProfile, subject: SubjectProfile) -> Eligibility:
        eligibility = self.resolve(student, subject)
        if not eligibility.eligible:
            raise NotEligibleError(student.id, subject.id, eligibility.reason)
        return eligibility

    @staticmethod
    def effective_is_principal(eligibility: Eligibility, override: bool | None) -> bool | None:
        """An explicit override wins over the role taken from the combination."""
        if override is not None:
            return override
        return eligibility.default_is_principal

    def _resolve_o_level(self, student: StudentProfile, subject: SubjectProfile) -> Eligibility:
        if subject.id in student.class_subject_ids:
            return Eligibility(eligible=True, reason=f"{subject.code} is taught to the student's class")
        if subject.is_compulsory:
            return Eligibility(eligible=True, reason=f"{subject.code} is compulsory")
        return Eligibility(
            eligible=False,
            reason=f"{subject.code} is not assigned to the student's class",
        )

    def _resolve_a_level(self, student: StudentProfile, subject: SubjectProfile) -> Eligibility:
        combination = student.combination
        role = combination.role_of(subject.id) if combination else None
        version = combination.version if combination else None

        if role is CombinationRole.PRINCIPAL:
            return Eligibility(
                eligible=True,
                reason=f"{subject.code} is a principal subject of {combination.code}",
                default_is_principal=True,
                role=role,
                combination_version=version,
            )
        if role is CombinationRole.SUBSIDIARY:
            return Eligibility(
                eligible=True,
                reason=f"{subject.code} is a subsidiary subject of {combination.code}",
                default_is_principal=False,
                role=role,
                combination_version=version,
            )
        if subject.is_compulsory:
            return Eligibility(
                eligible=True,
                reason=f"{subject.code} is compulsory",
                default_is_principal=False,
                role=CombinationRole.SUBSIDIARY,
                combination_version=version,
            )
        if combination is None:
            return Eligibility(
                eligible=False,
                reason=f"Student {student.admission_number} has no subject combination",
            )
        return Eligibility(
            eligible=False,
            reason=f"{subject.code} is not part of combination {combination.code}",
            combination_version=version,
        )
