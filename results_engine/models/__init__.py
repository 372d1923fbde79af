"""Database models package."""

from results_engine.models.exam import Exam
from results_engine.models.grading_policy import GradingPolicyRecord
from results_engine.models.history import ChangeType, MarksHistory
from results_engine.models.result import ALevelResult, OLevelResult, ResultModel
from results_engine.models.student import SchoolClass, Student, class_subjects
from results_engine.models.subject import (
    CombinationRole,
    CombinationSubject,
    Curriculum,
    EducationLevel,
    Subject,
    SubjectCombination,
)

__all__ = [
    # Reference data
    "Subject",
    "SubjectCombination",
    "CombinationSubject",
    "CombinationRole",
    "Curriculum",
    "EducationLevel",
    # Students
    "SchoolClass",
    "Student",
    "class_subjects",
    # Exams
    "Exam",
    # Results
    "OLevelResult",
    "ALevelResult",
    "ResultModel",
    # History
    "MarksHistory",
    "ChangeType",
    # Grading policy
    "GradingPolicyRecord",
]
