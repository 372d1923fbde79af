"""Student and class result summary schemas."""

from decimal import Decimal

from results_engine.models.subject import Curriculum
from results_engine.schemas.common import BaseSchema, ValidationWarning


class StudentBrief(BaseSchema):
    id: int
    admission_number: str
    full_name: str
    class_id: int
    form: int


class ClassBrief(BaseSchema):
    id: int
    name: str
    section: str | None
    form: int
    education_level: Curriculum


class SubjectResultRow(BaseSchema):
    """A student's result in one subject, graded under the current policy."""

    result_id: int
    subject_id: int
    subject_code: str
    subject_name: str
    marks_obtained: Decimal
    grade: str
    points: int
    remark: str
    is_principal: bool | None = None
    # Whether the points went into the division total
    counted: bool = False
    flagged_ineligible: bool = False


class StudentSummary(BaseSchema):
    """Exam results of one student."""

    student: StudentBrief
    exam_id: int
    curriculum: Curriculum
    subjects: list[SubjectResultRow]
    total_marks: Decimal
    average_marks: Decimal | None
    total_points: int | None
    division: str | None
    position: int | None = None
    total_students: int = 0
    grade_distribution: dict[str, int] = {}
    validation_warnings: list[ValidationWarning] = []


class SubjectPosition(BaseSchema):
    student_id: int
    marks_obtained: Decimal
    position: int


class SubjectStatistics(BaseSchema):
    """How the class did in one subject."""

    subject_id: int
    subject_code: str
    subject_name: str
    students_sat: int
    average_marks: Decimal
    highest_marks: Decimal
    lowest_marks: Decimal
    median_marks: Decimal
    mode_marks: Decimal
    standard_deviation: Decimal
    pass_count: int
    grade_distribution: dict[str, int]
    positions: list[SubjectPosition]


class ClassSummary(BaseSchema):
    """Exam results of a whole class."""

    school_class: ClassBrief
    exam_id: int
    curriculum: Curriculum
    students: list[StudentSummary]
    division_distribution: dict[str, int]
    grade_distribution: dict[str, int]
    subject_statistics: list[SubjectStatistics]
    # Over student averages
    class_average: Decimal | None
    class_median: Decimal | None = None
    class_mode: Decimal | None = None
    class_standard_deviation: Decimal | None = None
    total_students: int
