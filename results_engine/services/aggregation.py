"""Student and class result summaries.

Grades and points are re-derived from marks under the current policy on
every read; the values cached on result rows are never trusted here.
"""

import logging
import threading
from collections import Counter, defaultdict
from decimal import ROUND_HALF_UP, Decimal
from statistics import median, multimode, pstdev

from sqlalchemy import select
from sqlalchemy.orm import Session

from results_engine.core.exceptions import ComputationCancelled
from results_engine.models.result import ALevelResult, ResultModel
from results_engine.models.student import SchoolClass, Student
from results_engine.models.subject import Curriculum, Subject
from results_engine.schemas.grading import GradingPolicy
from results_engine.schemas.summary import (
    ClassBrief,
    ClassSummary,
    StudentBrief,
    StudentSummary,
    SubjectPosition,
    SubjectResultRow,
    SubjectStatistics,
)
from results_engine.services.catalog import get_class, get_exam, get_student
from results_engine.services.division import DivisionClassifier, GradedSubject
from results_engine.services.grading import MARKS_QUANTUM, GradeCalculator
from results_engine.services.history import Result
from results_engine.services.ranking import RankingEngine, RankingEntry, competition_positions

logger = logging.getLogger(__name__)


def _round(value: Decimal) -> Decimal:
    return value.quantize(MARKS_QUANTUM, rounding=ROUND_HALF_UP)


def _spread(values: list[Decimal]) -> tuple[Decimal, Decimal, Decimal]:
    """Median, mode and population standard deviation, each to two places.

    When several values are equally common the lowest is the mode.
    """
    return _round(median(values)), _round(min(multimode(values))), _round(pstdev(values))


class ResultsAggregationService:
    """Builds report data for one student or a whole class."""

    def __init__(self, db: Session, policy: GradingPolicy, ranking_basis: str | None = None):
        self.db = db
        self.policy = policy
        self.calculator = GradeCalculator(policy)
        self.classifier = DivisionClassifier(policy)
        self.ranking = RankingEngine(ranking_basis)
        self._compulsory: list[Subject] | None = None

    # ==========================================
    # Public API
    # ==========================================

    def compute_student_summary(self, student_id: int, exam_id: int) -> StudentSummary:
        """One student's results, ranked against their class for the same exam."""
        student = get_student(self.db, student_id)
        get_exam(self.db, exam_id)
        summaries = self._ranked_summaries(student.school_class, exam_id)
        for summary in summaries:
            if summary.student.id == student.id:
                return summary
        # Only reached when the student and their class disagree on curriculum
        return self._summarize(student, self._load_results([student], exam_id)[student.id], exam_id)

    def compute_class_summary(
        self,
        class_id: int,
        exam_id: int,
        cancel_event: threading.Event | None = None,
    ) -> ClassSummary:
        """Every student of a class plus per-subject statistics."""
        school_class = get_class(self.db, class_id)
        get_exam(self.db, exam_id)
        curriculum = school_class.education_level

        summaries = self._ranked_summaries(school_class, exam_id, cancel_event)
        policy = self.policy.for_curriculum(curriculum)

        division_distribution = {label: 0 for label in policy.division_labels}
        grade_distribution = {label: 0 for label in policy.grade_labels}
        for summary in summaries:
            if summary.division is not None:
                division_distribution[summary.division] = division_distribution.get(summary.division, 0) + 1
            for grade, count in summary.grade_distribution.items():
                grade_distribution[grade] += count

        _check_cancelled(cancel_event)
        averages = [s.average_marks for s in summaries if s.average_marks is not None]
        class_average = _round(sum(averages) / len(averages)) if averages else None
        class_median, class_mode, class_deviation = _spread(averages) if averages else (None, None, None)

        logger.info(
            f"Class summary built for class {class_id} exam {exam_id}: "
            f"{len(summaries)} students, average {class_average}"
        )
        return ClassSummary(
            school_class=ClassBrief.model_validate(school_class),
            exam_id=exam_id,
            curriculum=curriculum,
            students=summaries,
            division_distribution=division_distribution,
            grade_distribution=grade_distribution,
            subject_statistics=self._subject_statistics(summaries, curriculum),
            class_average=class_average,
            class_median=class_median,
            class_mode=class_mode,
            class_standard_deviation=class_deviation,
            total_students=len(summaries),
        )

    # ==========================================
    # Building blocks
    # ==========================================

    def _ranked_summaries(
        self,
        school_class: SchoolClass,
        exam_id: int,
        cancel_event: threading.Event | None = None,
    ) -> list[StudentSummary]:
        students = list(
            self.db.execute(
                select(Student)
                .where(Student.class_id == school_class.id)
                .order_by(Student.admission_number)
            ).scalars().all()
        )
        results = self._load_results(students, exam_id, school_class.education_level)

        summaries: dict[int, StudentSummary] = {}
        for student in students:
            _check_cancelled(cancel_event)
            summaries[student.id] = self._summarize(student, results[student.id], exam_id)

        entries = [
            RankingEntry(
                student_id=s.student.id,
                admission_number=s.student.admission_number,
                average_marks=s.average_marks,
                total_points=s.total_points,
            )
            for s in summaries.values()
        ]
        ranked = self.ranking.rank(entries)
        ordered = []
        for entry in ranked:
            summary = summaries[entry.student_id]
            summary.position = entry.position
            summary.total_students = entry.total_students
            ordered.append(summary)
        return ordered

    def _load_results(
        self,
        students: list[Student],
        exam_id: int,
        curriculum: Curriculum | None = None,
    ) -> dict[int, list[Result]]:
        by_student: dict[int, list[Result]] = defaultdict(list)
        if not students:
            return by_student
        curriculum = curriculum or students[0].education_level
        model = ResultModel.for_curriculum(curriculum).model_class
        rows = self.db.execute(
            select(model)
            .where(
                model.exam_id == exam_id,
                model.student_id.in_([s.id for s in students]),
            )
            .order_by(model.student_id, model.subject_id)
        ).scalars().all()
        for row in rows:
            by_student[row.student_id].append(row)
        return by_student

    def _compulsory_codes(self, curriculum: Curriculum) -> dict[int, str]:
        if self._compulsory is None:
            self._compulsory = list(
                self.db.execute(select(Subject).where(Subject.is_compulsory.is_(True))).scalars().all()
            )
        return {s.id: s.code for s in self._compulsory if s.education_level.offered_for(curriculum)}

    def _summarize(self, student: Student, results: list[Result], exam_id: int) -> StudentSummary:
        curriculum = student.education_level
        policy = self.policy.for_curriculum(curriculum)

        graded: list[GradedSubject] = []
        for result in results:
            band = self.calculator.band(result.marks_obtained, curriculum)
            graded.append(GradedSubject(
                result_id=result.id,
                subject_id=result.subject_id,
                marks=Decimal(result.marks_obtained),
                grade=band.grade,
                points=band.points,
                is_principal=result.is_principal if isinstance(result, ALevelResult) else None,
                flagged_ineligible=bool(result.flagged_ineligible),
            ))

        missing_compulsory: list[str] = []
        if curriculum == Curriculum.O_LEVEL:
            taken = {g.subject_id for g in graded}
            missing_compulsory = [code for sid, code in self._compulsory_codes(curriculum).items() if sid not in taken]

        outcome = self.classifier.classify(
            curriculum,
            graded,
            missing_compulsory=missing_compulsory,
            has_combination=student.subject_combination_id is not None,
        )

        counted = set(outcome.counted_result_ids)
        rows = [
            SubjectResultRow(
                result_id=g.result_id,
                subject_id=g.subject_id,
                subject_code=r.subject.code,
                subject_name=r.subject.name,
                marks_obtained=g.marks,
                grade=g.grade,
                points=g.points,
                remark=self.calculator.remark(g.grade, curriculum),
                is_principal=g.is_principal,
                counted=g.result_id in counted,
                flagged_ineligible=g.flagged_ineligible,
            )
            for g, r in zip(graded, results)
        ]

        total_marks = sum((g.marks for g in graded), Decimal("0"))
        average = _round(total_marks / len(graded)) if graded else None
        grade_counts = Counter(g.grade for g in graded)

        return StudentSummary(
            student=StudentBrief(
                id=student.id,
                admission_number=student.admission_number,
                full_name=student.full_name,
                class_id=student.class_id,
                form=student.form,
            ),
            exam_id=exam_id,
            curriculum=curriculum,
            subjects=rows,
            total_marks=_round(total_marks),
            average_marks=average,
            total_points=outcome.total_points,
            division=outcome.division,
            grade_distribution={label: grade_counts.get(label, 0) for label in policy.grade_labels},
            validation_warnings=list(outcome.warnings),
        )

    def _subject_statistics(
        self,
        summaries: list[StudentSummary],
        curriculum: Curriculum,
    ) -> list[SubjectStatistics]:
        policy = self.policy.for_curriculum(curriculum)
        rows_by_subject: dict[int, list[tuple[int, SubjectResultRow]]] = defaultdict(list)
        for summary in summaries:
            for row in summary.subjects:
                rows_by_subject[row.subject_id].append((summary.student.id, row))

        statistics = []
        for subject_id in sorted(rows_by_subject):
            entries = rows_by_subject[subject_id]
            marks = [row.marks_obtained for _, row in entries]
            grades = Counter(row.grade for _, row in entries)
            positions = competition_positions({student_id: row.marks_obtained for student_id, row in entries})
            first = entries[0][1]
            middle, mode, deviation = _spread(marks)
            statistics.append(SubjectStatistics(
                subject_id=subject_id,
                subject_code=first.subject_code,
                subject_name=first.subject_name,
                students_sat=len(entries),
                average_marks=_round(sum(marks) / len(marks)),
                highest_marks=max(marks),
                lowest_marks=min(marks),
                median_marks=middle,
                mode_marks=mode,
                standard_deviation=deviation,
                pass_count=sum(1 for _, row in entries if self.calculator.is_pass(row.grade, curriculum)),
                grade_distribution={label: grades.get(label, 0) for label in policy.grade_labels},
                positions=sorted(
                    (
                        SubjectPosition(student_id=sid, marks_obtained=row.marks_obtained, position=positions[sid])
                        for sid, row in entries
                    ),
                    key=lambda p: (p.position, p.student_id),
                ),
            ))
        return statistics


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ComputationCancelled("Report computation cancelled")
