import threading
from decimal import Decimal

import pytest

from results_engine.core.exceptions import ComputationCancelled, NotFoundError
from results_engine.schemas.grading import GradeBand
from results_engine.schemas.result import RecordMarkRequest
from results_engine.services.aggregation import ResultsAggregationService
from results_engine.services.grading import DEFAULT_O_LEVEL_POLICY, DEFAULT_POLICY
from results_engine.services.result import ResultService

FORM_TWO_SUBJECTS = ("MATH", "ENG", "BIO", "CHEM", "PHY", "HIST", "GEO", "CIV")


@pytest.fixture
def enter(db, policy, locks, actor, catalog):
    service = ResultService(db, policy, locks=locks)

    def _enter(student, marks_by_code, is_principal=None):
        for code, marks in marks_by_code.items():
            service.record_mark(
                RecordMarkRequest(
                    student_id=student.id,
                    subject_id=catalog.subjects[code].id,
                    exam_id=catalog.exam.id,
                    marks_obtained=marks,
                    is_principal=is_principal,
                ),
                actor,
            )

    return _enter


@pytest.fixture
def form_two_marks(catalog, enter):
    s1, s2, s3, _ = catalog.o_students
    enter(s1, {code: 80 for code in FORM_TWO_SUBJECTS})
    enter(s2, {code: 70 for code in FORM_TWO_SUBJECTS})
    enter(s3, {code: 70 for code in FORM_TWO_SUBJECTS})


def test_class_summary_ranks_and_counts(db, policy, catalog, form_two_marks):
    summary = ResultsAggregationService(db, policy).compute_class_summary(catalog.form_two.id, catalog.exam.id)

    assert [(s.student.admission_number, s.position) for s in summary.students] == [
        ("S001", 1),
        ("S002", 2),
        ("S003", 2),
        ("S004", None),
    ]
    assert summary.total_students == 4
    assert all(s.total_students == 3 for s in summary.students)
    assert summary.division_distribution == {"I": 3, "II": 0, "III": 0, "IV": 0, "0": 0}
    assert summary.grade_distribution == {"A": 8, "B": 16, "C": 0, "D": 0, "F": 0}
    assert summary.class_average == Decimal("73.33")

    first = summary.students[0]
    assert first.total_points == 7
    assert first.division == "I"
    assert sum(1 for row in first.subjects if row.counted) == 7


def test_subject_statistics(db, policy, catalog, form_two_marks):
    summary = ResultsAggregationService(db, policy).compute_class_summary(catalog.form_two.id, catalog.exam.id)
    maths = next(s for s in summary.subject_statistics if s.subject_code == "MATH")
    s1, s2, s3, _ = catalog.o_students

    assert maths.students_sat == 3
    assert maths.average_marks == Decimal("73.33")
    assert (maths.highest_marks, maths.lowest_marks) == (Decimal("80"), Decimal("70"))
    assert maths.pass_count == 3
    assert [(p.student_id, p.position) for p in maths.positions] == [(s1.id, 1), (s2.id, 2), (s3.id, 2)]
    assert len(summary.subject_statistics) == len(FORM_TWO_SUBJECTS)


def test_student_without_results(db, policy, catalog, form_two_marks):
    summary = ResultsAggregationService(db, policy).compute_student_summary(
        catalog.o_students[3].id, catalog.exam.id
    )
    assert summary.subjects == []
    assert summary.division is None
    assert summary.average_marks is None
    assert summary.position is None
    assert summary.total_students == 3
    assert [w.code for w in summary.validation_warnings] == ["MISSING_COMPULSORY", "NO_RESULTS"]


def test_missing_compulsory_subject_is_reported(db, policy, catalog, enter):
    student = catalog.o_students[0]
    enter(student, {code: 60 for code in FORM_TWO_SUBJECTS if code != "ENG"})

    summary = ResultsAggregationService(db, policy).compute_student_summary(student.id, catalog.exam.id)
    assert summary.total_points == 21
    assert summary.division == "II"
    assert "MISSING_COMPULSORY" in [w.code for w in summary.validation_warnings]
    assert summary.position == 1


def test_grades_follow_the_current_policy(db, catalog, enter):
    student = catalog.o_students[0]
    enter(student, {"BIO": 72})

    generous = DEFAULT_POLICY.model_copy(update={
        "o_level": DEFAULT_O_LEVEL_POLICY.model_copy(update={
            "grade_bands": (
                GradeBand(grade="A", min_marks=Decimal("70"), points=1, remark="Excellent"),
                GradeBand(grade="B", min_marks=Decimal("60"), points=2, remark="Very Good"),
                GradeBand(grade="F", min_marks=Decimal("0"), points=5, remark="Fail", is_pass=False),
            ),
        }),
    })

    before = ResultsAggregationService(db, DEFAULT_POLICY).compute_student_summary(student.id, catalog.exam.id)
    after = ResultsAggregationService(db, generous).compute_student_summary(student.id, catalog.exam.id)
    assert before.subjects[0].grade == "B"
    assert after.subjects[0].grade == "A"
    assert after.subjects[0].points == 1


def test_a_level_summary(db, policy, catalog, enter):
    with_combination, without_combination = catalog.a_students
    enter(with_combination, {"A-PHY": 85, "A-CHEM": 72, "A-MATH": 65, "BAM": 90, "GS": 50})
    enter(without_combination, {"GS": 70})

    summary = ResultsAggregationService(db, policy).compute_class_summary(catalog.form_five.id, catalog.exam.id)
    first, second = summary.students

    assert first.student.admission_number == "A001"
    assert (first.total_points, first.division, first.position) == (6, "I", 1)
    counted = {row.subject_code for row in first.subjects if row.counted}
    assert counted == {"A-PHY", "A-CHEM", "A-MATH"}

    assert second.division is None
    assert {w.code for w in second.validation_warnings} >= {"MISSING_COMBINATION", "INSUFFICIENT_PRINCIPALS"}
    assert second.position == 2


def test_cancelled_computation_stops(db, policy, catalog, form_two_marks):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ComputationCancelled):
        ResultsAggregationService(db, policy).compute_class_summary(catalog.form_two.id, catalog.exam.id, cancel)


def test_unknown_class(db, policy, catalog):
    with pytest.raises(NotFoundError):
        ResultsAggregationService(db, policy).compute_class_summary(9999, catalog.exam.id)


def test_spread_of_marks(db, policy, catalog, form_two_marks):
    summary = ResultsAggregationService(db, policy).compute_class_summary(catalog.form_two.id, catalog.exam.id)
    maths = next(s for s in summary.subject_statistics if s.subject_code == "MATH")

    assert (maths.median_marks, maths.mode_marks) == (Decimal("70"), Decimal("70"))
    assert maths.standard_deviation == Decimal("4.71")
    assert (summary.class_median, summary.class_mode) == (Decimal("70"), Decimal("70"))
    assert summary.class_standard_deviation == Decimal("4.71")


def test_equally_common_marks_give_the_lowest_mode(db, policy, catalog, enter):
    s1, s2, _, _ = catalog.o_students
    enter(s1, {"BIO": 80})
    enter(s2, {"BIO": 60})

    summary = ResultsAggregationService(db, policy).compute_class_summary(catalog.form_two.id, catalog.exam.id)
    biology = summary.subject_statistics[0]
    assert biology.subject_code == "BIO"
    assert biology.median_marks == Decimal("70")
    assert biology.mode_marks == Decimal("60")
    assert biology.standard_deviation == Decimal("10")


def test_class_without_results_has_no_spread(db, policy, catalog):
    summary = ResultsAggregationService(db, policy).compute_class_summary(catalog.form_two.id, catalog.exam.id)
    assert summary.subject_statistics == []
    assert (summary.class_average, summary.class_median, summary.class_standard_deviation) == (None, None, None)
