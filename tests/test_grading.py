from decimal import Decimal

import pytest

from results_engine.core.exceptions import MarksOutOfRangeError, ValidationError
from results_engine.models.subject import Curriculum
from results_engine.schemas.grading import CurriculumPolicy, DivisionBand, GradeBand
from results_engine.services.grading import (
    DEFAULT_A_LEVEL_POLICY,
    DEFAULT_POLICY,
    GradeCalculator,
    GradingPolicyProvider,
    validate_marks,
)


@pytest.fixture
def calculator():
    return GradeCalculator(DEFAULT_POLICY)


@pytest.mark.parametrize(
    "marks, grade, points",
    [
        (100, "A", 1),
        (75, "A", 1),
        (74.99, "B", 2),
        (65, "B", 2),
        (64.99, "C", 3),
        (50, "C", 3),
        (49.99, "D", 4),
        (30, "D", 4),
        (29.99, "F", 5),
        (0, "F", 5),
    ],
)
def test_o_level_band_edges(calculator, marks, grade, points):
    assert calculator.grade_and_points(marks, Curriculum.O_LEVEL) == (grade, points)


@pytest.mark.parametrize(
    "marks, grade, points",
    [
        (80, "A", 1),
        (79.99, "B", 2),
        (70, "B", 2),
        (60, "C", 3),
        (50, "D", 4),
        (40, "E", 5),
        (39.99, "S", 6),
        (35, "S", 6),
        (34.99, "F", 7),
        (0, "F", 7),
    ],
)
def test_a_level_band_edges(calculator, marks, grade, points):
    assert calculator.grade_and_points(marks, Curriculum.A_LEVEL) == (grade, points)


def test_points_and_remark_lookup(calculator):
    assert calculator.points("C", Curriculum.O_LEVEL) == 3
    assert calculator.remark("S", Curriculum.A_LEVEL) == "Subsidiary Pass"
    assert calculator.is_pass("F", Curriculum.O_LEVEL) is False


def test_unknown_grade_is_rejected(calculator):
    with pytest.raises(ValidationError):
        calculator.points("E", Curriculum.O_LEVEL)


@pytest.mark.parametrize("value", [-0.01, 100.01, "abc", "", None, True, float("nan"), float("inf")])
def test_invalid_marks_raise_out_of_range(value):
    with pytest.raises(MarksOutOfRangeError) as exc_info:
        validate_marks(value)
    assert exc_info.value.code == "OUT_OF_RANGE"
    assert exc_info.value.status_code == 422


def test_marks_are_quantized_half_up():
    assert validate_marks("64.995") == Decimal("65.00")
    assert validate_marks(72) == Decimal("72.00")
    assert validate_marks(" 48.5 ") == Decimal("48.50")


def test_policy_bands_are_sorted_on_load():
    policy = CurriculumPolicy(
        curriculum=Curriculum.O_LEVEL,
        grade_bands=(
            GradeBand(grade="F", min_marks=Decimal("0"), points=2, is_pass=False),
            GradeBand(grade="P", min_marks=Decimal("50"), points=1),
        ),
        division_bands=(DivisionBand(division="I", min_points=1, max_points=3),),
        best_of=2,
    )
    assert policy.grade_labels == ["P", "F"]
    assert policy.division_labels == ["I", "0"]


def test_policy_rejects_gap_at_zero():
    with pytest.raises(ValueError):
        CurriculumPolicy(
            curriculum=Curriculum.O_LEVEL,
            grade_bands=(GradeBand(grade="A", min_marks=Decimal("10"), points=1),),
            division_bands=(DivisionBand(division="I", min_points=1, max_points=3),),
            best_of=1,
        )


def test_policy_rejects_overlapping_divisions():
    with pytest.raises(ValueError):
        CurriculumPolicy(
            curriculum=Curriculum.O_LEVEL,
            grade_bands=(GradeBand(grade="A", min_marks=Decimal("0"), points=1),),
            division_bands=(
                DivisionBand(division="I", min_points=1, max_points=5),
                DivisionBand(division="II", min_points=5, max_points=9),
            ),
            best_of=1,
        )


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_provider_caches_until_ttl_expires():
    calls = []

    def loader():
        calls.append(1)
        return DEFAULT_POLICY

    clock = FakeClock()
    provider = GradingPolicyProvider(loader, ttl_seconds=60, clock=clock)
    assert provider.get() is DEFAULT_POLICY
    clock.now = 59
    provider.get()
    assert len(calls) == 1
    clock.now = 61
    provider.get()
    assert len(calls) == 2


def test_provider_keeps_stale_policy_when_reload_fails():
    state = {"fail": False}

    def loader():
        if state["fail"]:
            raise RuntimeError("database down")
        return DEFAULT_POLICY

    clock = FakeClock()
    provider = GradingPolicyProvider(loader, ttl_seconds=10, clock=clock)
    provider.get()
    state["fail"] = True
    clock.now = 100
    assert provider.get() is DEFAULT_POLICY


def test_provider_replace_swaps_whole_policy():
    provider = GradingPolicyProvider(lambda: DEFAULT_POLICY, ttl_seconds=600)
    stricter = DEFAULT_POLICY.model_copy(update={"a_level": DEFAULT_A_LEVEL_POLICY.model_copy(update={"best_of": 2})})
    provider.replace(stricter)
    assert provider.get().a_level.best_of == 2
    provider.invalidate()
    assert provider.get().a_level.best_of == 3
