"""Grading policy schemas.

A policy is a pair of tables per curriculum: grade bands (marks -> grade ->
points) and division bands (points total -> division). Policies are
immutable; a changed policy is a new object.
"""

from decimal import Decimal

from pydantic import ConfigDict, Field, field_validator

from results_engine.models.subject import Curriculum
from results_engine.schemas.common import BaseSchema


class GradeBand(BaseSchema):
    """Lowest mark earning a grade, and what the grade is worth."""

    model_config = ConfigDict(frozen=True)

    grade: str = Field(..., min_length=1, max_length=2)
    min_marks: Decimal = Field(..., ge=0, le=100)
    points: int = Field(..., ge=1)
    remark: str = ""
    is_pass: bool = True


class DivisionBand(BaseSchema):
    """Inclusive range of qualifying points mapped to a division."""

    model_config = ConfigDict(frozen=True)

    division: str = Field(..., min_length=1, max_length=10)
    min_points: int = Field(..., ge=0)
    max_points: int = Field(..., ge=0)


class CurriculumPolicy(BaseSchema):
    """Complete grading rules for one curriculum."""

    model_config = ConfigDict(frozen=True)

    curriculum: Curriculum
    grade_bands: tuple[GradeBand, ...]
    division_bands: tuple[DivisionBand, ...]
    fallback_division: str = Field("0", min_length=1, max_length=10)
    best_of: int = Field(..., ge=1)
    min_subjects: int = Field(0, ge=0)
    block_below_minimum: bool = False
    include_subsidiary: bool = False

    @field_validator("grade_bands")
    @classmethod
    def validate_grade_bands(cls, v: tuple[GradeBand, ...]) -> tuple[GradeBand, ...]:
        if not v:
            raise ValueError("at least one grade band is required")
        ordered = tuple(sorted(v, key=lambda b: b.min_marks, reverse=True))
        grades = [b.grade for b in ordered]
        if len(set(grades)) != len(grades):
            raise ValueError("grade labels must be unique")
        thresholds = [b.min_marks for b in ordered]
        if len(set(thresholds)) != len(thresholds):
            raise ValueError("grade bands must not share a lower bound")
        if ordered[-1].min_marks != 0:
            raise ValueError("the lowest grade band must start at 0")
        return ordered

    @field_validator("division_bands")
    @classmethod
    def validate_division_bands(cls, v: tuple[DivisionBand, ...]) -> tuple[DivisionBand, ...]:
        if not v:
            raise ValueError("at least one division band is required")
        ordered = tuple(sorted(v, key=lambda b: b.min_points))
        previous_max = None
        for band in ordered:
            if band.max_points < band.min_points:
                raise ValueError(f"division {band.division}: max_points is below min_points")
            if previous_max is not None and band.min_points <= previous_max:
                raise ValueError(f"division {band.division} overlaps the previous band")
            previous_max = band.max_points
        return ordered

    @property
    def grade_labels(self) -> list[str]:
        return [b.grade for b in self.grade_bands]

    @property
    def division_labels(self) -> list[str]:
        labels = [b.division for b in self.division_bands]
        if self.fallback_division not in labels:
            labels.append(self.fallback_division)
        return labels


class GradingPolicy(BaseSchema):
    """Policies for both curricula, swapped as one unit."""

    model_config = ConfigDict(frozen=True)

    o_level: CurriculumPolicy
    a_level: CurriculumPolicy

    def for_curriculum(self, curriculum: Curriculum) -> CurriculumPolicy:
        return self.a_level if curriculum == Curriculum.A_LEVEL else self.o_level


class CurriculumPolicyUpdate(BaseSchema):
    """Admin payload replacing one curriculum's policy."""

    grade_bands: list[GradeBand]
    division_bands: list[DivisionBand]
    fallback_division: str = "0"
    best_of: int = Field(..., ge=1)
    min_subjects: int = Field(0, ge=0)
    block_below_minimum: bool = False
    include_subsidiary: bool = False
