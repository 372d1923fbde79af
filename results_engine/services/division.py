"""Division classification from graded subject results."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from results_engine.models.subject import Curriculum
from results_engine.schemas.common import ValidationWarning
from results_engine.schemas.grading import CurriculumPolicy, GradingPolicy


@dataclass(frozen=True)
class GradedSubject:
    """A result after grading under the current policy."""

    result_id: int
    subject_id: int
    marks: Decimal
    grade: str
    points: int
    is_principal: bool | None = None
    flagged_ineligible: bool = False


@dataclass(frozen=True)
class DivisionOutcome:
    division: str | None
    total_points: int | None
    counted_result_ids: tuple[int, ...] = ()
    warnings: tuple[ValidationWarning, ...] = field(default_factory=tuple)


def best_results(results: Iterable[GradedSubject], limit: int) -> list[GradedSubject]:
    """Lowest points first; higher marks then lower subject id break ties."""
    ordered = sorted(results, key=lambda r: (r.points, -r.marks, r.subject_id))
    return ordered[:limit]


def division_for_points(policy: CurriculumPolicy, total: int) -> str:
    # Below the first band counts as the first band; past the last band is the fallback
    for band in policy.division_bands:
        if total <= band.max_points:
            return band.division
    return policy.fallback_division


class DivisionClassifier:
    """Sums best-of points and maps the total to a division."""

    def __init__(self, policy: GradingPolicy):
        self.policy = policy

    def classify(
        self,
        curriculum: Curriculum,
        results: list[GradedSubject],
        missing_compulsory: Iterable[str] = (),
        has_combination: bool = True,
    ) -> DivisionOutcome:
        if curriculum == Curriculum.A_LEVEL:
            return self._classify_a_level(results, has_combination)
        return self._classify_o_level(results, missing_compulsory)

    def _classify_o_level(
        self,
        results: list[GradedSubject],
        missing_compulsory: Iterable[str],
    ) -> DivisionOutcome:
        policy = self.policy.o_level
        warnings = _flagged_warnings(results)

        missing = sorted(missing_compulsory)
        if missing:
            warnings.append(ValidationWarning(
                code="MISSING_COMPULSORY",
                message=f"Missing compulsory subjects: {', '.join(missing)}",
                details={"subjects": missing},
            ))

        if not results:
            warnings.append(ValidationWarning(code="NO_RESULTS", message="No results recorded"))
            return DivisionOutcome(division=None, total_points=None, warnings=tuple(warnings))

        best = best_results(results, policy.best_of)
        total = sum(r.points for r in best)
        division: str | None = division_for_points(policy, total)

        if len(results) < policy.min_subjects:
            warnings.append(ValidationWarning(
                code="INCOMPLETE_SUBJECTS",
                message=f"Only {len(results)} of {policy.min_subjects} subjects have results",
                details={"found": len(results), "required": policy.min_subjects},
            ))
            if policy.block_below_minimum:
                division = None

        return DivisionOutcome(
            division=division,
            total_points=total,
            counted_result_ids=tuple(r.result_id for r in best),
            warnings=tuple(warnings),
        )

    def _classify_a_level(self, results: list[GradedSubject], has_combination: bool) -> DivisionOutcome:
        policy = self.policy.a_level
        warnings = _flagged_warnings(results)

        if not has_combination:
            warnings.append(ValidationWarning(
                code="MISSING_COMBINATION",
                message="Student has no subject combination",
            ))

        if not results:
            warnings.append(ValidationWarning(code="NO_RESULTS", message="No results recorded"))
            return DivisionOutcome(division=None, total_points=None, warnings=tuple(warnings))

        principals = [r for r in results if r.is_principal]
        subsidiaries = [r for r in results if not r.is_principal]

        if len(principals) < policy.min_subjects:
            warnings.append(ValidationWarning(
                code="INSUFFICIENT_PRINCIPALS",
                message=f"Only {len(principals)} of {policy.min_subjects} principal subjects have results",
                details={"found": len(principals), "required": policy.min_subjects},
            ))
        if not principals:
            return DivisionOutcome(division=None, total_points=None, warnings=tuple(warnings))

        counted = best_results(principals, policy.best_of)
        if policy.include_subsidiary:
            counted += subsidiaries
        total = sum(r.points for r in counted)
        division: str | None = division_for_points(policy, total)
        if len(principals) < policy.min_subjects and policy.block_below_minimum:
            division = None

        return DivisionOutcome(
            division=division,
            total_points=total,
            counted_result_ids=tuple(r.result_id for r in counted),
            warnings=tuple(warnings),
        )


def _flagged_warnings(results: list[GradedSubject]) -> list[ValidationWarning]:
    flagged = sorted(r.subject_id for r in results if r.flagged_ineligible)
    if not flagged:
        return []
    return [ValidationWarning(
        code="FLAGGED_INELIGIBLE",
        message="Some results were stored for subjects the student is not registered for",
        details={"subject_ids": flagged},
    )]
