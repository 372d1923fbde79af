"""Grade calculation and grading policy management."""

import logging
import math
import threading
import time
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from results_engine.core.config import settings
from results_engine.core.database import SessionLocal
from results_engine.core.exceptions import MarksOutOfRangeError, ValidationError
from results_engine.models.grading_policy import GradingPolicyRecord
from results_engine.models.subject import Curriculum
from results_engine.schemas.grading import (
    CurriculumPolicy,
    CurriculumPolicyUpdate,
    DivisionBand,
    GradeBand,
    GradingPolicy,
)

logger = logging.getLogger(__name__)

MIN_MARKS = 0
MAX_MARKS = 100
MARKS_QUANTUM = Decimal("0.01")


# ==========================================
# Default tables
# ==========================================

DEFAULT_O_LEVEL_POLICY = CurriculumPolicy(
    curriculum=Curriculum.O_LEVEL,
    grade_bands=(
        GradeBand(grade="A", min_marks=Decimal("75"), points=1, remark="Excellent"),
        GradeBand(grade="B", min_marks=Decimal("65"), points=2, remark="Very Good"),
        GradeBand(grade="C", min_marks=Decimal("50"), points=3, remark="Good"),
        GradeBand(grade="D", min_marks=Decimal("30"), points=4, remark="Satisfactory"),
        GradeBand(grade="F", min_marks=Decimal("0"), points=5, remark="Fail", is_pass=False),
    ),
    division_bands=(
        DivisionBand(division="I", min_points=7, max_points=17),
        DivisionBand(division="II", min_points=18, max_points=21),
        DivisionBand(division="III", min_points=22, max_points=25),
        DivisionBand(division="IV", min_points=26, max_points=33),
    ),
    fallback_division="0",
    best_of=7,
    min_subjects=7,
)

DEFAULT_A_LEVEL_POLICY = CurriculumPolicy(
    curriculum=Curriculum.A_LEVEL,
    grade_bands=(
        GradeBand(grade="A", min_marks=Decimal("80"), points=1, remark="Excellent"),
        GradeBand(grade="B", min_marks=Decimal("70"), points=2, remark="Very Good"),
        GradeBand(grade="C", min_marks=Decimal("60"), points=3, remark="Good"),
        GradeBand(grade="D", min_marks=Decimal("50"), points=4, remark="Satisfactory"),
        GradeBand(grade="E", min_marks=Decimal("40"), points=5, remark="Pass"),
        GradeBand(grade="S", min_marks=Decimal("35"), points=6, remark="Subsidiary Pass"),
        GradeBand(grade="F", min_marks=Decimal("0"), points=7, remark="Fail", is_pass=False),
    ),
    division_bands=(
        DivisionBand(division="I", min_points=3, max_points=9),
        DivisionBand(division="II", min_points=10, max_points=12),
        DivisionBand(division="III", min_points=13, max_points=17),
        DivisionBand(division="IV", min_points=18, max_points=19),
        DivisionBand(division="V", min_points=20, max_points=21),
    ),
    fallback_division="0",
    best_of=3,
    min_subjects=3,
)

DEFAULT_POLICY = GradingPolicy(o_level=DEFAULT_O_LEVEL_POLICY, a_level=DEFAULT_A_LEVEL_POLICY)


# ==========================================
# Grade calculator
# ==========================================

def validate_marks(value: Any) -> Decimal:
    """Coerce raw marks to a two-place Decimal in [0, 100] or raise."""
    if value is None or isinstance(value, bool):
        raise MarksOutOfRangeError(value, MIN_MARKS, MAX_MARKS)
    if isinstance(value, float) and not math.isfinite(value):
        raise MarksOutOfRangeError(value, MIN_MARKS, MAX_MARKS)
    try:
        marks = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise MarksOutOfRangeError(value, MIN_MARKS, MAX_MARKS)
    if not marks.is_finite() or marks < MIN_MARKS or marks > MAX_MARKS:
        raise MarksOutOfRangeError(value, MIN_MARKS, MAX_MARKS)
    return marks.quantize(MARKS_QUANTUM, rounding=ROUND_HALF_UP)


class GradeCalculator:
    """Pure marks -> grade -> points lookups over a fixed policy."""

    def __init__(self, policy: GradingPolicy):
        self.policy = policy

    def band(self, marks: Any, curriculum: Curriculum) -> GradeBand:
        value = validate_marks(marks)
        # Bands are sorted by descending lower bound; an edge mark takes the higher band
        for band in self.policy.for_curriculum(curriculum).grade_bands:
            if value >= band.min_marks:
                return band
        # Unreachable: validated policies always have a band starting at 0
        raise ValidationError(f"No grade band covers {value}")

    def grade(self, marks: Any, curriculum: Curriculum) -> str:
        return self.band(marks, curriculum).grade

    def points(self, grade: str, curriculum: Curriculum) -> int:
        return self._band_named(grade, curriculum).points

    def remark(self, grade: str, curriculum: Curriculum) -> str:
        return self._band_named(grade, curriculum).remark

    def is_pass(self, grade: str, curriculum: Curriculum) -> bool:
        return self._band_named(grade, curriculum).is_pass

    def grade_and_points(self, marks: Any, curriculum: Curriculum) -> tuple[str, int]:
        band = self.band(marks, curriculum)
        return band.grade, band.points

    def _band_named(self, grade: str, curriculum: Curriculum) -> GradeBand:
        for band in self.policy.for_curriculum(curriculum).grade_bands:
            if band.grade == grade:
                return band
        raise ValidationError(
            f"Unknown {curriculum.value} grade '{grade}'",
            details={"grade": grade, "curriculum": curriculum.value},
        )


# ==========================================
# Policy provider
# ==========================================

def build_policy_loader(session_factory: sessionmaker[Session]) -> Callable[[], GradingPolicy]:
    """Loader reading stored policy documents, defaulting per curriculum."""

    def load() -> GradingPolicy:
        with session_factory() as db:
            records = db.execute(select(GradingPolicyRecord)).scalars().all()
        stored = {r.curriculum: r.document for r in records}
        policies = {}
        for curriculum, default in (
            (Curriculum.O_LEVEL, DEFAULT_O_LEVEL_POLICY),
            (Curriculum.A_LEVEL, DEFAULT_A_LEVEL_POLICY),
        ):
            document = stored.get(curriculum)
            if document is None:
                policies[curriculum] = default
                continue
            try:
                policies[curriculum] = CurriculumPolicy.model_validate(
                    {**document, "curriculum": curriculum}
                )
            except ValueError as e:
                logger.error(f"Stored {curriculum.value} grading policy is invalid, using defaults: {e}")
                policies[curriculum] = default
        return GradingPolicy(
            o_level=policies[Curriculum.O_LEVEL],
            a_level=policies[Curriculum.A_LEVEL],
        )

    return load


class GradingPolicyProvider:
    """Process-wide policy cache with TTL expiry.

    The policy and its load time live in one tuple that is replaced whole,
    so readers never see half of an update.
    """

    def __init__(
        self,
        loader: Callable[[], GradingPolicy],
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = settings.GRADING_POLICY_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state: tuple[GradingPolicy | None, float] = (None, 0.0)

    def get(self) -> GradingPolicy:
        policy, loaded_at = self._state
        if policy is not None and self._clock() - loaded_at < self._ttl:
            return policy
        return self.refresh()

    def refresh(self) -> GradingPolicy:
        with self._lock:
            stale, _ = self._state
            try:
                policy = self._loader()
            except Exception as e:
                if stale is None:
                    raise
                logger.warning(f"Grading policy refresh failed, keeping cached policy: {e}")
                return stale
            self._state = (policy, self._clock())
        logger.debug("Grading policy loaded")
        return policy

    def replace(self, policy: GradingPolicy) -> None:
        with self._lock:
            self._state = (policy, self._clock())
        logger.info("Grading policy replaced")

    def invalidate(self) -> None:
        with self._lock:
            self._state = (None, 0.0)


grading_policy_provider = GradingPolicyProvider(build_policy_loader(SessionLocal))


# ==========================================
# Policy administration
# ==========================================

class GradingPolicyService:
    """Read and replace stored policy documents."""

    def __init__(self, db: Session, provider: GradingPolicyProvider | None = None):
        self.db = db
        self.provider = provider or grading_policy_provider

    def get_policy(self) -> GradingPolicy:
        return self.provider.get()

    def update_policy(
        self,
        curriculum: Curriculum,
        request: CurriculumPolicyUpdate,
        user_id: int | None = None,
    ) -> CurriculumPolicy:
        """Validate, store and publish a new policy for one curriculum."""
        try:
            policy = CurriculumPolicy(curriculum=curriculum, **request.model_dump())
        except ValueError as e:
            raise ValidationError("Invalid grading policy", details={"errors": str(e)})

        document = policy.model_dump(mode="json", exclude={"curriculum"})
        record = self.db.execute(
            select(GradingPolicyRecord).where(GradingPolicyRecord.curriculum == curriculum)
        ).scalar_one_or_none()
        if record is None:
            record = GradingPolicyRecord(curriculum=curriculum, document=document, updated_by=user_id)
            self.db.add(record)
        else:
            record.document = document
            record.updated_by = user_id
        self.db.commit()

        current = self.provider.get()
        if curriculum == Curriculum.A_LEVEL:
            updated = GradingPolicy(o_level=current.o_level, a_level=policy)
        else:
            updated = GradingPolicy(o_level=policy, a_level=current.a_level)
        self.provider.replace(updated)
        logger.info(f"Grading policy for {curriculum.value} updated by user {user_id}")
        return policy
