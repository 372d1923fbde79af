"""O-Level and A-Level result models.

The two curricula keep results in separate tables that share no storage;
every history row says which one it belongs to via ``ResultModel``.
"""

import enum
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    DECIMAL,
    BigInteger,
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from results_engine.core.database import Base
from results_engine.models.base import IDMixin, TimestampMixin
from results_engine.models.subject import Curriculum, Subject


class ResultModel(str, enum.Enum):
    """Tag naming the table a result lives in."""

    O_LEVEL = "OLevelResult"
    A_LEVEL = "ALevelResult"

    @classmethod
    def for_curriculum(cls, curriculum: Curriculum) -> "ResultModel":
        return cls.A_LEVEL if curriculum == Curriculum.A_LEVEL else cls.O_LEVEL

    @property
    def curriculum(self) -> Curriculum:
        return Curriculum.A_LEVEL if self is ResultModel.A_LEVEL else Curriculum.O_LEVEL

    @property
    def model_class(self) -> type["OLevelResult | ALevelResult"]:
        return ALevelResult if self is ResultModel.A_LEVEL else OLevelResult


class ResultMixin(IDMixin, TimestampMixin):
    """Columns shared by both result tables."""

    student_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subject_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("subjects.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    exam_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    class_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("school_classes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    marks_obtained: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False)
    # Cached; always written together with marks_obtained
    grade: Mapped[str] = mapped_column(String(2), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    flagged_ineligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @declared_attr
    def subject(cls) -> Mapped[Subject]:
        return relationship(Subject, lazy="selectin")

    @property
    def natural_key(self) -> tuple[int, int, int]:
        return (self.student_id, self.subject_id, self.exam_id)

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe copy of the mutable fields, as stored in history."""
        return {
            "marks_obtained": str(Decimal(self.marks_obtained).quantize(Decimal("0.01"))),
            "grade": self.grade,
            "points": self.points,
            "comment": self.comment,
            "flagged_ineligible": bool(self.flagged_ineligible),
        }


class OLevelResult(Base, ResultMixin):
    """O-Level subject result."""

    __tablename__ = "o_level_results"

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        UniqueConstraint("student_id", "subject_id", "exam_id", name="uq_o_level_result_key"),
    )

    result_model = ResultModel.O_LEVEL

    def __repr__(self) -> str:
        return f"<OLevelResult(id={self.id}, key={self.natural_key}, marks={self.marks_obtained})>"


class ALevelResult(Base, ResultMixin):
    """A-Level subject result."""

    __tablename__ = "a_level_results"

    is_principal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        UniqueConstraint("student_id", "subject_id", "exam_id", name="uq_a_level_result_key"),
    )

    result_model = ResultModel.A_LEVEL

    def snapshot(self) -> dict[str, Any]:
        data = super().snapshot()
        data["is_principal"] = bool(self.is_principal)
        return data

    def __repr__(self) -> str:
        return f"<ALevelResult(id={self.id}, key={self.natural_key}, marks={self.marks_obtained})>"
