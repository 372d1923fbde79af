"""Stored grading policy documents."""

from typing import Any

from sqlalchemy import BigInteger, Enum
from sqlalchemy.orm import Mapped, mapped_column

from results_engine.core.database import Base
from results_engine.models.base import IDMixin, JSONDocument, TimestampMixin
from results_engine.models.subject import Curriculum


class GradingPolicyRecord(Base, IDMixin, TimestampMixin):
    """Deployment-specific grade and division tables for one curriculum."""

    __tablename__ = "grading_policies"

    curriculum: Mapped[Curriculum] = mapped_column(Enum(Curriculum), nullable=False, unique=True)
    document: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    updated_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    def __repr__(self) -> str:
        return f"<GradingPolicyRecord(curriculum={self.curriculum.value})>"
