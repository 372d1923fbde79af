"""Exam model."""

from datetime import date

from sqlalchemy import Date, String
from sqlalchemy.orm import Mapped, mapped_column

from results_engine.core.database import Base
from results_engine.models.base import IDMixin, TimestampMixin


class Exam(Base, IDMixin, TimestampMixin):
    """An examination sitting (e.g. Midterm, Term 1 2026)."""

    __tablename__ = "exams"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    term: Mapped[str] = mapped_column(String(50), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    exam_type: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Exam(id={self.id}, name={self.name})>"
