"""Class and student models."""

from sqlalchemy import BigInteger, Column, Enum, ForeignKey, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from results_engine.core.database import Base
from results_engine.models.base import IDMixin, TimestampMixin
from results_engine.models.subject import Curriculum, Subject, SubjectCombination

# Subjects taught to a class; the O-Level eligibility source
class_subjects = Table(
    "class_subjects",
    Base.metadata,
    Column("class_id", BigInteger, ForeignKey("school_classes.id", ondelete="CASCADE"), primary_key=True),
    Column("subject_id", BigInteger, ForeignKey("subjects.id", ondelete="CASCADE"), primary_key=True),
)


class SchoolClass(Base, IDMixin, TimestampMixin):
    """A class (form + stream) for one curriculum."""

    __tablename__ = "school_classes"

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    section: Mapped[str | None] = mapped_column(String(50), nullable=True)
    education_level: Mapped[Curriculum] = mapped_column(Enum(Curriculum), nullable=False)
    form: Mapped[int] = mapped_column(Integer, nullable=False)

    subjects: Mapped[list[Subject]] = relationship(
        Subject,
        secondary=class_subjects,
        order_by=Subject.id,
        lazy="selectin",
    )
    students: Mapped[list["Student"]] = relationship(
        "Student",
        back_populates="school_class",
        order_by="Student.admission_number",
    )

    @property
    def display_name(self) -> str:
        return f"{self.name}-{self.section}" if self.section else self.name

    def __repr__(self) -> str:
        return f"<SchoolClass(id={self.id}, name={self.display_name})>"


class Student(Base, IDMixin, TimestampMixin):
    """Student model."""

    __tablename__ = "students"

    admission_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    education_level: Mapped[Curriculum] = mapped_column(Enum(Curriculum), nullable=False)
    form: Mapped[int] = mapped_column(Integer, nullable=False)
    class_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("school_classes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # A-Level only
    subject_combination_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("subject_combinations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    school_class: Mapped[SchoolClass] = relationship(
        SchoolClass,
        back_populates="students",
        lazy="selectin",
    )
    subject_combination: Mapped[SubjectCombination | None] = relationship(
        SubjectCombination,
        lazy="selectin",
    )

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, admission={self.admission_number})>"
