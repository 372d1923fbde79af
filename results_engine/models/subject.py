"""Subject and subject combination models."""

import enum

from sqlalchemy import BigInteger, Boolean, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from results_engine.core.database import Base
from results_engine.models.base import IDMixin, TimestampMixin


class Curriculum(str, enum.Enum):
    """Curriculum a student, class or result belongs to."""

    O_LEVEL = "O_LEVEL"
    A_LEVEL = "A_LEVEL"


class EducationLevel(str, enum.Enum):
    """Levels a subject is offered at."""

    O_LEVEL = "O_LEVEL"
    A_LEVEL = "A_LEVEL"
    BOTH = "BOTH"

    def offered_for(self, curriculum: Curriculum) -> bool:
        return self is EducationLevel.BOTH or self.value == curriculum.value


class CombinationRole(str, enum.Enum):
    """How a subject counts inside an A-Level combination."""

    PRINCIPAL = "PRINCIPAL"
    SUBSIDIARY = "SUBSIDIARY"


class Subject(Base, IDMixin, TimestampMixin):
    """Subject reference data."""

    __tablename__ = "subjects"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    education_level: Mapped[EducationLevel] = mapped_column(
        Enum(EducationLevel),
        nullable=False,
        default=EducationLevel.O_LEVEL,
    )
    is_compulsory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Subject(id={self.id}, code={self.code})>"


class SubjectCombination(Base, IDMixin, TimestampMixin):
    """A-Level subject combination (e.g. PCM, HGL)."""

    __tablename__ = "subject_combinations"

    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Bumped on every membership change
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    members: Mapped[list["CombinationSubject"]] = relationship(
        "CombinationSubject",
        back_populates="combination",
        cascade="all, delete-orphan",
        order_by="CombinationSubject.position",
        lazy="selectin",
    )

    @property
    def principal_subject_ids(self) -> list[int]:
        return [m.subject_id for m in self.members if m.role == CombinationRole.PRINCIPAL]

    @property
    def subsidiary_subject_ids(self) -> list[int]:
        return [m.subject_id for m in self.members if m.role == CombinationRole.SUBSIDIARY]

    def __repr__(self) -> str:
        return f"<SubjectCombination(id={self.id}, code={self.code}, v{self.version})>"


class CombinationSubject(Base):
    """Membership of a subject in a combination."""

    __tablename__ = "combination_subjects"

    combination_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("subject_combinations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    # One role per subject: a subject cannot be principal and subsidiary at once
    subject_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("subjects.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role: Mapped[CombinationRole] = mapped_column(Enum(CombinationRole), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    combination: Mapped["SubjectCombination"] = relationship(
        "SubjectCombination",
        back_populates="members",
    )
    subject: Mapped["Subject"] = relationship("Subject", lazy="selectin")
