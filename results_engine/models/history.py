"""Marks history ledger model."""

import enum
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import BigInteger, DateTime, Enum, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from results_engine.core.database import Base
from results_engine.models.base import IDMixin, JSONDocument
from results_engine.models.result import ResultModel


class ChangeType(str, enum.Enum):
    """Kind of mutation a history row records."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class MarksHistory(Base, IDMixin):
    """Append-only record of one change to one result."""

    __tablename__ = "marks_history"

    # No foreign key: rows outlive deleted results
    result_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    result_model: Mapped[ResultModel] = mapped_column(
        Enum(ResultModel),
        nullable=False,
        index=True,
    )
    # Position of this change in the result's own timeline, starting at 1
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    student_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    subject_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    exam_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    class_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)

    change_type: Mapped[ChangeType] = mapped_column(Enum(ChangeType), nullable=False, index=True)
    previous_values: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    new_values: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)

    # Actor
    user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reverted_from_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Request context
    ip_address: Mapped[str | None] = mapped_column(String(50), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamp (append-only, no updated_at)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("result_model", "result_id", "sequence", name="uq_marks_history_sequence"),
    )

    @property
    def restorable_values(self) -> dict[str, Any] | None:
        """State this entry captured: the new state, or for a DELETE the state that was removed."""
        if self.change_type == ChangeType.DELETE:
            return self.previous_values
        return self.new_values

    def __repr__(self) -> str:
        return (
            f"<MarksHistory(id={self.id}, {self.result_model.value}#{self.result_id} "
            f"seq={self.sequence} {self.change_type.value})>"
        )
