"""Result write schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import Field

from results_engine.models.result import ResultModel
from results_engine.schemas.common import BaseSchema, ValidationWarning


# ==========================================
# Requests
# ==========================================

class RecordMarkRequest(BaseSchema):
    """Enter or correct one student's marks in one subject for one exam."""

    student_id: int = Field(..., description="Student database ID")
    subject_id: int = Field(..., description="Subject database ID")
    exam_id: int = Field(..., description="Exam database ID")
    # Checked by the grade calculator so bad input gets OUT_OF_RANGE
    marks_obtained: Any = Field(..., description="Marks between 0 and 100")
    comment: str | None = None
    is_principal: bool | None = Field(
        None,
        description="A-Level only: overrides the principal/subsidiary role from the combination",
    )


class BulkMarksRequest(BaseSchema):
    """Batch of independent mark entries."""

    entries: list[RecordMarkRequest] = Field(..., min_length=1)


# ==========================================
# Responses
# ==========================================

class ResultResponse(BaseSchema):
    """Stored result with the warnings raised while writing it."""

    id: int
    result_model: ResultModel
    student_id: int
    subject_id: int
    exam_id: int
    class_id: int | None
    marks_obtained: Decimal
    grade: str
    points: int
    remark: str | None = None
    comment: str | None
    is_principal: bool | None = None
    flagged_ineligible: bool
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
    warnings: list[ValidationWarning] = []


class MarkEntryOutcome(BaseSchema):
    """What happened to one row of a batch."""

    row: int
    status: Literal["saved", "flagged", "rejected"]
    student_id: int | None = None
    subject_id: int | None = None
    result_id: int | None = None
    grade: str | None = None
    points: int | None = None
    error_code: str | None = None
    message: str | None = None


class BulkMarksResponse(BaseSchema):
    """Batch totals and per-row outcomes."""

    total: int
    saved: int
    rejected: int
    flagged: int
    rows: list[MarkEntryOutcome]
