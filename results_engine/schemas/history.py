"""Marks history schemas."""

from datetime import datetime
from typing import Any

from pydantic import Field

from results_engine.models.history import ChangeType
from results_engine.models.result import ResultModel
from results_engine.schemas.common import BaseSchema


class HistoryEntryResponse(BaseSchema):
    """One ledger row."""

    id: int
    result_id: int
    result_model: ResultModel
    sequence: int
    student_id: int
    subject_id: int
    exam_id: int
    class_id: int | None
    change_type: ChangeType
    previous_values: dict[str, Any] | None
    new_values: dict[str, Any] | None
    user_id: int | None
    reason: str | None
    reverted_from_id: int | None
    ip_address: str | None
    user_agent: str | None
    created_at: datetime


class HistoryFilter(BaseSchema):
    """History query parameters. At least one id filter is required."""

    result_id: int | None = None
    result_model: ResultModel | None = None
    student_id: int | None = None
    subject_id: int | None = None
    exam_id: int | None = None
    class_id: int | None = None
    change_type: ChangeType | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


class RevertRequest(BaseSchema):
    """Why a result is being rolled back."""

    reason: str | None = Field(None, max_length=500)
