"""Marks history endpoints."""

from datetime import datetime

from fastapi import APIRouter, Query

from results_engine.core.database import DbSession
from results_engine.core.dependencies import Actor, CurrentPolicy
from results_engine.models.history import ChangeType
from results_engine.models.result import ResultModel
from results_engine.schemas.common import PaginatedResponse
from results_engine.schemas.history import HistoryEntryResponse, HistoryFilter, RevertRequest
from results_engine.schemas.result import ResultResponse
from results_engine.services.history import MarksHistoryService
from results_engine.services.result import ResultService

router = APIRouter()


@router.get("", response_model=PaginatedResponse[HistoryEntryResponse])
def list_history(
    db: DbSession,
    policy: CurrentPolicy,
    result_id: int | None = None,
    result_model: ResultModel | None = None,
    student_id: int | None = None,
    subject_id: int | None = None,
    exam_id: int | None = None,
    class_id: int | None = None,
    change_type: ChangeType | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    """
    List marks history, newest first.
    Filter by at least one of result, student, subject or exam;
    a result id must come with its result model.
    """
    service = MarksHistoryService(db, policy)
    filters = HistoryFilter(
        result_id=result_id,
        result_model=result_model,
        student_id=student_id,
        subject_id=subject_id,
        exam_id=exam_id,
        class_id=class_id,
        change_type=change_type,
        date_from=date_from,
        date_to=date_to,
    )
    entries, total = service.get_history(filters, page=page, page_size=page_size)

    return PaginatedResponse(
        items=[HistoryEntryResponse.model_validate(e) for e in entries],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=service.total_pages(total, page_size),
    )


@router.get("/{history_id}", response_model=HistoryEntryResponse)
def get_history_entry(
    history_id: int,
    db: DbSession,
    policy: CurrentPolicy,
):
    """Get one history entry."""
    return MarksHistoryService(db, policy).get_entry(history_id)


@router.post("/{history_id}/revert", response_model=ResultResponse)
def revert_to_history_entry(
    history_id: int,
    db: DbSession,
    policy: CurrentPolicy,
    actor: Actor,
    request: RevertRequest | None = None,
):
    """
    Restore the state recorded by a history entry.
    The revert is itself recorded as a new history entry.
    """
    history = MarksHistoryService(db, policy)
    result = history.revert(history_id, actor, reason=request.reason if request else None)
    return ResultService(db, policy).to_response(result)
