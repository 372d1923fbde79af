"""Result entry endpoints."""

from fastapi import APIRouter, File, Form, Query, UploadFile

from results_engine.core.config import settings
from results_engine.core.database import DbSession
from results_engine.core.dependencies import Actor, CurrentPolicy
from results_engine.core.exceptions import UploadError
from results_engine.models.result import ResultModel
from results_engine.schemas.common import MessageResponse
from results_engine.schemas.result import (
    BulkMarksRequest,
    BulkMarksResponse,
    RecordMarkRequest,
    ResultResponse,
)
from results_engine.services.result import ResultService

router = APIRouter()


@router.post("", response_model=ResultResponse)
def record_mark(
    request: RecordMarkRequest,
    db: DbSession,
    policy: CurrentPolicy,
    actor: Actor,
):
    """
    Enter or correct marks for one student, subject and exam.
    A second entry for the same three is an update, never a duplicate.
    """
    service = ResultService(db, policy)
    return service.record_mark(request, actor)


@router.post("/bulk", response_model=BulkMarksResponse)
def bulk_record_marks(
    request: BulkMarksRequest,
    db: DbSession,
    policy: CurrentPolicy,
    actor: Actor,
):
    """
    Record a batch of marks. Each row is saved on its own;
    rejected rows are reported with their error code.
    """
    service = ResultService(db, policy)
    return service.bulk_record_marks(request, actor)


@router.post("/bulk/upload", response_model=BulkMarksResponse)
def upload_marks_excel(
    db: DbSession,
    policy: CurrentPolicy,
    actor: Actor,
    exam_id: int = Form(...),
    file: UploadFile = File(...),
):
    """
    Upload marks from an Excel workbook.
    Columns: Admission No, Subject, Marks, and optionally Comment and Principal.
    """
    if not file.filename:
        raise UploadError("No file provided")

    if not any(file.filename.lower().endswith(ext) for ext in settings.ALLOWED_EXTENSIONS):
        raise UploadError(f"Only {', '.join(settings.ALLOWED_EXTENSIONS)} files are allowed")

    content = file.file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise UploadError(f"File size exceeds {settings.MAX_UPLOAD_SIZE_MB}MB limit")

    service = ResultService(db, policy)
    return service.process_workbook_upload(content, exam_id, actor)


@router.get("/{result_model}/{result_id}", response_model=ResultResponse)
def get_result(
    result_model: ResultModel,
    result_id: int,
    db: DbSession,
    policy: CurrentPolicy,
):
    """Get a stored result."""
    service = ResultService(db, policy)
    return service.to_response(service.get_result(result_model, result_id))


@router.delete("/{result_model}/{result_id}", response_model=MessageResponse)
def delete_result(
    result_model: ResultModel,
    result_id: int,
    db: DbSession,
    policy: CurrentPolicy,
    actor: Actor,
    reason: str | None = Query(None, max_length=500),
):
    """
    Delete a result. Its last state stays in the marks history
    and can be restored with a revert.
    """
    service = ResultService(db, policy)
    service.delete_result(result_model, result_id, actor, reason=reason)
    return MessageResponse(message="Result deleted successfully")
