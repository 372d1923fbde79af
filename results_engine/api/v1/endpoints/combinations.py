"""Subject combination endpoints."""

from fastapi import APIRouter

from results_engine.core.database import DbSession
from results_engine.schemas.combination import (
    AssignCombinationRequest,
    CombinationPayload,
    CombinationResponse,
    StudentCombinationResponse,
)
from results_engine.services.combination import CombinationService

router = APIRouter()
students_router = APIRouter()


@router.post("", response_model=CombinationResponse)
def upsert_subject_combination(
    payload: CombinationPayload,
    db: DbSession,
):
    """
    Create or replace a subject combination.
    Subjects may be given as ids, codes, names or subject objects.
    """
    service = CombinationService(db)
    combination = service.upsert_combination(payload)
    return service.to_response(combination)


@router.get("/{combination_id}", response_model=CombinationResponse)
def get_subject_combination(
    combination_id: int,
    db: DbSession,
):
    """Get a subject combination in canonical form."""
    service = CombinationService(db)
    return service.to_response(service.get_combination(combination_id))


@students_router.put("/{student_id}/subject-combination", response_model=StudentCombinationResponse)
def assign_subject_combination(
    student_id: int,
    request: AssignCombinationRequest,
    db: DbSession,
):
    """Assign a subject combination to an A-Level student, or clear it."""
    service = CombinationService(db)
    return service.assign_combination(student_id, request.subject_combination_id)
